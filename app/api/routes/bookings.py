from datetime import datetime

from flask import Blueprint, request, jsonify, current_app
from app.errors import BookingError, ValidationError, NotAuthorizedForOperation
from app.extensions import db
from app.services.availability import AvailabilityIndex
from app.services.booking_service import BookingService
from app.services.clock import BusinessClock
from app.utils.decorators import token_required, admin_required

bookings_bp = Blueprint('bookings', __name__)


def _clock():
    return BusinessClock.from_config(current_app.config)


def _parse_time(data, key, required=True):
    value = data.get(key)
    if value is None:
        if required:
            raise ValidationError(f"{key} is required.")
        return None
    try:
        return _clock().parse_instant(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be a valid ISO 8601 datetime.")


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")
    return data


def _parse_room_id(value):
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError("room_id must be an integer.")
    return value


def _error(e):
    if isinstance(e, BookingError):
        return jsonify(e.to_dict()), e.status_code
    db.session.rollback()
    current_app.logger.exception("Unexpected booking error")
    return jsonify({'error': 'Server Error'}), 500


@bookings_bp.route('/', methods=['POST'])
@token_required
def create_booking(current_user):
    try:
        data = _json_body()
        booking = BookingService.create(
            organizer=current_user,
            room_id=_parse_room_id(data.get('room_id')),
            start_time=_parse_time(data, 'start_time'),
            end_time=_parse_time(data, 'end_time'),
            purpose=data.get('purpose'),
            attendee_ids=data.get('attendees', []),
            external_invitees=data.get('external_invitees', []),
            notes=data.get('notes')
        )
        return jsonify(booking.to_dict()), 201
    except Exception as e:
        return _error(e)

@bookings_bp.route('/<int:booking_id>', methods=['GET'])
@token_required
def get_booking(current_user, booking_id):
    try:
        booking = BookingService.get_booking(booking_id)
        if not (current_user.is_admin or booking.organizer_id == current_user.id
                or booking.attendee_link(current_user.id) is not None):
            raise NotAuthorizedForOperation()
        return jsonify(booking.to_dict()), 200
    except Exception as e:
        return _error(e)

@bookings_bp.route('/<int:booking_id>', methods=['PUT'])
@token_required
def update_booking(current_user, booking_id):
    try:
        data = _json_body()
        fields = dict(data)
        if 'room_id' in fields:
            fields['room_id'] = _parse_room_id(fields['room_id'])
        for key in ('start_time', 'end_time'):
            if key in fields:
                fields[key] = _parse_time(data, key)

        booking = BookingService.update(booking_id, current_user, fields)
        return jsonify(booking.to_dict()), 200
    except Exception as e:
        return _error(e)

@bookings_bp.route('/<int:booking_id>/cancel', methods=['PUT'])
@token_required
def cancel_booking(current_user, booking_id):
    try:
        booking = BookingService.cancel(booking_id, current_user)
        return jsonify({'message': 'Booking cancelled successfully', 'booking': booking.to_dict()}), 200
    except Exception as e:
        return _error(e)

@bookings_bp.route('/<int:booking_id>/opt-out', methods=['PATCH'])
@token_required
def opt_out_of_booking(current_user, booking_id):
    try:
        booking = BookingService.opt_out(booking_id, current_user)
        return jsonify({'message': 'You have opted out of this meeting', 'booking': booking.to_dict()}), 200
    except Exception as e:
        return _error(e)

@bookings_bp.route('/<int:booking_id>', methods=['DELETE'])
@token_required
def delete_booking(current_user, booking_id):
    try:
        BookingService.delete(booking_id, current_user)
        return jsonify({'message': 'Booking deleted'}), 200
    except Exception as e:
        return _error(e)

@bookings_bp.route('/my-bookings', methods=['GET'])
@token_required
def get_my_bookings(current_user):
    bookings = BookingService.get_user_bookings(current_user.id)
    return jsonify([b.to_dict() for b in bookings])

@bookings_bp.route('/all', methods=['GET'])
@token_required
@admin_required
def get_all_bookings(current_user):
    page = request.args.get('page', 1, type=int)
    limit = request.args.get('limit', 1000, type=int)
    bookings = BookingService.get_all_bookings(
        status=request.args.get('status'),
        room_id=request.args.get('room_id', type=int),
        page=max(page, 1),
        limit=max(limit, 1)
    )
    return jsonify([b.to_dict() for b in bookings])

@bookings_bp.route('/availability/<int:room_id>', methods=['GET'])
def get_room_availability(room_id):
    date_str = request.args.get('date')
    if not date_str:
        return jsonify({'error': 'validation_error', 'message': 'Date parameter is required'}), 400
    try:
        target_date = datetime.strptime(date_str, "%Y-%m-%d").date()
    except ValueError:
        return jsonify({'error': 'validation_error', 'message': 'Date must be YYYY-MM-DD'}), 400

    clock = _clock()
    booked = AvailabilityIndex.day_schedule(room_id, target_date, clock=clock)
    slots = AvailabilityIndex.free_slots(room_id, target_date, clock=clock)
    return jsonify({
        'room_id': room_id,
        'date': target_date.isoformat(),
        'timezone': current_app.config['BUSINESS_TIMEZONE'],
        'bookings': [
            {'id': b.booking_id, 'purpose': b.purpose,
             'start_time': b.start.isoformat(), 'end_time': b.end.isoformat()}
            for b in booked
        ],
        'free_slots': [
            {'start_time': s['start'].isoformat(), 'end_time': s['end'].isoformat()}
            for s in slots
        ]
    })
