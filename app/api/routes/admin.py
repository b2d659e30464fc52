from flask import Blueprint, request, jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError
from app.utils.decorators import token_required, admin_required
from app.models import Room, Booking
from app.extensions import db

admin_bp = Blueprint('admin', __name__)

ROOM_FIELDS = ('name', 'capacity', 'location', 'amenities', 'description', 'is_active')


def _validate_room(data, partial=False):
    if not isinstance(data, dict):
        return 'Request body must be a JSON object'
    if not partial or 'name' in data:
        name = data.get('name')
        if not isinstance(name, str) or not 2 <= len(name.strip()) <= 100:
            return 'Name must be between 2 and 100 characters'
    if not partial or 'capacity' in data:
        capacity = data.get('capacity')
        if not isinstance(capacity, int) or isinstance(capacity, bool) or not 1 <= capacity <= 500:
            return 'Capacity must be a number between 1 and 500'
    if 'amenities' in data and not isinstance(data['amenities'], list):
        return 'Amenities must be an array'
    return None


# --- ROOMS MANAGEMENT ---

@admin_bp.route('/rooms', methods=['GET'])
@token_required
@admin_required
def get_rooms(current_user):
    rooms = Room.query.order_by(Room.name).all()
    return jsonify([r.to_dict() for r in rooms]), 200

@admin_bp.route('/rooms', methods=['POST'])
@token_required
@admin_required
def create_room(current_user):
    data = request.get_json(silent=True) or {}
    error = _validate_room(data)
    if error:
        return jsonify({'message': error}), 400
    if Room.query.filter_by(name=data['name'].strip()).first():
        return jsonify({'message': 'Room name already exists'}), 400

    new_room = Room(
        name=data['name'].strip(),
        capacity=data['capacity'],
        location=data.get('location'),
        amenities=data.get('amenities', []),
        description=data.get('description'),
        is_active=data.get('is_active', True)
    )
    db.session.add(new_room)
    db.session.commit()
    current_app.logger.info("Room %s created by admin %s", new_room.id, current_user.id)
    return jsonify({'message': 'Room created', 'room': new_room.to_dict()}), 201

@admin_bp.route('/rooms/<int:room_id>', methods=['PUT'])
@token_required
@admin_required
def update_room(current_user, room_id):
    room = db.session.get(Room, room_id)
    if not room:
        return jsonify({'message': 'Room not found'}), 404

    data = request.get_json(silent=True) or {}
    error = _validate_room(data, partial=True)
    if error:
        return jsonify({'message': error}), 400
    for field in ROOM_FIELDS:
        if field in data:
            setattr(room, field, data[field].strip() if field == 'name' else data[field])

    db.session.commit()
    return jsonify({'message': 'Room updated', 'room': room.to_dict()}), 200

@admin_bp.route('/rooms/<int:room_id>', methods=['DELETE'])
@token_required
@admin_required
def delete_room(current_user, room_id):
    room = db.session.get(Room, room_id)
    if not room:
        return jsonify({'message': 'Room not found'}), 404

    # Rooms with booking history are deactivated instead
    if Booking.query.filter_by(room_id=room_id).first():
        return jsonify({'message': 'Cannot delete room with bookings, deactivate it instead'}), 400
    try:
        db.session.delete(room)
        db.session.commit()
        return jsonify({'message': 'Room deleted'}), 200
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Error deleting room {room_id}: {e}")
        return jsonify({'message': 'Cannot delete room', 'error': str(e)}), 400
