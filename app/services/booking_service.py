import logging
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from app.extensions import db
from app.errors import (
    BookingNotFound, BookingAlreadyCancelled, NotAuthorizedForOperation,
    NotAnAttendee, OrganizerCannotOptOut, ValidationError
)
from app.models import User, Room, Booking, BookingAttendee, ExternalInvitee, AuditLog
from app.models.booking import STATUS_CANCELLED
from app.services.clock import BusinessClock, utcnow
from app.services.conflicts import ConflictResolver, RoomLocks
from app.services.notification_service import (
    NotificationService, LifecycleEvent, KIND_CREATED, KIND_CANCELLED, KIND_OPT_OUT
)

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {'room_id', 'start_time', 'end_time', 'purpose', 'notes'}


class BookingService:
    """
    Lifecycle of a single booking: create, opt-out, cancel, update, delete.

    All changes to the bookings table go through here (and the ConflictResolver
    it delegates to). Notifications are emitted only after the commit, so a
    delivery problem can never undo a booking.
    """

    @staticmethod
    def _validate_text(purpose, notes):
        if not isinstance(purpose or '', str) or not isinstance(notes or '', str):
            raise ValidationError("Purpose and notes must be text.")
        purpose = (purpose or '').strip()
        if not 2 <= len(purpose) <= 200:
            raise ValidationError("Purpose must be between 2 and 200 characters.")
        notes = (notes or '').strip()
        if len(notes) > 1000:
            raise ValidationError("Notes cannot exceed 1000 characters.")
        return purpose, notes

    @staticmethod
    def _resolve_attendees(organizer, attendee_ids):
        """Existing users, organizer included, duplicates collapsed, order kept."""
        if attendee_ids is None:
            attendee_ids = []
        if not isinstance(attendee_ids, (list, tuple)):
            raise ValidationError("Attendees must be a list of user ids.")

        ids = []
        for user_id in [organizer.id] + list(attendee_ids):
            if not isinstance(user_id, int) or isinstance(user_id, bool):
                raise ValidationError(f"Invalid attendee id: {user_id!r}")
            if user_id not in ids:
                ids.append(user_id)

        found = {u.id for u in User.query.filter(User.id.in_(ids)).all()}
        missing = [i for i in ids if i not in found]
        if missing:
            raise ValidationError(f"Unknown attendee(s): {missing}")
        # The organizer counts, so the set can never be empty
        return ids

    @staticmethod
    def _resolve_external_invitees(external_invitees):
        if external_invitees is None:
            external_invitees = []
        if not isinstance(external_invitees, (list, tuple)):
            raise ValidationError("External invitees must be a list.")

        invitees = []
        seen = set()
        for item in external_invitees:
            if isinstance(item, str):
                item = {'email': item}
            if not isinstance(item, dict) or not isinstance(item.get('email') or '', str) \
                    or not isinstance(item.get('name') or '', str):
                raise ValidationError(f"Invalid external invitee: {item!r}")
            email = (item.get('email') or '').strip().lower()
            if '@' not in email or email.startswith('@') or email.endswith('@'):
                raise ValidationError(f"Invalid external invitee email: {item.get('email')!r}")
            if email in seen:
                continue
            seen.add(email)
            name = (item.get('name') or '').strip() or email.split('@')[0]
            invitees.append((email, name))
        return invitees

    @staticmethod
    def _load(booking_id):
        booking = db.session.get(Booking, booking_id)
        if booking is None:
            raise BookingNotFound()
        return booking

    @staticmethod
    def _room_id_of(booking_id):
        row = db.session.query(Booking.room_id).filter(Booking.id == booking_id).first()
        if row is None:
            raise BookingNotFound()
        return row.room_id

    @staticmethod
    @contextmanager
    def _locked(booking_id, *other_room_ids):
        """
        Hold the booking's room lock (plus any extra rooms) and yield a fresh copy of it.

        Everything that mutates one booking runs in here, so operations on the
        same booking serialise.
        """
        while True:
            room_id = BookingService._room_id_of(booking_id)
            with RoomLocks.hold(room_id, *other_room_ids):
                # Drop whatever this session cached before the lock was taken
                db.session.expire_all()
                booking = BookingService._load(booking_id)
                if booking.room_id == room_id:
                    yield booking
                    return
            # Moved to another room meanwhile, lock that one instead

    @staticmethod
    def _can_manage(booking, actor):
        return actor.id == booking.organizer_id or actor.is_admin

    @staticmethod
    def create(organizer, room_id, start_time: datetime, end_time: datetime, purpose,
               attendee_ids=None, external_invitees=None, notes=None, now=None):
        """Reserve a room. Returns the confirmed Booking or raises BookingRejected/ValidationError."""
        purpose, notes = BookingService._validate_text(purpose, notes)
        ids = BookingService._resolve_attendees(organizer, attendee_ids)
        invitees = BookingService._resolve_external_invitees(external_invitees)

        room = db.session.get(Room, room_id)
        if room is not None and len(ids) + len(invitees) > room.capacity:
            raise ValidationError(
                f"Room capacity error: Room holds {room.capacity}, requested {len(ids) + len(invitees)}.")

        draft = Booking(organizer_id=organizer.id, purpose=purpose, notes=notes)
        draft.attendee_links = [BookingAttendee(user_id=i) for i in ids]
        draft.external_invitees = [ExternalInvitee(email=e, name=n) for e, n in invitees]

        def audit(booking):
            AuditLog.log(organizer, 'create', booking.id, details={'room_id': room_id})

        booking = ConflictResolver.try_reserve(room_id, start_time, end_time, draft, now=now, on_commit=audit)
        NotificationService.emit(LifecycleEvent.from_booking(KIND_CREATED, booking, actor=organizer))
        return booking

    @staticmethod
    def opt_out(booking_id, user):
        """
        Remove an attendee (not the organizer) from a booking.

        Repeating the call, or calling it on a cancelled booking, changes
        nothing and succeeds.
        """
        with BookingService._locked(booking_id) as booking:
            if booking.organizer_id == user.id:
                raise OrganizerCannotOptOut()
            link = booking.attendee_link(user.id)
            if link is None:
                raise NotAnAttendee()
            if booking.is_cancelled or link.opted_out_at is not None:
                return booking

            link.opted_out_at = utcnow()
            booking.modified_at = link.opted_out_at
            AuditLog.log(user, 'opt_out', booking.id)
            try:
                db.session.commit()
            except SQLAlchemyError:
                db.session.rollback()
                raise

        logger.info("User %s opted out of booking %s", user.id, booking_id)
        NotificationService.emit(LifecycleEvent.from_booking(KIND_OPT_OUT, booking, actor=user))
        return booking

    @staticmethod
    def cancel(booking_id, actor):
        """Soft, notified termination by the organizer or an admin. Idempotent."""
        with BookingService._locked(booking_id) as booking:
            if not BookingService._can_manage(booking, actor):
                raise NotAuthorizedForOperation()
            if booking.is_cancelled:
                return booking

            admin_initiated = actor.id != booking.organizer_id
            booking.status = STATUS_CANCELLED
            booking.cancelled_at = utcnow()
            booking.modified_at = booking.cancelled_at
            booking.cancelled_by_id = actor.id
            AuditLog.log(actor, 'cancel', booking.id, admin_initiated=admin_initiated)
            try:
                db.session.commit()
            except SQLAlchemyError:
                db.session.rollback()
                raise

        logger.info("Booking %s cancelled by user %s (admin=%s)", booking_id, actor.id, admin_initiated)
        NotificationService.emit(LifecycleEvent.from_booking(KIND_CANCELLED, booking, actor=actor))
        return booking

    @staticmethod
    def update(booking_id, actor, fields, now=None):
        """
        Organizer-only edit. Moving the booking (room or interval) re-runs the
        full reservation check against every other confirmed booking; a change
        to purpose or notes alone does not.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update field(s): {sorted(unknown)}")
        target_room = fields.get('room_id')
        extra_rooms = (target_room,) if target_room else ()

        with BookingService._locked(booking_id, *extra_rooms) as booking:
            if booking.organizer_id != actor.id:
                raise NotAuthorizedForOperation("Only the organizer can update this booking.")
            if booking.is_cancelled:
                raise BookingAlreadyCancelled()

            purpose, notes = BookingService._validate_text(
                fields.get('purpose', booking.purpose), fields.get('notes', booking.notes))

            room_id = target_room or booking.room_id
            current_start = BusinessClock.from_storage(booking.start_time)
            current_end = BusinessClock.from_storage(booking.end_time)
            start = BusinessClock.as_utc(fields.get('start_time') or current_start)
            end = BusinessClock.as_utc(fields.get('end_time') or current_end)
            moved = room_id != booking.room_id or start != current_start or end != current_end

            try:
                if moved:
                    ConflictResolver.validate_interval(start, end, now)
                    room = ConflictResolver.lock_room(room_id)
                    headcount = len(booking.attendee_ids) + len(booking.external_invitees)
                    if headcount > room.capacity:
                        raise ValidationError(
                            f"Room capacity error: Room holds {room.capacity}, requested {headcount}.")
                    ConflictResolver.check_free(room_id, start, end, exclude_booking_id=booking.id)
                    booking.room_id = room_id
                    booking.start_time = BusinessClock.to_storage(start)
                    booking.end_time = BusinessClock.to_storage(end)
                    booking.reminder_sent_at = None

                booking.purpose = purpose
                booking.notes = notes
                AuditLog.log(actor, 'update', booking.id, details={
                    'fields': sorted(fields), 'moved': moved, 'room_id': room_id})
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise

        logger.info("Booking %s updated by user %s (moved=%s)", booking_id, actor.id, moved)
        return booking

    @staticmethod
    def delete(booking_id, actor):
        """Hard delete by the organizer or an admin. No notification is sent."""
        with BookingService._locked(booking_id) as booking:
            if not BookingService._can_manage(booking, actor):
                raise NotAuthorizedForOperation()

            admin_initiated = actor.id != booking.organizer_id
            AuditLog.log(actor, 'delete', booking.id, admin_initiated=admin_initiated, details={
                'room_id': booking.room_id,
                'start_time': BusinessClock.from_storage(booking.start_time).isoformat(),
                'end_time': BusinessClock.from_storage(booking.end_time).isoformat(),
                'status': booking.status
            })
            db.session.delete(booking)
            try:
                db.session.commit()
            except SQLAlchemyError:
                db.session.rollback()
                raise

        logger.info("Booking %s deleted by user %s (admin=%s)", booking_id, actor.id, admin_initiated)
        return True

    @staticmethod
    def get_booking(booking_id):
        return BookingService._load(booking_id)

    @staticmethod
    def get_user_bookings(user_id):
        """Bookings the user currently attends, most recent start first."""
        return Booking.query.join(BookingAttendee).filter(
            BookingAttendee.user_id == user_id,
            BookingAttendee.opted_out_at.is_(None)
        ).order_by(Booking.start_time.desc()).all()

    @staticmethod
    def get_all_bookings(status=None, room_id=None, page=1, limit=1000):
        query = Booking.query
        if status:
            query = query.filter(Booking.status == status)
        if room_id:
            query = query.filter(Booking.room_id == room_id)
        return query.order_by(Booking.start_time.desc()).limit(limit).offset((page - 1) * limit).all()
