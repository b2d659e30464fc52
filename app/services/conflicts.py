import logging
import threading
from contextlib import contextmanager, ExitStack
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from app.extensions import db
from app.errors import BookingRejected, RejectionReason, ValidationError
from app.models import Room
from app.models.booking import STATUS_CONFIRMED
from app.services.availability import AvailabilityIndex
from app.services.clock import BusinessClock

logger = logging.getLogger(__name__)


class RoomLocks:
    """
    One lock per room id, created on demand.

    The registry mutex is only held while looking a lock up, so operations
    on different rooms never wait on each other.
    """
    _registry_lock = threading.Lock()
    _locks = {}

    @classmethod
    def get(cls, room_id):
        with cls._registry_lock:
            lock = cls._locks.get(room_id)
            if lock is None:
                lock = cls._locks[room_id] = threading.Lock()
            return lock

    @classmethod
    @contextmanager
    def hold(cls, *room_ids):
        # Sorted acquisition so a room change in an update cannot deadlock
        with ExitStack() as stack:
            for room_id in sorted(set(room_ids)):
                stack.enter_context(cls.get(room_id))
            yield


class ConflictResolver:
    """Decides whether a reservation may be committed, atomically per room."""

    @staticmethod
    def validate_interval(start: datetime, end: datetime, now: datetime = None, clock: BusinessClock = None):
        """Checks that do not need storage: past start, working hours, minimum duration."""
        config = current_app.config
        clock = clock or BusinessClock.from_config(config)
        now = BusinessClock.as_utc(now) if now else BusinessClock.now()
        start, end = BusinessClock.as_utc(start), BusinessClock.as_utc(end)

        if end <= start:
            raise ValidationError("End time must be after start time.")
        if start <= now:
            raise BookingRejected(RejectionReason.PAST_START)
        if config['ENFORCE_WORKING_HOURS'] and not clock.interval_within_working_hours(start, end):
            raise BookingRejected(RejectionReason.OUTSIDE_WORKING_HOURS)
        if end - start < timedelta(minutes=config['MIN_BOOKING_MINUTES']):
            raise BookingRejected(RejectionReason.TOO_SHORT)

    @staticmethod
    def lock_room(room_id):
        """
        Re-read the room inside the critical section, row-locked where the database supports it.

        SQLite has no row locks; there the transaction already holds the
        database write lock (BEGIN IMMEDIATE), which covers other processes.
        """
        room = db.session.query(Room).filter(Room.id == room_id).with_for_update().first()
        if room is None or not room.is_active:
            raise BookingRejected(RejectionReason.ROOM_INACTIVE)
        return room

    @staticmethod
    def check_free(room_id, start, end, exclude_booking_id=None):
        blocking = AvailabilityIndex.first_overlap(room_id, start, end, exclude_booking_id)
        if blocking is not None:
            logger.info("Conflict on room %s for %s-%s, blocked by booking %s",
                        room_id, start.isoformat(), end.isoformat(), blocking.booking_id)
            raise BookingRejected(RejectionReason.CONFLICT, blocking=blocking)

    @staticmethod
    def try_reserve(room_id, start: datetime, end: datetime, draft, now: datetime = None, on_commit=None):
        """
        Check-and-insert a new confirmed booking on a room.

        `draft` is an unsaved Booking carrying everything but room and interval.
        `on_commit(booking)` may stage extra rows (audit) in the same transaction.
        Raises BookingRejected; never retries.
        """
        ConflictResolver.validate_interval(start, end, now)

        with RoomLocks.hold(room_id):
            try:
                ConflictResolver.lock_room(room_id)
                ConflictResolver.check_free(room_id, start, end)

                draft.room_id = room_id
                draft.start_time = BusinessClock.to_storage(start)
                draft.end_time = BusinessClock.to_storage(end)
                draft.status = STATUS_CONFIRMED
                db.session.add(draft)
                db.session.flush()
                if on_commit is not None:
                    on_commit(draft)
                db.session.commit()
            except (BookingRejected, SQLAlchemyError):
                db.session.rollback()
                raise

        logger.info("Reserved room %s for %s-%s as booking %s",
                    room_id, start.isoformat(), end.isoformat(), draft.id)
        return draft
