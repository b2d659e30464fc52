from collections import namedtuple
from datetime import date, datetime, timedelta

from flask import current_app

from app.models import Booking
from app.models.booking import STATUS_CONFIRMED
from app.services.clock import BusinessClock

BookedInterval = namedtuple('BookedInterval', ['booking_id', 'start', 'end', 'purpose'])


class AvailabilityIndex:
    """
    Time-ordered view of confirmed bookings per room.

    This is a read pattern over the bookings table, not a cache: every call
    goes to storage so it can never be stale. Returned instants are aware UTC.
    """

    @staticmethod
    def _confirmed_overlapping(room_id, window_start, window_end, exclude_booking_id=None):
        # Overlap on half-open intervals: (StartA < EndB) and (StartB < EndA)
        query = Booking.query.filter(
            Booking.room_id == room_id,
            Booking.status == STATUS_CONFIRMED,
            Booking.start_time < BusinessClock.to_storage(window_end),
            Booking.end_time > BusinessClock.to_storage(window_start)
        )
        if exclude_booking_id is not None:
            query = query.filter(Booking.id != exclude_booking_id)
        return query.order_by(Booking.start_time, Booking.id)

    @staticmethod
    def _to_interval(booking):
        return BookedInterval(
            booking.id,
            BusinessClock.from_storage(booking.start_time),
            BusinessClock.from_storage(booking.end_time),
            booking.purpose
        )

    @staticmethod
    def query(room_id, window_start: datetime, window_end: datetime, exclude_booking_id=None):
        """Confirmed bookings on the room intersecting the window, ordered by start."""
        bookings = AvailabilityIndex._confirmed_overlapping(
            room_id, window_start, window_end, exclude_booking_id).all()
        return [AvailabilityIndex._to_interval(b) for b in bookings]

    @staticmethod
    def first_overlap(room_id, start: datetime, end: datetime, exclude_booking_id=None):
        booking = AvailabilityIndex._confirmed_overlapping(
            room_id, start, end, exclude_booking_id).first()
        return AvailabilityIndex._to_interval(booking) if booking else None

    @staticmethod
    def day_schedule(room_id, day: date, clock: BusinessClock = None):
        """Confirmed bookings touching the business-local calendar day."""
        clock = clock or BusinessClock.from_config(current_app.config)
        day_start = clock.to_instant(day, 0)
        day_end = clock.to_instant(day + timedelta(days=1), 0)
        return AvailabilityIndex.query(room_id, day_start, day_end)

    @staticmethod
    def free_slots(room_id, day: date, now: datetime = None, clock: BusinessClock = None, slot_minutes=None):
        """
        Bookable slots for a business-local day.

        The complement of booked intervals within working hours, cut into
        `slot_minutes` pieces aligned on opening time. Slots that have already
        started are left out.
        """
        clock = clock or BusinessClock.from_config(current_app.config)
        slot_minutes = slot_minutes or current_app.config['SLOT_MINUTES']
        now = BusinessClock.as_utc(now) if now else BusinessClock.now()

        opening, closing = clock.day_window(day)
        booked = AvailabilityIndex.query(room_id, opening, closing)
        step = timedelta(minutes=slot_minutes)

        slots = []
        cursor = opening
        i = 0
        while cursor + step <= closing:
            slot_end = cursor + step
            if cursor > now:
                # booked is sorted by start, so skip past anything that ended already
                while i < len(booked) and booked[i].end <= cursor:
                    i += 1
                if not (i < len(booked) and booked[i].start < slot_end):
                    slots.append({'start': cursor, 'end': slot_end})
            cursor = slot_end
        return slots
