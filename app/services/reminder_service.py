import logging
from datetime import datetime, timedelta

from flask import current_app

from app.extensions import db
from app.models import Booking
from app.models.booking import STATUS_CONFIRMED
from app.services.clock import BusinessClock
from app.services.notification_service import NotificationService, LifecycleEvent, KIND_REMINDER

logger = logging.getLogger(__name__)


class ReminderService:

    @staticmethod
    def due_bookings(now: datetime, lead_minutes: int):
        """Confirmed bookings starting within the look-ahead window and not yet reminded."""
        window_start = BusinessClock.to_storage(now)
        window_end = BusinessClock.to_storage(now + timedelta(minutes=lead_minutes))
        return Booking.query.filter(
            Booking.status == STATUS_CONFIRMED,
            Booking.start_time > window_start,
            Booking.start_time <= window_end,
            Booking.reminder_sent_at.is_(None)
        ).order_by(Booking.start_time).all()

    @staticmethod
    def claim(booking_id, now: datetime):
        """
        Mark the reminder as sent with a conditional update.

        Only one caller can flip the marker from NULL, so concurrent scheduler
        instances never both remind the same booking.
        """
        claimed = Booking.query.filter(
            Booking.id == booking_id,
            Booking.status == STATUS_CONFIRMED,
            Booking.reminder_sent_at.is_(None)
        ).update({Booking.reminder_sent_at: BusinessClock.to_storage(now)}, synchronize_session=False)
        db.session.commit()
        return claimed == 1

    @staticmethod
    def send_due_reminders(now: datetime = None, lead_minutes: int = None):
        """
        One tick of the scheduler. Returns how many bookings were reminded.

        Delivery is at most once: the claim commits before the reminder is
        emitted, so a crash in between drops that reminder instead of repeating it.
        """
        now = BusinessClock.as_utc(now) if now else BusinessClock.now()
        if lead_minutes is None:
            lead_minutes = current_app.config['REMINDER_LEAD_MINUTES']

        reminded = 0
        for booking in ReminderService.due_bookings(now, lead_minutes):
            booking_id = booking.id
            if not ReminderService.claim(booking_id, now):
                logger.debug("Reminder for booking %s already claimed", booking_id)
                continue
            booking = db.session.get(Booking, booking_id)
            NotificationService.emit(LifecycleEvent.from_booking(KIND_REMINDER, booking))
            reminded += 1

        if reminded:
            logger.info("Sent reminders for %d booking(s)", reminded)
        return reminded
