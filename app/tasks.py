import logging

from celery import shared_task

from app.extensions import db

logger = logging.getLogger(__name__)


@shared_task(name='notifications.deliver_notification', ignore_result=True)
def deliver_notification(job):
    """Deliver one fan-out job. Failures stay here and never reach the booking flow."""
    from app.services.delivery import NotificationDelivery

    try:
        NotificationDelivery.deliver(job)
    except Exception:
        db.session.rollback()
        logger.exception("Delivery of %s notification for booking %s to %s failed",
                         job.get('kind'), job.get('booking_id'), job.get('recipient', {}).get('email'))
        return False
    return True


@shared_task(name='bookings.send_booking_reminders', ignore_result=True)
def send_booking_reminders():
    """Periodic reminder tick, scheduled by beat."""
    from app.services.reminder_service import ReminderService

    count = ReminderService.send_due_reminders()
    logger.info("Reminder tick done, %d booking(s) reminded", count)
    return count
