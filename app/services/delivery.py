import logging
from datetime import datetime

from flask import current_app
from flask_mail import Message

from app.extensions import db, mail
from app.models import Notification
from app.services.clock import BusinessClock
from app.services.notification_service import KIND_CREATED, KIND_CANCELLED, KIND_REMINDER, KIND_OPT_OUT

logger = logging.getLogger(__name__)

SUBJECTS = {
    KIND_CREATED: 'Meeting Invitation: {purpose}',
    KIND_CANCELLED: 'Meeting Cancelled: {purpose}',
    KIND_REMINDER: 'Meeting Reminder: {purpose}',
    KIND_OPT_OUT: 'Attendee Opted Out: {purpose}',
}


class NotificationDelivery:
    """Delivery side of a notification job: in-app inbox row plus e-mail."""

    @staticmethod
    def local_time(iso_value):
        clock = BusinessClock.from_config(current_app.config)
        local = BusinessClock.as_utc(datetime.fromisoformat(iso_value)).astimezone(clock.tz)
        return local.strftime('%A %d %B %Y %H:%M')

    @staticmethod
    def render_message(job):
        payload = job['payload']
        recipient = job['recipient']
        kind = job['kind']
        room = payload.get('room_name') or 'the boardroom'
        purpose = payload.get('purpose', '')
        when = NotificationDelivery.local_time(payload['start_time'])

        if kind == KIND_CREATED:
            if recipient.get('user_id') is not None and recipient.get('user_id') == payload.get('organizer_id'):
                return f'Your booking "{purpose}" in {room} on {when} is confirmed'
            return f'You have been invited to "{purpose}" in {room} on {when}'
        if kind == KIND_CANCELLED:
            return f'Meeting "{purpose}" in {room} on {when} has been cancelled'
        if kind == KIND_OPT_OUT:
            who = payload.get('actor_name', 'An attendee')
            return f'{who} opted out of your meeting "{purpose}" in {room} on {when}'
        if kind == KIND_REMINDER:
            return f'Reminder: "{purpose}" in {room} starts at {when}'
        raise ValueError(f"Unknown notification kind: {kind}")

    @staticmethod
    def send_email(to_address, subject, body):
        config = current_app.config
        if not config.get('MAIL_SERVER'):
            logger.info("Mail disabled, would send '%s' to %s", subject, to_address)
            return False

        mail.send(Message(subject=subject, recipients=[to_address], body=body,
                          sender=config['MAIL_DEFAULT_SENDER']))
        return True

    @staticmethod
    def deliver(job):
        recipient = job['recipient']
        message = NotificationDelivery.render_message(job)

        if recipient.get('user_id') is not None:
            db.session.add(Notification(
                user_id=recipient['user_id'],
                booking_id=job['booking_id'],
                kind=job['kind'],
                message=message
            ))
            db.session.commit()

        if recipient.get('email'):
            subject = SUBJECTS[job['kind']].format(purpose=job['payload'].get('purpose', ''))
            body = f"Hello {recipient.get('name') or recipient['email']},\n\n{message}.\n\nBoardroom Booking System"
            NotificationDelivery.send_email(recipient['email'], subject, body)
        return message
