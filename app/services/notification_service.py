import logging
from collections import namedtuple
from dataclasses import dataclass, field

from app.services.clock import BusinessClock

logger = logging.getLogger(__name__)

KIND_CREATED = 'created'
KIND_CANCELLED = 'cancelled'
KIND_REMINDER = 'reminder'
KIND_OPT_OUT = 'opt-out-notice'

Recipient = namedtuple('Recipient', ['user_id', 'email', 'name'])


@dataclass
class LifecycleEvent:
    """What happened to a booking, with everyone who could be told about it."""
    kind: str
    booking_id: int
    organizer: Recipient
    attendees: list = field(default_factory=list)
    external_invitees: list = field(default_factory=list)
    payload: dict = field(default_factory=dict)

    @classmethod
    def from_booking(cls, kind, booking, actor=None, **extra):
        organizer = booking.organizer
        payload = {
            'purpose': booking.purpose,
            'room_name': booking.room.name if booking.room else None,
            'room_location': booking.room.location if booking.room else None,
            'start_time': BusinessClock.from_storage(booking.start_time).isoformat(),
            'end_time': BusinessClock.from_storage(booking.end_time).isoformat(),
            'organizer_id': organizer.id,
            'organizer_name': organizer.display_name,
            'notes': booking.notes or '',
        }
        if actor is not None:
            payload['actor_name'] = actor.display_name
        payload.update(extra)
        return cls(
            kind=kind,
            booking_id=booking.id,
            organizer=Recipient(organizer.id, organizer.email, organizer.display_name),
            attendees=[Recipient(u.id, u.email, u.display_name) for u in booking.attendees],
            external_invitees=[Recipient(None, i.email, i.name) for i in booking.external_invitees],
            payload=payload
        )


@dataclass
class NotificationJob:
    recipient: Recipient
    booking_id: int
    kind: str
    payload: dict

    def to_dict(self):
        return {
            'recipient': self.recipient._asdict(),
            'booking_id': self.booking_id,
            'kind': self.kind,
            'payload': dict(self.payload)
        }


class NotificationService:

    @staticmethod
    def recipients_for(event: LifecycleEvent):
        if event.kind == KIND_OPT_OUT:
            candidates = [event.organizer]
        elif event.kind == KIND_REMINDER:
            candidates = list(event.attendees)
        elif event.kind in (KIND_CREATED, KIND_CANCELLED):
            candidates = [event.organizer] + list(event.attendees) + list(event.external_invitees)
        else:
            raise ValueError(f"Unknown lifecycle event kind: {event.kind}")

        # Organizer is also an attendee; external invitees are keyed by address
        seen = set()
        recipients = []
        for recipient in candidates:
            key = ('user', recipient.user_id) if recipient.user_id is not None else ('email', recipient.email.lower())
            if key in seen:
                continue
            seen.add(key)
            recipients.append(recipient)
        return recipients

    @staticmethod
    def fan_out(event: LifecycleEvent):
        """Translate one lifecycle event into one job per recipient. No side effects."""
        return [
            NotificationJob(recipient=r, booking_id=event.booking_id, kind=event.kind, payload=event.payload)
            for r in NotificationService.recipients_for(event)
        ]

    @staticmethod
    def dispatch(jobs):
        """
        Hand each job to the delivery task and return without waiting on delivery.

        Best effort per recipient: a job that cannot be enqueued is logged and
        skipped, and the others still go out. Returns the number enqueued.
        """
        from app.tasks import deliver_notification

        sent = 0
        for job in jobs:
            try:
                deliver_notification.delay(job.to_dict())
                sent += 1
            except Exception:
                logger.exception("Could not enqueue %s notification for booking %s to %s",
                                 job.kind, job.booking_id, job.recipient.email)
        return sent

    @staticmethod
    def emit(event: LifecycleEvent):
        jobs = NotificationService.fan_out(event)
        sent = NotificationService.dispatch(jobs)
        logger.info("Fan-out %s for booking %s: %d/%d jobs enqueued",
                    event.kind, event.booking_id, sent, len(jobs))
        return jobs
