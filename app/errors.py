"""Error kinds raised by the booking core and mapped to HTTP answers by the blueprints."""


class BookingError(Exception):
    status_code = 400
    error = 'booking_error'

    def __init__(self, message=None):
        super().__init__(message or self.__doc__)
        self.message = message or self.__doc__

    def to_dict(self):
        return {'error': self.error, 'message': self.message}


class ValidationError(BookingError):
    """Invalid booking request."""
    error = 'validation_error'


class BookingNotFound(BookingError):
    """Booking not found."""
    status_code = 404
    error = 'not_found'


class NotAuthorizedForOperation(BookingError):
    """You are not allowed to perform this operation on this booking."""
    status_code = 403
    error = 'not_authorized'


class NotAnAttendee(NotAuthorizedForOperation):
    """You are not an attendee of this booking."""


class OrganizerCannotOptOut(BookingError):
    """As the organizer, you cannot opt out. Please cancel the booking instead."""
    error = 'organizer_cannot_opt_out'


class BookingAlreadyCancelled(BookingError):
    """Booking is cancelled and can no longer be changed."""
    status_code = 409
    error = 'booking_cancelled'


class RejectionReason:
    PAST_START = 'pastStart'
    OUTSIDE_WORKING_HOURS = 'outsideWorkingHours'
    TOO_SHORT = 'tooShort'
    CONFLICT = 'conflict'
    ROOM_INACTIVE = 'roomInactive'


REJECTION_MESSAGES = {
    RejectionReason.PAST_START: 'start time must be in the future',
    RejectionReason.OUTSIDE_WORKING_HOURS: 'outside business hours',
    RejectionReason.TOO_SHORT: 'minimum duration not met',
    RejectionReason.CONFLICT: 'slot already booked',
    RejectionReason.ROOM_INACTIVE: 'room not available',
}


class BookingRejected(BookingError):
    """
    The reservation request was refused.

    Conflicts are an expected outcome; `blocking` carries the interval that
    won the slot so the caller can explain the refusal.
    """
    error = 'booking_rejected'

    def __init__(self, reason, blocking=None):
        super().__init__(REJECTION_MESSAGES[reason])
        self.reason = reason
        self.blocking = blocking

    def to_dict(self):
        data = super().to_dict()
        data['reason'] = self.reason
        if self.blocking is not None:
            data['conflictingBooking'] = {
                'id': self.blocking.booking_id,
                'purpose': self.blocking.purpose,
                'start_time': self.blocking.start.isoformat(),
                'end_time': self.blocking.end.isoformat(),
            }
        return data
