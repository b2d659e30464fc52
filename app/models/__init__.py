from app.models.user import User
from app.models.room import Room
from app.models.booking import Booking, BookingAttendee, ExternalInvitee
from app.models.notification import Notification
from app.models.audit import AuditLog

__all__ = ['User', 'Room', 'Booking', 'BookingAttendee', 'ExternalInvitee', 'Notification', 'AuditLog']
