from app.extensions import db
from app.services.clock import utcnow, BusinessClock

class Notification(db.Model):
    """In-app inbox entry written by the delivery task for user recipients."""
    __tablename__ = 'notifications'
    __table_args__ = (
        db.Index('ix_notification_user_read_time', 'user_id', 'read', 'created_at'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    booking_id = db.Column(db.Integer, db.ForeignKey('bookings.id', ondelete='SET NULL'), nullable=True, index=True)
    kind = db.Column(db.String(32), nullable=False)
    message = db.Column(db.Text, nullable=False)
    read = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'booking_id': self.booking_id,
            'kind': self.kind,
            'message': self.message,
            'read': self.read,
            'created_at': BusinessClock.from_storage(self.created_at).isoformat()
        }
