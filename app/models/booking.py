from app.extensions import db
from app.services.clock import utcnow, BusinessClock

STATUS_CONFIRMED = 'confirmed'
STATUS_CANCELLED = 'cancelled'


def _iso(value):
    return BusinessClock.from_storage(value).isoformat() if value else None


class Booking(db.Model):
    __tablename__ = 'bookings'
    __table_args__ = (
        db.CheckConstraint('end_time > start_time', name='check_booking_interval_positive'),
        db.CheckConstraint("status IN ('confirmed', 'cancelled')", name='check_booking_status'),
        db.Index('ix_bookings_room_interval', 'room_id', 'start_time', 'end_time'),
    )

    id = db.Column(db.Integer, primary_key=True)
    organizer_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    room_id = db.Column(db.Integer, db.ForeignKey('rooms.id'), nullable=False)

    # Naive UTC instants, interval is [start_time, end_time)
    start_time = db.Column(db.DateTime, nullable=False, index=True)
    end_time = db.Column(db.DateTime, nullable=False, index=True)

    purpose = db.Column(db.String(200), nullable=False)
    notes = db.Column(db.Text, default='')
    status = db.Column(db.String(20), nullable=False, default=STATUS_CONFIRMED) # confirmed, cancelled

    cancelled_at = db.Column(db.DateTime)
    cancelled_by_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    reminder_sent_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=utcnow)
    modified_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    room = db.relationship('Room', lazy=True)
    organizer = db.relationship('User', foreign_keys=[organizer_id], lazy=True)
    attendee_links = db.relationship('BookingAttendee', backref='booking', lazy=True,
                                     cascade='all, delete-orphan', order_by='BookingAttendee.id')
    external_invitees = db.relationship('ExternalInvitee', backref='booking', lazy=True,
                                        cascade='all, delete-orphan', order_by='ExternalInvitee.id')

    @property
    def is_cancelled(self):
        return self.status == STATUS_CANCELLED

    @property
    def attendees(self):
        """Users currently attending (opted-out rows are kept for idempotency but excluded)."""
        return [link.user for link in self.attendee_links if link.opted_out_at is None]

    @property
    def attendee_ids(self):
        return [link.user_id for link in self.attendee_links if link.opted_out_at is None]

    def attendee_link(self, user_id):
        for link in self.attendee_links:
            if link.user_id == user_id:
                return link
        return None

    def to_dict(self):
        return {
            'id': self.id,
            'organizer_id': self.organizer_id,
            'room_id': self.room_id,
            'start_time': _iso(self.start_time),
            'end_time': _iso(self.end_time),
            'purpose': self.purpose,
            'notes': self.notes or '',
            'attendees': self.attendee_ids,
            'external_invitees': [i.to_dict() for i in self.external_invitees],
            'status': self.status,
            'cancelled_at': _iso(self.cancelled_at),
            'created_at': _iso(self.created_at),
            'modified_at': _iso(self.modified_at)
        }


class BookingAttendee(db.Model):
    __tablename__ = 'booking_attendees'
    __table_args__ = (db.UniqueConstraint('booking_id', 'user_id', name='uq_booking_attendee'),)

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    added_at = db.Column(db.DateTime, default=utcnow)
    opted_out_at = db.Column(db.DateTime)

    user = db.relationship('User', lazy=True)


class ExternalInvitee(db.Model):
    __tablename__ = 'external_invitees'
    __table_args__ = (db.UniqueConstraint('booking_id', 'email', name='uq_booking_external_invitee'),)

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False, index=True)
    email = db.Column(db.String(120), nullable=False)
    name = db.Column(db.String(100))

    def to_dict(self):
        return {'email': self.email, 'name': self.name}
