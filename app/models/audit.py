import logging

from app.extensions import db
from app.services.clock import utcnow

logger = logging.getLogger(__name__)


class AuditLog(db.Model):
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    actor_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True, index=True)
    action = db.Column(db.String(32), nullable=False)
    booking_id = db.Column(db.Integer, nullable=True, index=True)  # not a FK: survives hard deletes
    admin_initiated = db.Column(db.Boolean, default=False, nullable=False)
    details = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    @classmethod
    def log(cls, actor, action, booking_id, admin_initiated=False, details=None):
        """Stage an audit row in the current session; the caller's commit persists it."""
        entry = cls(
            actor_id=actor.id if actor else None,
            action=action,
            booking_id=booking_id,
            admin_initiated=admin_initiated,
            details=details or {}
        )
        db.session.add(entry)
        logger.info("audit action=%s booking=%s actor=%s admin=%s",
                    action, booking_id, entry.actor_id, admin_initiated)
        return entry
