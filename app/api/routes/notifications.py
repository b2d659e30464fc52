from flask import Blueprint, jsonify
from app.extensions import db
from app.models import Notification
from app.utils.decorators import token_required

notifications_bp = Blueprint('notifications', __name__)

@notifications_bp.route('/', methods=['GET'])
@token_required
def get_notifications(current_user):
    notifications = Notification.query.filter_by(user_id=current_user.id) \
        .order_by(Notification.created_at.desc(), Notification.id.desc()).all()
    return jsonify([n.to_dict() for n in notifications])

@notifications_bp.route('/<int:notification_id>/read', methods=['PATCH'])
@token_required
def mark_notification_read(current_user, notification_id):
    notification = Notification.query.filter_by(id=notification_id, user_id=current_user.id).first()
    if not notification:
        return jsonify({'message': 'Notification not found'}), 404
    notification.read = True
    db.session.commit()
    return jsonify(notification.to_dict())

@notifications_bp.route('/<int:notification_id>', methods=['DELETE'])
@token_required
def delete_notification(current_user, notification_id):
    notification = Notification.query.filter_by(id=notification_id, user_id=current_user.id).first()
    if not notification:
        return jsonify({'message': 'Notification not found'}), 404
    db.session.delete(notification)
    db.session.commit()
    return jsonify({'message': 'Notification deleted'})

@notifications_bp.route('/', methods=['DELETE'])
@token_required
def delete_all_notifications(current_user):
    Notification.query.filter_by(user_id=current_user.id).delete()
    db.session.commit()
    return jsonify({'message': 'All notifications deleted'})
