from flask import Blueprint, jsonify
from flask_login import login_required, current_user
from utils.notification_service import NotificationService

notifications_bp = Blueprint('notifications', __name__)


@notifications_bp.route('')
@login_required
def list_notifications():
    notifications = NotificationService.list_for_user(current_user.id)
    return jsonify({
        'success': True,
        'notifications': [n.to_dict() for n in notifications],
        'unread_count': sum(1 for n in notifications if not n.is_read)
    })


@notifications_bp.route('/<int:notification_id>/read', methods=['PUT'])
@login_required
def mark_read(notification_id):
    notification = NotificationService.mark_read(notification_id, current_user.id)
    return jsonify({'success': True, 'notification': notification.to_dict()})


@notifications_bp.route('/read-all', methods=['PUT'])
@login_required
def mark_all_read():
    updated = NotificationService.mark_all_read(current_user.id)
    return jsonify({'success': True, 'updated': updated})
