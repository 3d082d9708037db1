"""
Notification service: records bid outcome notifications and manages read state
"""

import logging
from models import db, Notification
from utils.error_handling import NotFound, Forbidden

logger = logging.getLogger(__name__)


class NotificationService:
    """Service class for notification operations"""

    @staticmethod
    def notify(user_id, notification_type, message, bid_id=None):
        """Queue a notification on the current session.

        Nothing is written until the caller commits, so a notification is
        stored together with the bid transition that produced it or not at all.
        """
        notification = Notification(
            user_id=user_id,
            notification_type=notification_type,
            message=message,
            related_bid_id=bid_id,
        )
        db.session.add(notification)
        logger.debug(f"Queued '{notification_type}' notification for user {user_id}")
        return notification

    @staticmethod
    def list_for_user(user_id):
        return Notification.query.filter_by(user_id=user_id)\
            .order_by(Notification.created_at.desc(), Notification.id.desc()).all()

    @staticmethod
    def mark_read(notification_id, user_id):
        notification = db.session.get(Notification, notification_id)
        if not notification:
            raise NotFound('Notification not found')
        if notification.user_id != user_id:
            raise Forbidden('Unauthorized')

        notification.is_read = True
        db.session.commit()
        return notification

    @staticmethod
    def mark_all_read(user_id):
        """Mark every unread notification of the user as read; returns how many changed"""
        updated = Notification.query.filter_by(user_id=user_id, is_read=False)\
            .update({Notification.is_read: True}, synchronize_session=False)
        db.session.commit()
        return updated
