"""
Two-person conversations and their messages
"""

import logging
from datetime import datetime
from models import db, Conversation, Message, User, conversation_participants
from utils.error_handling import ValidationError, NotFound, Forbidden

logger = logging.getLogger(__name__)


class ConversationService:
    """Service class for conversation operations"""

    @staticmethod
    def find_between(user_ids):
        """Conversation whose participant set is exactly user_ids, or None"""
        wanted = set(user_ids)
        candidate_ids = db.select(conversation_participants.c.conversation_id)\
            .where(conversation_participants.c.user_id.in_(wanted))\
            .group_by(conversation_participants.c.conversation_id)\
            .having(db.func.count() == len(wanted))
        for conversation in Conversation.query.filter(Conversation.id.in_(candidate_ids)).all():
            if {p.id for p in conversation.participants} == wanted:
                return conversation
        return None

    @staticmethod
    def create_or_get(participant_ids):
        """Idempotent: the same unordered pair always maps to one conversation"""
        participants = User.query.filter(User.id.in_(set(participant_ids))).all()
        if len(participants) != 2:
            raise ValidationError('Both participants must be existing users',
                                  errors={'participants': ['Both participants must be existing users']})

        conversation = ConversationService.find_between(participant_ids)
        if conversation:
            return conversation, False

        conversation = Conversation(participants=participants)
        db.session.add(conversation)
        db.session.commit()
        logger.info(f"Conversation {conversation.id} created between users {sorted(participant_ids)}")
        return conversation, True

    @staticmethod
    def list_for_user(user):
        return Conversation.query\
            .filter(Conversation.participants.any(User.id == user.id))\
            .order_by(Conversation.updated_at.desc(), Conversation.id.desc()).all()

    @staticmethod
    def get_for_participant(conversation_id, user):
        conversation = db.session.get(Conversation, conversation_id)
        if not conversation:
            raise NotFound('Conversation not found')
        if not conversation.has_participant(user.id):
            raise Forbidden('Access denied')
        return conversation

    @staticmethod
    def send_message(conversation_id, user, content):
        conversation = ConversationService.get_for_participant(conversation_id, user)

        message = Message(conversation_id=conversation.id, sender_id=user.id, content=content.strip())
        db.session.add(message)
        conversation.updated_at = datetime.utcnow()
        db.session.commit()
        return message

    @staticmethod
    def list_messages(conversation_id, user):
        conversation = ConversationService.get_for_participant(conversation_id, user)
        return conversation.messages.order_by(Message.created_at.asc(), Message.id.asc()).all()

    @staticmethod
    def clear_messages(conversation_id, user):
        """Hard-delete every message in the conversation; returns the count removed"""
        conversation = ConversationService.get_for_participant(conversation_id, user)
        removed = Message.query.filter_by(conversation_id=conversation.id).delete(synchronize_session=False)
        db.session.commit()
        logger.info(f"User {user.id} cleared {removed} message(s) from conversation {conversation.id}")
        return removed
