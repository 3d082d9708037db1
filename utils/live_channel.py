"""
Live channel over Flask-SocketIO.

Sockets authenticate with the Flask-Login session cookie, join a personal
room on connect and conversation rooms on request. Broadcasts are
best-effort: persisted data stays authoritative and clients re-fetch on
reconnect.
"""

import logging
from flask_login import current_user
from flask_socketio import SocketIO, join_room, leave_room, emit
from models import db, Conversation

logger = logging.getLogger(__name__)

socketio = SocketIO()

EVENT_CHAT_MESSAGE = 'chatMessage'
EVENT_CHAT_CLEARED = 'chatCleared'
EVENT_NEW_REQUEST = 'newRequest'


def user_room(user_id):
    return f'user_{user_id}'


def conversation_room(conversation_id):
    return f'conversation_{conversation_id}'


class LiveChannel:
    """Server-side emitter used by HTTP handlers after their commit"""

    def __init__(self, server=None):
        self.server = server or socketio

    def _emit(self, event, payload, room=None):
        try:
            if room:
                self.server.emit(event, payload, to=room)
            else:
                self.server.emit(event, payload)
            return True
        except Exception as e:
            # Dropped broadcast; clients reconcile by re-fetching
            logger.warning(f"Live broadcast of '{event}' to {room or 'all'} dropped: {str(e)}")
            return False

    def chat_message(self, conversation_id, message):
        return self._emit(EVENT_CHAT_MESSAGE, message, room=conversation_room(conversation_id))

    def chat_cleared(self, conversation_id):
        return self._emit(EVENT_CHAT_CLEARED, {'conversation_id': conversation_id},
                          room=conversation_room(conversation_id))

    def new_request(self, help_request):
        return self._emit(EVENT_NEW_REQUEST, help_request)


def _conversation_id(data):
    if isinstance(data, dict):
        data = data.get('conversation_id')
    try:
        return int(data)
    except (TypeError, ValueError):
        return None


@socketio.on('connect')
def handle_connect(auth=None):
    if not current_user.is_authenticated:
        logger.info("Refused unauthenticated socket connection")
        return False
    join_room(user_room(current_user.id))
    logger.info(f"Socket connected for user {current_user.id}")


@socketio.on('disconnect')
def handle_disconnect(*args):
    if current_user.is_authenticated:
        logger.info(f"Socket disconnected for user {current_user.id}")


@socketio.on('joinConversation')
def handle_join_conversation(data):
    conversation_id = _conversation_id(data)
    conversation = db.session.get(Conversation, conversation_id) if conversation_id else None
    if not conversation or not conversation.has_participant(current_user.id):
        emit('error', {'message': 'Cannot join this conversation'})
        return
    join_room(conversation_room(conversation_id))
    emit('joinedConversation', {'conversation_id': conversation_id})


@socketio.on('leaveConversation')
def handle_leave_conversation(data):
    conversation_id = _conversation_id(data)
    if conversation_id:
        leave_room(conversation_room(conversation_id))
