from flask import Blueprint, jsonify
from flask_login import login_required, current_user
from forms import load_form, ConversationForm, MessageForm
from utils.conversation_service import ConversationService
from utils.services import get_services

conversations_bp = Blueprint('conversations', __name__)


@conversations_bp.route('', methods=['POST'])
@login_required
def create_conversation():
    form = load_form(ConversationForm)
    conversation, created = ConversationService.create_or_get(form.participants.data)
    return jsonify({'success': True, 'conversation': conversation.to_dict()}), 201 if created else 200


@conversations_bp.route('/user/all')
@login_required
def user_conversations():
    conversations = ConversationService.list_for_user(current_user)
    return jsonify({'success': True, 'conversations': [c.to_dict() for c in conversations]})


@conversations_bp.route('/<int:conversation_id>')
@login_required
def get_conversation(conversation_id):
    conversation = ConversationService.get_for_participant(conversation_id, current_user)
    return jsonify({'success': True, 'conversation': conversation.to_dict()})


@conversations_bp.route('/<int:conversation_id>/messages', methods=['POST'])
@login_required
def send_message(conversation_id):
    form = load_form(MessageForm)
    message = ConversationService.send_message(conversation_id, current_user, form.message.data)
    payload = message.to_dict()

    get_services().live.chat_message(conversation_id, payload)
    return jsonify({'success': True, 'message': payload}), 201


@conversations_bp.route('/<int:conversation_id>/messages')
@login_required
def list_messages(conversation_id):
    messages = ConversationService.list_messages(conversation_id, current_user)
    return jsonify({'success': True, 'messages': [m.to_dict() for m in messages]})


@conversations_bp.route('/<int:conversation_id>/messages', methods=['DELETE'])
@login_required
def clear_messages(conversation_id):
    removed = ConversationService.clear_messages(conversation_id, current_user)

    get_services().live.chat_cleared(conversation_id)
    return jsonify({'success': True, 'message': 'Chat cleared', 'deleted': removed})
