from flask import Blueprint, jsonify
from flask_login import login_required, current_user
from forms import load_form, ChatbotForm
from utils.ai_assistant import ChatSessionService
from utils.services import get_services

chatbot_bp = Blueprint('chatbot', __name__)


@chatbot_bp.route('', methods=['POST'])
def chat():
    """Signed-in users get a stored history; guests send their own context"""
    form = load_form(ChatbotForm)
    user = current_user if current_user.is_authenticated else None
    reply = ChatSessionService.reply(
        get_services().assistant,
        form.message.data.strip(),
        user=user,
        guest_history=form.history.data,
    )
    return jsonify({'success': True, 'reply': reply, 'persisted': user is not None})


@chatbot_bp.route('/history')
@login_required
def history():
    session = ChatSessionService.get_session(current_user)
    if not session:
        return jsonify({'success': True, 'messages': [], 'message_count': 0, 'last_activity': None})
    return jsonify({'success': True, **session.to_dict()})


@chatbot_bp.route('/history', methods=['DELETE'])
@login_required
def clear_history():
    ChatSessionService.clear(current_user)
    return jsonify({'success': True, 'message': 'Chat history cleared'})
