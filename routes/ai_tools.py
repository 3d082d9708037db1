from flask import Blueprint, jsonify
from flask_login import login_required
from forms import load_form, EnhanceDescriptionForm, RiskAnalysisForm
from models import TypeOfHelp
from utils.services import get_services

ai_tools_bp = Blueprint('ai_tools', __name__)


@ai_tools_bp.route('/openai/enhance-description', methods=['POST'])
@login_required
def enhance_description():
    form = load_form(EnhanceDescriptionForm)
    categories = TypeOfHelp.query.order_by(TypeOfHelp.id.asc()).all()
    result = get_services().assistant.enhance_description(form.description.data, categories)
    return jsonify({'success': True, **result})


@ai_tools_bp.route('/gemini/generate-risks', methods=['POST'])
@ai_tools_bp.route('/openai/generate-risks', methods=['POST'])
@login_required
def generate_risks():
    form = load_form(RiskAnalysisForm)
    risks = get_services().assistant.generate_risks(form.title.data, form.description.data)
    return jsonify({'success': True, 'risksAndPreventions': risks})
