from flask import Blueprint, jsonify
from models import TypeOfHelp

type_of_help_bp = Blueprint('type_of_help', __name__)


@type_of_help_bp.route('')
def list_types():
    types = TypeOfHelp.query.order_by(TypeOfHelp.name.asc()).all()
    return jsonify({'success': True, 'types': [t.to_dict() for t in types]})
