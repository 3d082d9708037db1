from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user
from forms import load_form, PaymentIntentForm
from utils.payment_service import PaymentService
from utils.services import get_services

payments_bp = Blueprint('payments', __name__)


@payments_bp.route('/create-payment-intent', methods=['POST'])
@login_required
def create_payment_intent():
    form = load_form(PaymentIntentForm)
    intent = PaymentService.create_intent(get_services().payments, form.bid_id.data, current_user)
    return jsonify({'success': True, **intent})


@payments_bp.route('/webhook', methods=['POST'])
def stripe_webhook():
    # Signature is computed over the raw bytes
    event = get_services().payments.verify_signature(
        request.get_data(), request.headers.get('Stripe-Signature'))
    handled = PaymentService.handle_event(event)
    return jsonify({'received': True, 'handled': handled})
