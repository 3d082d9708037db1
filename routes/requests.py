from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user
from forms import load_form, HelpRequestForm, HelpRequestUpdateForm, ResponseDeadlineForm, CancelRequestForm
from models import REQUEST_STATUSES
from utils.request_service import RequestService
from utils.services import get_services

requests_bp = Blueprint('requests', __name__)


@requests_bp.route('', methods=['POST'])
@login_required
def create_request():
    form = load_form(HelpRequestForm)
    help_request = RequestService.create(
        current_user,
        form.title.data,
        form.description.data,
        form.type_of_help.data,
        form.offered_amount.data,
        form.response_deadline.data,
        form.work_deadline.data,
    )
    payload = help_request.to_dict()

    # Persisted first; the broadcast may be dropped
    get_services().live.new_request(payload)
    return jsonify({'success': True, 'request': payload}), 201


@requests_bp.route('')
def list_requests():
    status = request.args.get('status')
    if status not in REQUEST_STATUSES:
        status = None
    type_of_help_id = request.args.get('type_of_help', type=int)
    help_requests = RequestService.list_all(status=status, type_of_help_id=type_of_help_id)
    return jsonify({'success': True, 'requests': [r.to_dict() for r in help_requests]})


@requests_bp.route('/user-requests')
@login_required
def user_requests():
    help_requests = RequestService.list_for_user(current_user)
    return jsonify({'success': True, 'requests': [r.to_dict() for r in help_requests]})


@requests_bp.route('/<int:request_id>')
def get_request(request_id):
    help_request = RequestService.get(request_id)
    return jsonify({'success': True, 'request': help_request.to_dict()})


@requests_bp.route('/<int:request_id>', methods=['PUT'])
@login_required
def update_request(request_id):
    form = load_form(HelpRequestUpdateForm)
    help_request = RequestService.update(request_id, current_user, form.changes())
    return jsonify({'success': True, 'request': help_request.to_dict()})


@requests_bp.route('/<int:request_id>/close', methods=['PUT'])
@login_required
def close_request(request_id):
    help_request = RequestService.close(request_id, current_user)
    return jsonify({'success': True, 'message': 'Request closed', 'request': help_request.to_dict()})


@requests_bp.route('/<int:request_id>/cancel', methods=['PUT'])
@login_required
def cancel_request(request_id):
    form = load_form(CancelRequestForm)
    help_request = RequestService.close(request_id, current_user, reason=form.reason.data)
    return jsonify({'success': True, 'message': 'Request cancelled', 'request': help_request.to_dict()})


@requests_bp.route('/<int:request_id>/response-time', methods=['PUT'])
@login_required
def extend_response_deadline(request_id):
    form = load_form(ResponseDeadlineForm)
    help_request = RequestService.extend_response_deadline(request_id, current_user,
                                                           form.new_response_deadline.data)
    return jsonify({
        'success': True,
        'message': 'Response deadline updated successfully.',
        'request': help_request.to_dict()
    })


@requests_bp.route('/<int:request_id>', methods=['DELETE'])
@login_required
def delete_request(request_id):
    RequestService.delete(request_id, current_user)
    return jsonify({'success': True, 'message': 'Request and associated bids removed'})


@requests_bp.route('/<int:request_id>/bidders')
@login_required
def best_bidder(request_id):
    best = RequestService.best_bid(request_id, current_user)
    if not best:
        return jsonify({'success': True, 'message': 'No pending bids for this request', 'bids': []})

    return jsonify({
        'success': True,
        'bid': best['bid'].to_dict(),
        'adjustedBidAmount': best['adjustedBidAmount'],
        'explanation': best['explanation'],
    })
