from flask import Blueprint, jsonify
from flask_login import login_required, current_user
from forms import load_form, BidForm, BidUpdateForm
from utils.bid_service import BidService

bids_bp = Blueprint('bids', __name__)


@bids_bp.route('', methods=['POST'])
@login_required
def place_bid():
    form = load_form(BidForm)
    bid = BidService.place(current_user, form.help_request_id.data, form.bid_amount.data, form.message.data)
    return jsonify({'success': True, 'bid': bid.to_dict()}), 201


@bids_bp.route('/user-bids')
@login_required
def user_bids():
    bids = BidService.list_for_bidder(current_user)
    return jsonify({'success': True, 'bids': [bid.to_dict(include_request=True) for bid in bids]})


@bids_bp.route('/<int:help_request_id>')
def bids_for_request(help_request_id):
    bids = BidService.list_for_request(help_request_id)
    return jsonify({'success': True, 'bids': [bid.to_dict() for bid in bids]})


@bids_bp.route('/<int:bid_id>', methods=['PUT'])
@login_required
def update_bid(bid_id):
    form = load_form(BidUpdateForm)
    bid = BidService.update_amount(bid_id, current_user, form.bid_amount.data)
    return jsonify({'success': True, 'message': 'Bid updated successfully', 'bid': bid.to_dict()})


@bids_bp.route('/<int:bid_id>/accept', methods=['POST'])
@login_required
def accept_bid(bid_id):
    bid = BidService.accept(bid_id, current_user)
    return jsonify({
        'success': True,
        'message': 'Bid accepted successfully',
        'bid': bid.to_dict(include_request=True)
    })


@bids_bp.route('/<int:bid_id>/reject', methods=['POST'])
@login_required
def reject_bid(bid_id):
    bid = BidService.reject(bid_id, current_user)
    return jsonify({'success': True, 'message': 'Bid rejected successfully', 'bid': bid.to_dict()})


@bids_bp.route('/<int:bid_id>/complete', methods=['PUT'])
@login_required
def complete_bid(bid_id):
    bid = BidService.complete(bid_id, current_user)
    return jsonify({
        'success': True,
        'message': 'Bid marked as completed',
        'bid': bid.to_dict(include_request=True)
    })


@bids_bp.route('/<int:bid_id>/details')
@login_required
def bid_details(bid_id):
    bid = BidService.details(bid_id, current_user)
    return jsonify({'success': True, 'bid': bid.to_dict(include_request=True)})
