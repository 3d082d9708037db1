"""
Bid lifecycle: Pending -> Accepted | Declined, Accepted -> Completed.

Each transition is written with a single commit so the bid, its siblings,
the parent request and the notifications land together or not at all.
"""

import logging
from datetime import datetime
from models import (db, Bid, HelpRequest, User, REQUEST_OPEN, REQUEST_IN_PROGRESS, REQUEST_COMPLETED,
                    BID_PENDING, BID_ACCEPTED, BID_DECLINED, BID_COMPLETED,
                    NOTIFICATION_BID_ACCEPTED, NOTIFICATION_BID_REJECTED)
from utils.error_handling import NotFound, Forbidden, Conflict
from utils.notification_service import NotificationService

logger = logging.getLogger(__name__)

COMPLETION_CREDIBILITY_POINTS = 10


class BidService:
    """Service class for bid operations"""

    @staticmethod
    def get(bid_id):
        bid = db.session.get(Bid, bid_id)
        if not bid:
            raise NotFound('Bid not found')
        return bid

    @staticmethod
    def get_for_owner(bid_id, user):
        """Load a bid whose parent request is owned by the caller"""
        bid = BidService.get(bid_id)
        if bid.help_request.requester_id != user.id:
            raise Forbidden('Access denied')
        return bid

    @staticmethod
    def place(user, help_request_id, bid_amount, message=None):
        help_request = db.session.get(HelpRequest, help_request_id)
        if not help_request:
            raise NotFound('Help request not found')
        if help_request.requester_id == user.id:
            raise Conflict('You cannot bid on your own help request')
        if help_request.status != REQUEST_OPEN:
            raise Conflict(f"Cannot bid on a '{help_request.status}' request")

        existing = Bid.query.filter_by(help_request_id=help_request.id, bidder_id=user.id).first()
        if existing:
            raise Conflict('You have already placed a bid on this request')

        bid = Bid(
            bidder_id=user.id,
            bid_amount=bid_amount,
            message=message.strip() if message else None,
            status=BID_PENDING,
        )
        help_request.bids.append(bid)
        db.session.commit()

        logger.info(f"Bid {bid.id} of {bid_amount} placed on request {help_request.id} by user {user.id}")
        return bid

    @staticmethod
    def list_for_request(help_request_id):
        if not db.session.get(HelpRequest, help_request_id):
            raise NotFound('Help request not found')
        return Bid.query.filter_by(help_request_id=help_request_id)\
            .order_by(Bid.created_at.desc(), Bid.id.desc()).all()

    @staticmethod
    def list_for_bidder(user):
        return Bid.query.filter_by(bidder_id=user.id)\
            .order_by(Bid.created_at.desc(), Bid.id.desc()).all()

    @staticmethod
    def update_amount(bid_id, user, bid_amount, now=None):
        bid = BidService.get(bid_id)
        if bid.bidder_id != user.id:
            raise Forbidden('Access denied')

        help_request = bid.help_request
        now = now or datetime.utcnow()

        if bid.status != BID_PENDING:
            raise Conflict(f"Cannot edit a bid with status '{bid.status}'")
        if help_request.status != REQUEST_OPEN:
            raise Conflict(f"Cannot edit bids on a '{help_request.status}' request")
        if now >= help_request.response_deadline:
            raise Conflict('Cannot edit bid after the response deadline has passed')
        if any(sibling.status == BID_ACCEPTED for sibling in help_request.bids if sibling.id != bid.id):
            raise Conflict('Cannot edit bid after a bid has been accepted')

        bid.bid_amount = bid_amount
        db.session.commit()
        return bid

    @staticmethod
    def accept(bid_id, user):
        """Accept one bid, decline the pending siblings and move the request to In Progress"""
        bid = BidService.get_for_owner(bid_id, user)
        help_request = bid.help_request
        if bid.status != BID_PENDING:
            raise Conflict(f"Cannot accept a bid with status '{bid.status}'")
        if help_request.status != REQUEST_OPEN:
            raise Conflict(f"Cannot accept bids on a '{help_request.status}' request")
        if any(sibling.status in (BID_ACCEPTED, BID_COMPLETED)
               for sibling in help_request.bids if sibling.id != bid.id):
            raise Conflict('Another bid on this request has already been accepted')

        bid.status = BID_ACCEPTED
        help_request.status = REQUEST_IN_PROGRESS
        help_request.accepted_bid_id = bid.id
        help_request.accepted_bidder_id = bid.bidder_id

        NotificationService.notify(
            bid.bidder_id, NOTIFICATION_BID_ACCEPTED,
            f'Your bid for "{help_request.title}" has been accepted.', bid.id)

        declined = [sibling for sibling in help_request.bids
                    if sibling.id != bid.id and sibling.status == BID_PENDING]
        for sibling in declined:
            sibling.status = BID_DECLINED
            NotificationService.notify(
                sibling.bidder_id, NOTIFICATION_BID_REJECTED,
                f'Your bid for "{help_request.title}" has been declined.', sibling.id)

        db.session.commit()
        logger.info(f"Bid {bid.id} accepted on request {help_request.id}; {len(declined)} sibling bid(s) declined")
        return bid

    @staticmethod
    def reject(bid_id, user):
        bid = BidService.get_for_owner(bid_id, user)
        if bid.status != BID_PENDING:
            raise Conflict(f"Cannot reject a bid with status '{bid.status}'")

        bid.status = BID_DECLINED
        NotificationService.notify(
            bid.bidder_id, NOTIFICATION_BID_REJECTED,
            f'Your bid for "{bid.help_request.title}" has been rejected.', bid.id)

        db.session.commit()
        logger.info(f"Bid {bid.id} rejected on request {bid.help_request_id}")
        return bid

    @staticmethod
    def mark_completed(bid):
        """Settle an accepted bid: agreed amount, request completion and credibility.

        Shared by the manual completion call and the payment webhook; the
        caller commits.
        """
        now = datetime.utcnow()
        bid.status = BID_COMPLETED
        bid.agreed_amount = bid.bid_amount

        help_request = bid.help_request
        help_request.status = REQUEST_COMPLETED
        help_request.completed_at = now

        bidder = db.session.get(User, bid.bidder_id)
        bidder.credibility_points = (bidder.credibility_points or 0) + COMPLETION_CREDIBILITY_POINTS

    @staticmethod
    def complete(bid_id, user):
        bid = BidService.get_for_owner(bid_id, user)
        if bid.status != BID_ACCEPTED:
            raise Conflict('Only accepted bids can be marked as completed')

        BidService.mark_completed(bid)
        db.session.commit()

        logger.info(f"Bid {bid.id} completed; request {bid.help_request_id} completed")
        return bid

    @staticmethod
    def details(bid_id, user):
        """Visible to the bidder and to the owner of the parent request"""
        bid = BidService.get(bid_id)
        if user.id not in (bid.bidder_id, bid.help_request.requester_id):
            raise Forbidden('Access denied')
        return bid
