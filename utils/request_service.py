"""
Help request lifecycle: creation, owner edits, closing and the best-bid heuristic
"""

import logging
from datetime import datetime
from models import db, HelpRequest, Bid, TypeOfHelp, REQUEST_OPEN, REQUEST_CLOSED, BID_PENDING
from utils.error_handling import ValidationError, NotFound, Forbidden

logger = logging.getLogger(__name__)

# A minimum bid at or above this share of the offered amount gets marked up
BEST_BID_THRESHOLD = 0.9
BEST_BID_MARKUP = 1.1


class RequestService:
    """Service class for help request operations"""

    @staticmethod
    def get(request_id):
        help_request = db.session.get(HelpRequest, request_id)
        if not help_request:
            raise NotFound('Help request not found')
        return help_request

    @staticmethod
    def get_owned(request_id, user):
        """Load a request and check the caller owns it"""
        help_request = RequestService.get(request_id)
        if help_request.requester_id != user.id:
            raise Forbidden('Access denied')
        return help_request

    @staticmethod
    def _resolve_type_of_help(type_of_help_id):
        type_of_help = db.session.get(TypeOfHelp, type_of_help_id)
        if not type_of_help:
            raise ValidationError('Invalid Type of Help ID',
                                  errors={'type_of_help': ['Invalid Type of Help ID']})
        return type_of_help

    @staticmethod
    def create(user, title, description, type_of_help_id, offered_amount, response_deadline, work_deadline):
        type_of_help = RequestService._resolve_type_of_help(type_of_help_id)

        help_request = HelpRequest(
            title=title.strip(),
            description=description.strip(),
            type_of_help=type_of_help,
            offered_amount=offered_amount,
            requester_id=user.id,
            response_deadline=response_deadline,
            work_deadline=work_deadline,
            status=REQUEST_OPEN,
        )
        db.session.add(help_request)
        db.session.commit()

        logger.info(f"Help request {help_request.id} created by user {user.id}")
        return help_request

    @staticmethod
    def list_all(status=None, type_of_help_id=None):
        query = HelpRequest.query
        if status:
            query = query.filter(HelpRequest.status == status)
        if type_of_help_id:
            query = query.filter(HelpRequest.type_of_help_id == type_of_help_id)
        return query.order_by(HelpRequest.created_at.desc(), HelpRequest.id.desc()).all()

    @staticmethod
    def list_for_user(user):
        return HelpRequest.query.filter_by(requester_id=user.id)\
            .order_by(HelpRequest.created_at.desc(), HelpRequest.id.desc()).all()

    @staticmethod
    def update(request_id, user, changes):
        """Partial update; only keys present in changes are applied"""
        help_request = RequestService.get_owned(request_id, user)

        if 'type_of_help' in changes:
            help_request.type_of_help = RequestService._resolve_type_of_help(changes.pop('type_of_help'))
        for field in ('title', 'description', 'offered_amount', 'response_deadline', 'work_deadline'):
            if field in changes:
                value = changes[field]
                setattr(help_request, field, value.strip() if isinstance(value, str) else value)

        db.session.commit()
        return help_request

    @staticmethod
    def close(request_id, user, reason=None):
        """Close regardless of the current status"""
        help_request = RequestService.get_owned(request_id, user)
        help_request.status = REQUEST_CLOSED
        help_request.closed_at = datetime.utcnow()
        if reason:
            help_request.cancellation_reason = reason.strip()
        db.session.commit()

        logger.info(f"Help request {help_request.id} closed by owner {user.id}")
        return help_request

    @staticmethod
    def extend_response_deadline(request_id, user, new_deadline):
        # No ordering check against the old deadline or the work deadline
        help_request = RequestService.get_owned(request_id, user)
        help_request.response_deadline = new_deadline
        db.session.commit()
        return help_request

    @staticmethod
    def delete(request_id, user):
        """Delete a request together with all of its bids"""
        help_request = RequestService.get_owned(request_id, user)
        bid_count = len(help_request.bids)
        db.session.delete(help_request)
        db.session.commit()
        logger.info(f"Help request {request_id} deleted by owner {user.id} with {bid_count} bid(s)")

    @staticmethod
    def best_bid(request_id, user):
        """Cheapest pending bid plus the display-only adjusted amount.

        Returns None when the request has no pending bids.
        """
        help_request = RequestService.get_owned(request_id, user)

        best = Bid.query.filter_by(help_request_id=help_request.id, status=BID_PENDING)\
            .order_by(Bid.bid_amount.asc(), Bid.id.asc()).first()
        if not best:
            return None

        threshold = help_request.offered_amount * BEST_BID_THRESHOLD
        if best.bid_amount >= threshold:
            adjusted = round(best.bid_amount * BEST_BID_MARKUP, 2)
            explanation = (f"The lowest bid ({best.bid_amount:.2f}) is at least 90% of the offered amount, "
                           f"so it is increased by 10% to {adjusted:.2f}.")
        else:
            adjusted = round(help_request.offered_amount, 2)
            explanation = (f"The lowest bid ({best.bid_amount:.2f}) is below 90% of the offered amount, "
                           f"so the full offered amount of {adjusted:.2f} applies.")

        return {
            'bid': best,
            'adjustedBidAmount': adjusted,
            'explanation': explanation,
        }
