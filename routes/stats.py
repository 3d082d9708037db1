from flask import Blueprint, jsonify
from datetime import datetime, timedelta
from models import db, User, HelpRequest, Bid, Review, REQUEST_COMPLETED, REQUEST_OPEN

stats_bp = Blueprint('stats', __name__)


def _average_response_time():
    """Mean hours from a request's creation to its first bid, as a display string"""
    first_bids = db.session.query(
        HelpRequest.created_at, db.func.min(Bid.created_at)
    ).join(Bid, Bid.help_request_id == HelpRequest.id).group_by(HelpRequest.id, HelpRequest.created_at).all()

    durations = [(first - created).total_seconds() / 3600 for created, first in first_bids if created and first]
    if not durations:
        return 'N/A'
    hours = round(sum(durations) / len(durations))
    return f'{hours}hrs' if hours > 0 else '<1hr'


@stats_bp.route('/dashboard')
def dashboard():
    week_ago = datetime.utcnow() - timedelta(days=7)
    average_rating = db.session.query(db.func.avg(Review.rating)).scalar()

    return jsonify({
        'success': True,
        'stats': {
            'active_users': User.query.filter_by(is_verified=True).count(),
            'total_users': User.query.count(),
            'completed_projects': HelpRequest.query.filter_by(status=REQUEST_COMPLETED).count(),
            'total_requests': HelpRequest.query.count(),
            'open_requests': HelpRequest.query.filter_by(status=REQUEST_OPEN).count(),
            'total_bids': Bid.query.count(),
            'average_rating': f'{average_rating:.1f}' if average_rating is not None else '0.0',
            'recent_requests': HelpRequest.query.filter(HelpRequest.created_at >= week_ago).count(),
            'recent_bids': Bid.query.filter(Bid.created_at >= week_ago).count(),
            'average_response_time': _average_response_time(),
        }
    })
