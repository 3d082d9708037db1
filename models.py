from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from datetime import datetime
from werkzeug.security import generate_password_hash, check_password_hash

db = SQLAlchemy()

# Request statuses
REQUEST_OPEN = 'Open'
REQUEST_IN_PROGRESS = 'In Progress'
REQUEST_COMPLETED = 'Completed'
REQUEST_CLOSED = 'Closed'
REQUEST_STATUSES = (REQUEST_OPEN, REQUEST_IN_PROGRESS, REQUEST_COMPLETED, REQUEST_CLOSED)

# Bid statuses
BID_PENDING = 'Pending'
BID_ACCEPTED = 'Accepted'
BID_DECLINED = 'Declined'
BID_COMPLETED = 'Completed'
BID_STATUSES = (BID_PENDING, BID_ACCEPTED, BID_DECLINED, BID_COMPLETED)

# Notification types
NOTIFICATION_BID_ACCEPTED = 'Bid Accepted'
NOTIFICATION_BID_REJECTED = 'Bid Rejected'

# Chat session limits
CHAT_HISTORY_LIMIT = 200
CHAT_TEXT_MAX_LENGTH = 5000


def _iso(value):
    return value.isoformat() if value else None


# Association tables for many-to-many relationships

user_expertise = db.Table('user_expertise',
    db.Column('user_id', db.Integer, db.ForeignKey('user.id'), primary_key=True),
    db.Column('type_of_help_id', db.Integer, db.ForeignKey('type_of_help.id'), primary_key=True)
)

conversation_participants = db.Table('conversation_participants',
    db.Column('conversation_id', db.Integer, db.ForeignKey('conversations.id'), primary_key=True),
    db.Column('user_id', db.Integer, db.ForeignKey('user.id'), primary_key=True)
)


class User(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(50), nullable=False)
    last_name = db.Column(db.String(50), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)

    # Email verification
    is_verified = db.Column(db.Boolean, default=False)
    email_otp = db.Column(db.String(6))
    otp_expires_at = db.Column(db.DateTime)

    credibility_points = db.Column(db.Integer, default=0, nullable=False)
    stripe_connected_account_id = db.Column(db.String(100))

    # Public profile
    twitter_username = db.Column(db.String(50))
    github_url = db.Column(db.String(200))
    bio = db.Column(db.String(500))
    location = db.Column(db.String(100))
    website = db.Column(db.String(200))
    profile_picture = db.Column(db.String(300))
    profile_picture_source = db.Column(db.String(20))  # github, twitter, gravatar, manual
    enhanced_profile = db.Column(db.JSON)  # Summary fetched from GitHub

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    expertise = db.relationship('TypeOfHelp', secondary=user_expertise, backref='experts')
    reviews = db.relationship('Review', foreign_keys='Review.user_id', backref='user',
                              lazy=True, cascade='all, delete-orphan')
    notifications = db.relationship('Notification', backref='user', lazy=True, cascade='all, delete-orphan')

    def set_password(self, password):
        """Set password hash"""
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        """Check password against hash"""
        return check_password_hash(self.password_hash, password)

    def summary(self):
        """Display fields used when a user is embedded in another record"""
        return {
            'id': self.id,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'credibility_points': self.credibility_points,
        }

    def to_dict(self):
        return {
            'id': self.id,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'email': self.email,
            'is_verified': self.is_verified,
            'credibility_points': self.credibility_points,
            'expertise': [t.to_dict() for t in self.expertise],
            'reviews': [r.to_dict() for r in self.reviews],
            'twitter_username': self.twitter_username,
            'github_url': self.github_url,
            'bio': self.bio,
            'location': self.location,
            'website': self.website,
            'profile_picture': self.profile_picture,
            'profile_picture_source': self.profile_picture_source,
            'enhanced_profile': self.enhanced_profile,
            'created_at': _iso(self.created_at),
        }

    def __repr__(self):
        return f'<User {self.email}>'


class Review(db.Model):
    """A rating left on a user's profile by another user"""
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    reviewer_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    rating = db.Column(db.Integer, nullable=False)  # 1-5 stars
    comment = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    reviewer = db.relationship('User', foreign_keys=[reviewer_id])

    __table_args__ = (db.CheckConstraint('rating >= 1 AND rating <= 5', name='ck_review_rating'),)

    def to_dict(self):
        return {
            'id': self.id,
            'reviewer_id': self.reviewer_id,
            'rating': self.rating,
            'comment': self.comment,
        }


class TypeOfHelp(db.Model):
    """Help category; reference data seeded once"""
    __tablename__ = 'type_of_help'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'description': self.description}


class HelpRequest(db.Model):
    """A request for help posted by a requester and open to bids"""
    __tablename__ = 'help_requests'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    type_of_help_id = db.Column(db.Integer, db.ForeignKey('type_of_help.id'), nullable=False)
    offered_amount = db.Column(db.Float, nullable=False)
    requester_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    response_deadline = db.Column(db.DateTime, nullable=False)
    work_deadline = db.Column(db.DateTime, nullable=False)
    status = db.Column(db.String(20), default=REQUEST_OPEN, nullable=False)  # Open, In Progress, Completed, Closed

    accepted_bid_id = db.Column(db.Integer)  # Plain reference, bids already point back at the request
    accepted_bidder_id = db.Column(db.Integer, db.ForeignKey('user.id'))
    completed_at = db.Column(db.DateTime)
    closed_at = db.Column(db.DateTime)
    cancellation_reason = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    type_of_help = db.relationship('TypeOfHelp')
    requester = db.relationship('User', foreign_keys=[requester_id], backref='help_requests')
    accepted_bidder = db.relationship('User', foreign_keys=[accepted_bidder_id])
    bids = db.relationship('Bid', foreign_keys='Bid.help_request_id', back_populates='help_request',
                           order_by='Bid.id', cascade='all, delete-orphan')

    __table_args__ = (
        db.Index('ix_help_requests_requester_status', 'requester_id', 'status'),
        db.Index('ix_help_requests_status_created', 'status', 'created_at'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'type_of_help': self.type_of_help.to_dict() if self.type_of_help else None,
            'offered_amount': self.offered_amount,
            'requester': self.requester.summary() if self.requester else None,
            'response_deadline': _iso(self.response_deadline),
            'work_deadline': _iso(self.work_deadline),
            'status': self.status,
            'bids': [bid.id for bid in self.bids],
            'accepted_bid_id': self.accepted_bid_id,
            'accepted_bidder': self.accepted_bidder.summary() if self.accepted_bidder else None,
            'completed_at': _iso(self.completed_at),
            'closed_at': _iso(self.closed_at),
            'cancellation_reason': self.cancellation_reason,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }

    def __repr__(self):
        return f'<HelpRequest {self.id} {self.status}>'


class Bid(db.Model):
    """An offer by a bidder to fulfil a help request"""
    __tablename__ = 'bids'

    id = db.Column(db.Integer, primary_key=True)
    help_request_id = db.Column(db.Integer, db.ForeignKey('help_requests.id'), nullable=False)
    bidder_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    bid_amount = db.Column(db.Float, nullable=False)
    message = db.Column(db.Text)
    status = db.Column(db.String(20), default=BID_PENDING, nullable=False)  # Pending, Accepted, Declined, Completed
    agreed_amount = db.Column(db.Float, default=0.0, nullable=False)
    chat_id = db.Column(db.Integer, db.ForeignKey('conversations.id'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    help_request = db.relationship('HelpRequest', foreign_keys=[help_request_id], back_populates='bids')
    bidder = db.relationship('User', foreign_keys=[bidder_id], backref='bids')

    # One bid per user per request
    __table_args__ = (
        db.UniqueConstraint('help_request_id', 'bidder_id', name='uq_bid_request_bidder'),
        db.CheckConstraint('bid_amount >= 0', name='ck_bid_amount'),
    )

    def to_dict(self, include_request=False):
        data = {
            'id': self.id,
            'help_request_id': self.help_request_id,
            'bidder': self.bidder.summary() if self.bidder else None,
            'bid_amount': self.bid_amount,
            'message': self.message,
            'status': self.status,
            'agreed_amount': self.agreed_amount,
            'chat_id': self.chat_id,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }
        if include_request and self.help_request:
            data['help_request'] = self.help_request.to_dict()
        return data

    def __repr__(self):
        return f'<Bid {self.id} {self.status} {self.bid_amount}>'


class Notification(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    notification_type = db.Column(db.String(50), nullable=False)  # Bid Accepted, Bid Rejected
    message = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, default=False)
    related_bid_id = db.Column(db.Integer, db.ForeignKey('bids.id', ondelete='SET NULL'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'type': self.notification_type,
            'message': self.message,
            'is_read': self.is_read,
            'related_bid_id': self.related_bid_id,
            'created_at': _iso(self.created_at),
        }


class Conversation(db.Model):
    """A two-person chat thread"""
    __tablename__ = 'conversations'

    id = db.Column(db.Integer, primary_key=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow)

    participants = db.relationship('User', secondary=conversation_participants, backref='conversations')
    messages = db.relationship('Message', backref='conversation', lazy='dynamic', cascade='all, delete-orphan')

    def has_participant(self, user_id):
        return any(p.id == user_id for p in self.participants)

    def to_dict(self):
        return {
            'id': self.id,
            'participants': [
                {'id': p.id, 'first_name': p.first_name, 'last_name': p.last_name, 'email': p.email}
                for p in self.participants
            ],
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


class Message(db.Model):
    __tablename__ = 'messages'

    id = db.Column(db.Integer, primary_key=True)
    conversation_id = db.Column(db.Integer, db.ForeignKey('conversations.id'), nullable=False, index=True)
    sender_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    sender = db.relationship('User', foreign_keys=[sender_id])

    def to_dict(self):
        return {
            'id': self.id,
            'conversation_id': self.conversation_id,
            'sender': {
                'id': self.sender.id,
                'first_name': self.sender.first_name,
                'last_name': self.sender.last_name,
                'email': self.sender.email,
            } if self.sender else None,
            'content': self.content,
            'created_at': _iso(self.created_at),
        }


class ChatSession(db.Model):
    """Per-user AI assistant history, capped at CHAT_HISTORY_LIMIT entries"""
    __tablename__ = 'chat_sessions'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, unique=True, index=True)
    messages = db.Column(db.JSON, nullable=False, default=list)  # [{sender, text, timestamp, metadata}]
    message_count = db.Column(db.Integer, default=0, nullable=False)
    last_activity = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = db.relationship('User', backref=db.backref('chat_session', uselist=False, cascade='all, delete-orphan'))

    def add_exchange(self, user_text, bot_text, metadata=None):
        """Append a user/bot pair, keeping only the newest CHAT_HISTORY_LIMIT entries"""
        now = datetime.utcnow()
        entries = list(self.messages or [])
        entries.append({'sender': 'user', 'text': user_text[:CHAT_TEXT_MAX_LENGTH],
                        'timestamp': now.isoformat(), 'metadata': None})
        entries.append({'sender': 'bot', 'text': bot_text[:CHAT_TEXT_MAX_LENGTH],
                        'timestamp': now.isoformat(), 'metadata': metadata})
        if len(entries) > CHAT_HISTORY_LIMIT:
            entries = entries[-CHAT_HISTORY_LIMIT:]

        # Reassign so the JSON column is flagged dirty
        self.messages = entries
        self.message_count = len(entries)
        self.last_activity = now

    def to_dict(self):
        return {
            'messages': self.messages or [],
            'message_count': self.message_count,
            'last_activity': _iso(self.last_activity),
        }
