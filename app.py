from flask import Flask, request, jsonify
from flask_login import LoginManager
from flask_wtf.csrf import CSRFProtect, generate_csrf
from flask_cors import CORS
from datetime import timedelta
import os
import logging
import click

from models import db, User, TypeOfHelp
from utils.error_handling import register_error_handlers, Unauthorized
from utils.email_service import mail
from utils.live_channel import socketio
from utils.services import init_services

logger = logging.getLogger(__name__)

csrf = CSRFProtect()
login_manager = LoginManager()

DEFAULT_TYPES_OF_HELP = [
    ('Tutoring', 'Academic assistance and tutoring services.'),
    ('Handyman Services', 'Home repairs and maintenance.'),
    ('Transportation', 'Help with moving or transportation needs.'),
    ('IT Support', 'Technical assistance with computers and software.'),
    ('Gardening', 'Gardening and landscaping services.'),
    ('Cooking', 'Meal preparation and cooking services.'),
    ('Cleaning', 'House cleaning and organizing services.'),
    ('Personal Training', 'Fitness and personal training services.'),
]


def _env_flag(name, default='false'):
    return os.environ.get(name, default).lower() in ['true', 'on', '1']


def load_config(app):
    env = os.environ.get('ENV', 'development')
    app.config['ENV'] = env
    app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')
    app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'sqlite:///helpwise.db')
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['FRONTEND_ORIGIN'] = os.environ.get('FRONTEND_ORIGIN', 'http://localhost:5173')

    # Session cookie carries the Flask-Login identity
    app.config['SESSION_COOKIE_HTTPONLY'] = True
    app.config['SESSION_COOKIE_SAMESITE'] = 'Lax'
    app.config['SESSION_COOKIE_SECURE'] = env == 'production'
    app.config['REMEMBER_COOKIE_HTTPONLY'] = True
    app.config['PERMANENT_SESSION_LIFETIME'] = timedelta(hours=1)

    app.config['WTF_CSRF_ENABLED'] = True
    app.config['WTF_CSRF_TIME_LIMIT'] = 3600  # 1 hour

    app.config['MAIL_SERVER'] = os.environ.get('MAIL_SERVER')
    app.config['MAIL_PORT'] = int(os.environ.get('MAIL_PORT', 587))
    app.config['MAIL_USE_TLS'] = _env_flag('MAIL_USE_TLS', 'true')
    app.config['MAIL_USERNAME'] = os.environ.get('MAIL_USERNAME')
    app.config['MAIL_PASSWORD'] = os.environ.get('MAIL_PASSWORD')
    app.config['MAIL_DEFAULT_SENDER'] = os.environ.get('MAIL_DEFAULT_SENDER', os.environ.get('MAIL_USERNAME'))
    app.config['OTP_TTL_MINUTES'] = int(os.environ.get('OTP_TTL_MINUTES', 15))

    app.config['OPENAI_API_KEY'] = os.environ.get('OPENAI_API_KEY')
    app.config['OPENAI_BASE_URL'] = os.environ.get('OPENAI_BASE_URL')
    app.config['OPENAI_MODEL'] = os.environ.get('OPENAI_MODEL', 'gpt-4o-mini')

    app.config['STRIPE_SECRET_KEY'] = os.environ.get('STRIPE_SECRET_KEY')
    app.config['STRIPE_WEBHOOK_SECRET'] = os.environ.get('STRIPE_WEBHOOK_SECRET')
    app.config['PAYMENT_CURRENCY'] = os.environ.get('PAYMENT_CURRENCY', 'usd')
    app.config['PLATFORM_FEE_RATE'] = float(os.environ.get('PLATFORM_FEE_RATE', 0.10))

    app.config['DEADLINE_SWEEP_MINUTES'] = int(os.environ.get('DEADLINE_SWEEP_MINUTES', 1))
    app.config['LOG_LEVEL'] = os.environ.get('LOG_LEVEL', 'INFO')

    # JSON encoding configuration to handle Unicode characters
    app.json.ensure_ascii = False


def seed_types_of_help():
    """Insert the default categories that are missing; returns how many were added"""
    existing = {name for (name,) in db.session.query(TypeOfHelp.name).all()}
    added = 0
    for name, description in DEFAULT_TYPES_OF_HELP:
        if name not in existing:
            db.session.add(TypeOfHelp(name=name, description=description))
            added += 1
    db.session.commit()
    return added


def create_app(config_overrides=None, services=None):
    app = Flask(__name__)
    load_config(app)
    if config_overrides:
        app.config.update(config_overrides)

    logging.basicConfig(level=getattr(logging, str(app.config['LOG_LEVEL']).upper(), logging.INFO))

    CORS(app,
         origins=[app.config['FRONTEND_ORIGIN']],
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization", "X-Requested-With", "X-CSRFToken"],
         expose_headers=["Content-Type", "X-CSRFToken"],
         methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"]
    )

    # Initialize extensions
    db.init_app(app)
    mail.init_app(app)
    csrf.init_app(app)
    login_manager.init_app(app)
    socketio.init_app(app, cors_allowed_origins=[app.config['FRONTEND_ORIGIN']])

    init_services(app, services)

    from routes.users import users_bp
    from routes.type_of_help import type_of_help_bp
    from routes.requests import requests_bp
    from routes.bids import bids_bp
    from routes.conversations import conversations_bp
    from routes.notifications import notifications_bp
    from routes.ai_tools import ai_tools_bp
    from routes.chatbot import chatbot_bp
    from routes.payments import payments_bp, stripe_webhook
    from routes.stats import stats_bp

    # Register blueprints
    app.register_blueprint(users_bp, url_prefix='/api/users')
    app.register_blueprint(type_of_help_bp, url_prefix='/api/type-of-help')
    app.register_blueprint(requests_bp, url_prefix='/api/requests')
    app.register_blueprint(bids_bp, url_prefix='/api/bids')
    app.register_blueprint(conversations_bp, url_prefix='/api/conversations')
    app.register_blueprint(notifications_bp, url_prefix='/api/notifications')
    app.register_blueprint(ai_tools_bp, url_prefix='/api')
    app.register_blueprint(chatbot_bp, url_prefix='/api/chatbot')
    app.register_blueprint(payments_bp, url_prefix='/api/payments')
    app.register_blueprint(stats_bp, url_prefix='/api/stats')

    # The webhook is authenticated by its Stripe signature instead
    csrf.exempt(stripe_webhook)

    register_error_handlers(app)

    # Request logging middleware
    @app.before_request
    def log_request_info():
        logger.info(f"Request: {request.method} {request.url} from {request.remote_addr}")

    @app.after_request
    def add_security_headers(response):
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        return response

    @app.teardown_request
    def teardown_request(exception=None):
        try:
            if exception:
                db.session.rollback()
        except Exception as e:
            logger.warning(f"Error in request teardown: {e}")

    @app.route('/api/csrf-token')
    def csrf_token():
        return jsonify({'success': True, 'csrf_token': generate_csrf()})

    @app.cli.command('seed-types')
    def seed_types_command():
        """Create tables and insert the default help categories"""
        db.create_all()
        added = seed_types_of_help()
        click.echo(f"Seeded {added} type(s) of help")

    return app


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


@login_manager.unauthorized_handler
def unauthorized():
    raise Unauthorized('No token, authorization denied')
