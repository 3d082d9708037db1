import hashlib
import hmac
import json
import time
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from app import create_app, seed_types_of_help
from models import db, User, TypeOfHelp
from utils.ai_assistant import AIAssistant
from utils.email_service import EmailService
from utils.live_channel import LiveChannel
from utils.payment_service import PaymentGateway
from utils.profile_enhancer import ProfileEnhancer
from utils.request_service import RequestService
from utils.services import Services

PASSWORD = 'secret123'
WEBHOOK_SECRET = 'whsec_test_secret'

TEST_CONFIG = {
    'TESTING': True,
    'SECRET_KEY': 'test-secret',
    'SQLALCHEMY_DATABASE_URI': 'sqlite://',
    'WTF_CSRF_ENABLED': False,
    'ENV': 'testing',
    'LOG_LEVEL': 'WARNING',
}


class FakeCompletions:
    """Stands in for client.chat.completions"""

    def __init__(self):
        self.replies = []
        self.calls = []
        self.error = None

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        text = self.replies.pop(0) if self.replies else 'Happy to help!'
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


class RecordingLiveChannel(LiveChannel):
    """Real channel that also remembers what it was asked to broadcast"""

    def __init__(self):
        super().__init__()
        self.events = []

    def _emit(self, event, payload, room=None):
        self.events.append((event, room, payload))
        return super()._emit(event, payload, room)


def iso(value):
    return value.replace(microsecond=0).isoformat() + 'Z'


def sign_payload(body, secret=WEBHOOK_SECRET, timestamp=None):
    timestamp = int(timestamp if timestamp is not None else time.time())
    signed = f"{timestamp}.".encode('utf-8') + body
    digest = hmac.new(secret.encode('utf-8'), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def payment_event(bid_id, event_type='payment_intent.succeeded'):
    return json.dumps({
        'id': 'evt_test',
        'type': event_type,
        'data': {'object': {'id': 'pi_test', 'metadata': {'bidId': str(bid_id)}}},
    }).encode('utf-8')


def make_user(first_name, email, verified=True):
    user = User(first_name=first_name, last_name='Tester', email=email, is_verified=verified)
    user.set_password(PASSWORD)
    db.session.add(user)
    db.session.commit()
    return user


def make_request(owner, offered_amount=200, response_in=timedelta(hours=1), title='Fix my laptop'):
    type_of_help = TypeOfHelp.query.filter_by(name='IT Support').first()
    now = datetime.utcnow()
    return RequestService.create(
        owner,
        title,
        'Laptop will not boot after the latest update',
        type_of_help.id,
        offered_amount,
        now + response_in,
        now + timedelta(days=3),
    )


@pytest.fixture
def completions():
    return FakeCompletions()


@pytest.fixture
def services(completions):
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return Services(
        assistant=AIAssistant(client, model='test-model'),
        payments=PaymentGateway(secret_key='sk_test_123', webhook_secret=WEBHOOK_SECRET),
        mailer=EmailService(mail_server=None),
        live=RecordingLiveChannel(),
        profiles=ProfileEnhancer(),
    )


@pytest.fixture
def app(services):
    app = create_app(TEST_CONFIG, services=services)
    with app.app_context():
        db.create_all()
        seed_types_of_help()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def app_ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def users(app):
    """Ids of four verified accounts"""
    with app.app_context():
        return SimpleNamespace(
            owner=make_user('Olivia', 'owner@example.com').id,
            bidder=make_user('Ben', 'bidder@example.com').id,
            other=make_user('Cara', 'other@example.com').id,
            fourth=make_user('Dave', 'dave@example.com').id,
        )


@pytest.fixture
def type_id(app):
    with app.app_context():
        return TypeOfHelp.query.filter_by(name='IT Support').first().id


def login(app, email):
    client = app.test_client()
    response = client.post('/api/users/login', json={'email': email, 'password': PASSWORD})
    assert response.status_code == 200, response.get_json()
    return client


@pytest.fixture
def owner_client(app, users):
    return login(app, 'owner@example.com')


@pytest.fixture
def bidder_client(app, users):
    return login(app, 'bidder@example.com')


@pytest.fixture
def other_client(app, users):
    return login(app, 'other@example.com')


@pytest.fixture
def request_body(type_id):
    now = datetime.utcnow()
    return {
        'title': 'Fix my laptop',
        'description': 'Laptop will not boot after the latest update',
        'type_of_help': type_id,
        'offered_amount': 200,
        'response_deadline': iso(now + timedelta(hours=1)),
        'work_deadline': iso(now + timedelta(days=3)),
    }
