import time

import pytest
import requests

from conftest import WEBHOOK_SECRET, make_request, payment_event, sign_payload
from models import db, User, Bid, HelpRequest, BID_COMPLETED, REQUEST_COMPLETED
from utils.bid_service import BidService
from utils.error_handling import UpstreamError
from utils.payment_service import PaymentGateway, WebhookError


class FakeResponse:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        return self._payload


@pytest.fixture
def gateway():
    return PaymentGateway(secret_key='sk_test_123', webhook_secret=WEBHOOK_SECRET)


@pytest.fixture
def accepted_bid(app, users):
    """Id of a 150.00 bid accepted on the owner's request"""
    with app.app_context():
        owner = db.session.get(User, users.owner)
        help_request = make_request(owner)
        bid = BidService.place(db.session.get(User, users.bidder), help_request.id, 150)
        BidService.accept(bid.id, owner)
        return bid.id


class TestSignature:
    def test_valid_signature_returns_event(self, gateway):
        body = payment_event(7)
        event = gateway.verify_signature(body, sign_payload(body))
        assert event['data']['object']['metadata']['bidId'] == '7'

    def test_any_matching_v1_is_accepted(self, gateway):
        body = payment_event(7)
        header = sign_payload(body)
        timestamp = header.split(',')[0]
        mixed = f"{timestamp},v1=deadbeef,{header.split(',')[1]}"
        assert gateway.verify_signature(body, mixed)['type'] == 'payment_intent.succeeded'

    def test_wrong_secret(self, gateway):
        body = payment_event(7)
        with pytest.raises(WebhookError, match='signature verification failed'):
            gateway.verify_signature(body, sign_payload(body, secret='whsec_other'))

    def test_tampered_body(self, gateway):
        header = sign_payload(payment_event(7))
        with pytest.raises(WebhookError):
            gateway.verify_signature(payment_event(8), header)

    def test_stale_timestamp(self, gateway):
        body = payment_event(7)
        old = int(time.time()) - 3600
        with pytest.raises(WebhookError, match='tolerance'):
            gateway.verify_signature(body, sign_payload(body, timestamp=old))

    def test_missing_header(self, gateway):
        with pytest.raises(WebhookError, match='missing'):
            gateway.verify_signature(payment_event(7), None)

    def test_malformed_header(self, gateway):
        with pytest.raises(WebhookError, match='invalid Stripe signature header'):
            gateway.verify_signature(payment_event(7), 'nonsense')

    def test_unconfigured_secret(self):
        with pytest.raises(WebhookError, match='not configured'):
            PaymentGateway(secret_key='sk_test_123').verify_signature(b'{}', 't=1,v1=abc')


class TestWebhook:
    def _deliver(self, client, body, header=None):
        return client.post('/api/payments/webhook', data=body, content_type='application/json',
                           headers={'Stripe-Signature': header or sign_payload(body)})

    def test_succeeded_payment_completes_bid_once(self, app, users, accepted_bid):
        client = app.test_client()
        body = payment_event(accepted_bid)

        first = self._deliver(client, body)
        assert first.status_code == 200
        assert first.get_json() == {'received': True, 'handled': True}

        # Redelivery of the same event
        second = self._deliver(client, body)
        assert second.get_json() == {'received': True, 'handled': False}

        with app.app_context():
            bid = db.session.get(Bid, accepted_bid)
            assert bid.status == BID_COMPLETED
            assert bid.agreed_amount == 150
            assert db.session.get(HelpRequest, bid.help_request_id).status == REQUEST_COMPLETED
            assert db.session.get(User, users.bidder).credibility_points == 10

    def test_bad_signature_is_rejected(self, app, accepted_bid):
        body = payment_event(accepted_bid)
        response = self._deliver(app.test_client(), body, header=sign_payload(body, secret='whsec_other'))
        assert response.status_code == 400
        assert response.get_json()['message'].startswith('Webhook Error')

        with app.app_context():
            assert db.session.get(Bid, accepted_bid).status != BID_COMPLETED

    def test_other_events_are_acknowledged(self, app, accepted_bid):
        body = payment_event(accepted_bid, event_type='payment_intent.created')
        assert self._deliver(app.test_client(), body).get_json() == {'received': True, 'handled': False}

    def test_unknown_bid_is_acknowledged(self, app):
        body = payment_event(9999)
        assert self._deliver(app.test_client(), body).get_json()['handled'] is False

    def test_pending_bid_is_not_completed(self, app, users):
        with app.app_context():
            help_request = make_request(db.session.get(User, users.owner))
            bid_id = BidService.place(db.session.get(User, users.bidder), help_request.id, 150).id

        assert self._deliver(app.test_client(), payment_event(bid_id)).get_json()['handled'] is False


class TestPaymentIntent:
    def test_create_intent_splits_fee(self, owner_client, accepted_bid, monkeypatch):
        calls = []

        def fake_request(method, url, data=None, headers=None, timeout=None):
            calls.append({'method': method, 'url': url, 'data': data, 'headers': headers})
            return FakeResponse(200, {'id': 'pi_123', 'client_secret': 'pi_123_secret_abc'})

        monkeypatch.setattr(requests, 'request', fake_request)
        response = owner_client.post('/api/payments/create-payment-intent', json={'bid_id': accepted_bid})
        body = response.get_json()

        assert response.status_code == 200
        assert body['clientSecret'] == 'pi_123_secret_abc'
        assert body['amount'] == 150.0
        assert body['platformFee'] == 15.0
        assert body['helperAmount'] == 135.0
        assert body['currency'] == 'usd'

        sent = calls[0]
        assert sent['url'] == 'https://api.stripe.com/v1/payment_intents'
        assert sent['data']['amount'] == '15000'
        assert sent['data']['metadata[bidId]'] == str(accepted_bid)
        assert sent['headers']['Idempotency-Key'] == f'bid-{accepted_bid}-15000'

    def test_pending_bid_cannot_be_paid(self, app, users, owner_client):
        with app.app_context():
            help_request = make_request(db.session.get(User, users.owner))
            bid_id = BidService.place(db.session.get(User, users.bidder), help_request.id, 150).id

        response = owner_client.post('/api/payments/create-payment-intent', json={'bid_id': bid_id})
        assert response.status_code == 400
        assert response.get_json()['message'] == 'Bid is not accepted'

    def test_only_owner_can_pay(self, bidder_client, accepted_bid):
        response = bidder_client.post('/api/payments/create-payment-intent', json={'bid_id': accepted_bid})
        assert response.status_code == 403

    def test_stripe_error_is_bad_gateway(self, gateway, monkeypatch):
        monkeypatch.setattr(requests, 'request', lambda *args, **kwargs: FakeResponse(
            402, {'error': {'message': 'Your card was declined.'}}))
        with pytest.raises(UpstreamError) as excinfo:
            gateway._request('POST', '/payment_intents', data={})
        assert excinfo.value.status_code == 502
        assert excinfo.value.detail == 'Your card was declined.'

    def test_connection_error_is_bad_gateway(self, gateway, monkeypatch):
        def unreachable(*args, **kwargs):
            raise requests.ConnectionError('connection refused')

        monkeypatch.setattr(requests, 'request', unreachable)
        with pytest.raises(UpstreamError) as excinfo:
            gateway._request('POST', '/payment_intents', data={})
        assert excinfo.value.status_code == 502

    def test_split_amount_rounds_to_cents(self, gateway):
        assert gateway.split_amount(99.99) == (9999, 1000, 8999)
