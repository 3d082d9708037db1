"""
Stripe payments over the REST API: payment intents for accepted bids and
signature-verified webhook reconciliation
"""

import hashlib
import hmac
import json
import logging
import time
import requests
from models import db, Bid, BID_ACCEPTED, BID_COMPLETED
from utils.error_handling import ValidationError, Conflict, UpstreamError
from utils.bid_service import BidService

logger = logging.getLogger(__name__)

STRIPE_API_BASE = 'https://api.stripe.com/v1'
SIGNATURE_TOLERANCE_SECONDS = 300
EVENT_PAYMENT_SUCCEEDED = 'payment_intent.succeeded'


class WebhookError(ValidationError):
    default_message = 'Webhook Error'


class PaymentGateway:
    """Stripe client configured once per application"""

    def __init__(self, secret_key=None, webhook_secret=None, currency='usd', platform_fee_rate=0.10,
                 api_base=STRIPE_API_BASE, timeout=15):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.currency = currency.lower()
        self.platform_fee_rate = platform_fee_rate
        self.api_base = api_base
        self.timeout = timeout

    @classmethod
    def from_config(cls, config):
        return cls(
            secret_key=config.get('STRIPE_SECRET_KEY'),
            webhook_secret=config.get('STRIPE_WEBHOOK_SECRET'),
            currency=config.get('PAYMENT_CURRENCY', 'usd'),
            platform_fee_rate=float(config.get('PLATFORM_FEE_RATE', 0.10)),
        )

    def _request(self, method, path, data=None, idempotency_key=None):
        if not self.secret_key:
            raise UpstreamError('Payment processor is not configured.', 500)

        headers = {'Authorization': f'Bearer {self.secret_key}'}
        if idempotency_key:
            headers['Idempotency-Key'] = idempotency_key

        try:
            response = requests.request(method, f'{self.api_base}{path}', data=data,
                                        headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Stripe connection error on {method} {path}: {str(e)}")
            raise UpstreamError('Payment processor is unavailable. Please try again later.', 502, detail=str(e))

        try:
            payload = response.json()
        except ValueError:
            raise UpstreamError('Payment processor returned an invalid response.', 502,
                                detail=f'HTTP {response.status_code}')

        if response.status_code >= 400:
            detail = (payload.get('error') or {}).get('message')
            logger.error(f"Stripe API error {response.status_code} on {method} {path}: {detail}")
            status = 429 if response.status_code == 429 else 502
            raise UpstreamError('Payment processor rejected the request.', status, detail=detail)
        return payload

    def split_amount(self, amount):
        """Charged amount, platform fee and helper share, all in cents"""
        amount_cents = int(round(amount * 100))
        fee_cents = int(round(amount_cents * self.platform_fee_rate))
        return amount_cents, fee_cents, amount_cents - fee_cents

    def create_payment_intent(self, bid):
        amount_cents, fee_cents, helper_cents = self.split_amount(bid.bid_amount)
        data = {
            'amount': str(amount_cents),
            'currency': self.currency,
            'automatic_payment_methods[enabled]': 'true',
            'metadata[bidId]': str(bid.id),
            'metadata[helpRequestId]': str(bid.help_request_id),
        }
        # Transfers to the helper's connected account are not wired yet
        intent = self._request('POST', '/payment_intents', data=data,
                               idempotency_key=f'bid-{bid.id}-{amount_cents}')

        logger.info(f"Payment intent {intent.get('id')} created for bid {bid.id}")
        return {
            'clientSecret': intent.get('client_secret'),
            'amount': amount_cents / 100,
            'platformFee': fee_cents / 100,
            'helperAmount': helper_cents / 100,
            'currency': self.currency,
        }

    def verify_signature(self, raw_body, signature_header, now=None):
        """Check a Stripe-Signature header and return the decoded event"""
        if not self.webhook_secret:
            raise WebhookError('Webhook Error: signing secret is not configured')
        if not signature_header:
            raise WebhookError('Webhook Error: missing Stripe signature')

        parts = {}
        for item in signature_header.split(','):
            if '=' in item:
                key, value = item.split('=', 1)
                parts.setdefault(key.strip(), []).append(value.strip())

        timestamp = parts.get('t', [None])[0]
        signatures = parts.get('v1', [])
        if not timestamp or not signatures:
            raise WebhookError('Webhook Error: invalid Stripe signature header')
        try:
            timestamp_value = int(timestamp)
        except ValueError:
            raise WebhookError('Webhook Error: invalid Stripe signature timestamp')

        now = now if now is not None else time.time()
        if abs(now - timestamp_value) > SIGNATURE_TOLERANCE_SECONDS:
            raise WebhookError('Webhook Error: timestamp outside the tolerance zone')

        signed_payload = f"{timestamp}.".encode('utf-8') + raw_body
        digest = hmac.new(self.webhook_secret.encode('utf-8'), signed_payload, hashlib.sha256).hexdigest()
        if not any(hmac.compare_digest(digest, signature) for signature in signatures):
            raise WebhookError('Webhook Error: signature verification failed')

        try:
            return json.loads(raw_body)
        except ValueError:
            raise WebhookError('Webhook Error: invalid payload')


class PaymentService:
    """Bid-side payment operations"""

    @staticmethod
    def create_intent(gateway, bid_id, user):
        bid = BidService.get_for_owner(bid_id, user)
        if bid.status != BID_ACCEPTED:
            raise Conflict('Bid is not accepted')
        return gateway.create_payment_intent(bid)

    @staticmethod
    def handle_event(event):
        """Apply a verified webhook event; returns True when state changed"""
        event_type = event.get('type')
        if event_type != EVENT_PAYMENT_SUCCEEDED:
            logger.info(f"Unhandled Stripe event type {event_type}")
            return False

        intent = (event.get('data') or {}).get('object') or {}
        bid_id = (intent.get('metadata') or {}).get('bidId')
        try:
            bid = db.session.get(Bid, int(bid_id))
        except (TypeError, ValueError):
            bid = None
        if not bid:
            logger.error(f"Payment {intent.get('id')} succeeded for unknown bid {bid_id}")
            return False

        # Stripe retries deliveries; a settled bid is left alone
        if bid.status == BID_COMPLETED:
            logger.info(f"Payment {intent.get('id')} for bid {bid.id} already reconciled")
            return False
        if bid.status != BID_ACCEPTED:
            logger.warning(f"Payment {intent.get('id')} succeeded for bid {bid.id} in status '{bid.status}'")
            return False

        BidService.mark_completed(bid)
        db.session.commit()
        logger.info(f"Payment {intent.get('id')} completed bid {bid.id} and request {bid.help_request_id}")
        return True
