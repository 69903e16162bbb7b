"""
Tests for the Shopify orders/paid webhook.

Payloads are trimmed-down but realistic Shopify order bodies, signed the
way Shopify signs them.
"""
import json
import hmac
import hashlib
import base64
import pytest
from decimal import Decimal

from app.models import UserAction
from app.utils.exceptions import ShopifyError

WEBHOOK_URL = '/api/shopify/order-paid'
WEBHOOK_SECRET = 'test-webhook-secret'


def generate_hmac_signature(payload: bytes, secret: str) -> str:
    """Generate Shopify-compatible HMAC signature."""
    return base64.b64encode(
        hmac.new(secret.encode('utf-8'), payload, hashlib.sha256).digest()
    ).decode('utf-8')


def make_order(email='ada@example.com', total='20.00', order_id=5678901234567, discount_codes=None):
    return {
        'id': order_id,
        'order_number': 1001,
        'email': email,
        'financial_status': 'paid',
        'currency': 'CAD',
        'subtotal_price': total,
        'total_price': total,
        'customer': {
            'id': 7890123456789,
            'email': email,
            'first_name': 'Ada',
        },
        'discount_codes': discount_codes or [],
    }


@pytest.fixture
def post_order(client, collaborators):
    def _post(order, secret=WEBHOOK_SECRET, signature=None):
        body = json.dumps(order).encode('utf-8')
        headers = {'Content-Type': 'application/json'}
        if signature is None:
            signature = generate_hmac_signature(body, secret)
        if signature:
            headers['X-Shopify-Hmac-SHA256'] = signature
        return client.post(WEBHOOK_URL, data=body, headers=headers)
    return _post


class TestSignature:

    def test_valid_signature_accepted(self, post_order, make_user):
        make_user(email='ada@example.com')
        response = post_order(make_order())
        assert response.status_code == 200

    def test_wrong_secret_rejected(self, post_order, make_user):
        user = make_user(email='ada@example.com')

        response = post_order(make_order(), secret='wrong-secret')

        assert response.status_code == 401
        assert UserAction.query.filter_by(user_id=user.id).count() == 0

    def test_missing_signature_rejected(self, post_order):
        response = post_order(make_order(), signature='')
        assert response.status_code == 401

    def test_verification_skipped_without_secret(self, app, post_order, make_user):
        app.config['SHOPIFY_WEBHOOK_SECRET'] = None
        make_user(email='ada@example.com')

        response = post_order(make_order(), signature='')

        assert response.status_code == 200
        assert response.get_json()['points_awarded'] == 100


class TestOrderPaid:

    def test_credits_purchase(self, post_order, make_user):
        make_user(email='ada@example.com', points=5)

        response = post_order(make_order(total='20.00'))

        assert response.status_code == 200
        data = response.get_json()
        assert data['success'] is True
        assert data['email'] == 'ada@example.com'
        assert data['order_id'] == 5678901234567
        assert data['points_awarded'] == 100
        assert data['new_points'] == 105
        assert data['is_first_purchase'] is True
        assert data['tier'] == 'Bronze'

    def test_redelivery_credits_once(self, post_order, store, make_user):
        user = make_user(email='ada@example.com')

        first = post_order(make_order())
        second = post_order(make_order())

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.get_json()['message'] == 'Order already processed'
        assert store.find_user_by_email('ada@example.com').points == 100
        assert UserAction.query.filter_by(user_id=user.id, action_type='shopify_purchase').count() == 1

    def test_unknown_customer_skipped(self, post_order):
        response = post_order(make_order(email='ghost@example.com'))

        assert response.status_code == 200
        assert response.get_json()['message'] == 'User not in referral program'

    def test_missing_email_skipped(self, post_order):
        order = make_order()
        order['email'] = None
        order['customer'] = None

        response = post_order(order)

        assert response.status_code == 200
        assert response.get_json()['message'] == 'No customer email, skipped'

    def test_zero_total_skipped(self, post_order, collaborators, make_user):
        shopify, _ = collaborators
        make_user(email='ada@example.com')

        response = post_order(make_order(total='0.00'))

        assert response.status_code == 200
        assert response.get_json()['message'] == 'Zero order total, skipped'
        shopify.get_customer_total_spent.assert_not_called()

    def test_spend_lookup_failure_asks_for_retry(self, post_order, collaborators, store, make_user):
        shopify, _ = collaborators
        shopify.get_customer_total_spent.side_effect = ShopifyError('Shopify down')
        make_user(email='ada@example.com', points=5)

        response = post_order(make_order())

        assert response.status_code == 502
        assert store.find_user_by_email('ada@example.com').points == 5

        # Shopify redelivers once the lookup recovers
        shopify.get_customer_total_spent.side_effect = None
        shopify.get_customer_total_spent.return_value = Decimal('0')
        response = post_order(make_order())
        assert response.status_code == 200
        assert response.get_json()['points_awarded'] == 100

    def test_used_reward_code_is_cleared(self, client, post_order, make_user):
        make_user(email='ada@example.com', points=1000)
        code = client.post(
            '/api/referral/redeem', json={'email': 'ada@example.com', 'pointsToRedeem': 500}
        ).get_json()['discount_code']

        response = post_order(make_order(
            total='20.00',
            discount_codes=[{'code': code, 'amount': '5.00', 'type': 'fixed_amount'}]
        ))

        assert response.status_code == 200
        assert response.get_json()['new_points'] == 600
        marker = UserAction.query.filter_by(action_type='discount_tier_used').one()
        assert marker.action_ref == 'tier_500'

        profile = client.get('/api/referral/user/ada@example.com').get_json()['user']
        assert profile['outstanding_redemption'] is None

    def test_first_purchase_pays_referrer(self, post_order, store, make_user):
        make_user(email='ref@example.com', referral_code='REF001')
        make_user(email='ada@example.com', referred_by='REF001')

        response = post_order(make_order())

        bonus = response.get_json()['referrer_bonus']
        assert bonus['referrer_email'] == 'ref@example.com'
        assert bonus['bonus_points'] == 1500
        assert store.find_user_by_email('ref@example.com').referral_count == 1
        assert store.find_balance_mismatches() == []
