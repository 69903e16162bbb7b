"""
Shopify webhook handlers.
Processes orders/paid webhooks into purchase points.
"""
import hmac
import hashlib
import base64
from decimal import Decimal, InvalidOperation
from flask import Blueprint, request, jsonify, current_app

from ..services.rewards_service import build_rewards_service
from ..utils.errors import unauthorized
from ..utils.exceptions import CollaboratorError

webhooks_bp = Blueprint('webhooks', __name__)


def verify_shopify_webhook(data: bytes, hmac_header: str, secret: str) -> bool:
    """
    Verify Shopify webhook HMAC signature.

    Shopify signs the raw body with HMAC-SHA256 and sends the base64 digest
    in X-Shopify-Hmac-SHA256. With no secret configured verification is
    bypassed (with a warning) so development stores can deliver webhooks.

    Args:
        data: Raw request body
        hmac_header: X-Shopify-Hmac-SHA256 header
        secret: Webhook secret

    Returns:
        True if valid, False otherwise
    """
    if not secret:
        current_app.logger.warning('SHOPIFY_WEBHOOK_SECRET not set - webhook verification disabled')
        return True

    if not hmac_header:
        return False

    computed_hmac = base64.b64encode(
        hmac.new(
            secret.encode('utf-8'),
            data,
            hashlib.sha256
        ).digest()
    ).decode()

    return hmac.compare_digest(computed_hmac, hmac_header)


def _order_total(order: dict) -> Decimal:
    raw = order.get('total_price') or order.get('subtotal_price') or 0
    try:
        return Decimal(str(raw))
    except InvalidOperation:
        return Decimal('0')


@webhooks_bp.route('/order-paid', methods=['POST'])
def handle_order_paid():
    """
    Handle Shopify orders/paid webhook.

    Flow:
    1. Verify webhook signature
    2. Extract customer email, total, order id and discount codes
    3. Credit purchase points (and any first-purchase referral bonus)

    Skipped orders answer 200 so Shopify stops redelivering them; a failed
    spend lookup answers 502 so Shopify retries.
    """
    hmac_header = request.headers.get('X-Shopify-Hmac-SHA256', '')
    secret = current_app.config.get('SHOPIFY_WEBHOOK_SECRET')

    if not verify_shopify_webhook(request.get_data(), hmac_header, secret):
        current_app.logger.warning('Webhook verification failed')
        return unauthorized('Unauthorized - invalid webhook signature')

    order = request.get_json(silent=True) or {}
    customer = order.get('customer') or {}
    email = customer.get('email') or order.get('email')
    order_total = _order_total(order)
    order_id = order.get('id') or order.get('order_number')
    discount_codes = order.get('discount_codes') or []

    current_app.logger.info(f'Order {order_id}: {email} spent ${order_total}')

    if not email:
        return jsonify({'message': 'No customer email, skipped'}), 200

    if order_total <= 0:
        return jsonify({'message': 'Zero order total, skipped'}), 200

    try:
        result = build_rewards_service().process_purchase(
            email,
            order_total,
            order_id,
            used_discount_codes=discount_codes
        )
    except CollaboratorError as e:
        current_app.logger.error(f'Order {order_id} processing failed: {e}')
        return jsonify({'error': 'Processing error', 'message': e.message}), 502

    if result.get('skipped'):
        return jsonify({'message': result['reason']}), 200

    return jsonify({
        'success': True,
        'email': email,
        'order_id': order_id,
        **result
    }), 200
