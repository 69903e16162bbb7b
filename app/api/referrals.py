"""
Referral Program API endpoints.

Storefront-facing routes for signup, social action awards, point
redemption and milestone rewards. Request bodies accept the storefront's
camelCase field names as well as snake_case.
"""
import hmac

from flask import Blueprint, request, jsonify, current_app

from ..services.rewards_service import build_rewards_service
from ..utils.errors import ErrorCode, bad_request, unauthorized

referrals_bp = Blueprint('referrals', __name__)


def _field(data: dict, *names):
    """First present value among the given field names."""
    for name in names:
        value = data.get(name)
        if value is not None and value != '':
            return value
    return None


def _json_body() -> dict:
    return request.get_json(silent=True) or {}


@referrals_bp.route('/signup', methods=['POST'])
def signup():
    """
    Enroll a customer in the referral program.

    Request body:
        email: Customer email (required)
        firstName: Customer first name (required)
        referredBy: Referral code of the referring customer (optional)
    """
    data = _json_body()
    email = _field(data, 'email')
    first_name = _field(data, 'firstName', 'first_name')
    referred_by = _field(data, 'referredBy', 'referred_by')

    if not email or not first_name:
        return bad_request('First name and email are required.', ErrorCode.MISSING_FIELD)

    result = build_rewards_service().signup(email, first_name, referred_by)

    if referred_by:
        message = 'User signed up successfully! Use your $15 discount code on your first purchase!'
    else:
        message = f"User signed up successfully and awarded {result['points']} points!"

    return jsonify({'message': message, **result}), 201


@referrals_bp.route('/award', methods=['POST'])
def award():
    """Award points for a whitelisted social action."""
    data = _json_body()
    email = _field(data, 'email')
    action = _field(data, 'action', 'action_type')

    if not email or not action:
        return bad_request('Email and action are required.', ErrorCode.MISSING_FIELD)

    result = build_rewards_service().award_points(email, action)

    return jsonify({
        'message': f'Awarded {result["points_awarded"]} points for action "{action}".',
        'email': email,
        **result
    })


@referrals_bp.route('/user/<path:email>', methods=['GET'])
def get_user(email):
    """Get a program member with their referral link and recent actions."""
    user = build_rewards_service().get_user(email)
    return jsonify({'user': user})


@referrals_bp.route('/redeem', methods=['POST'])
def redeem():
    """
    Redeem points for a discount code.

    Request body:
        email: Customer email
        pointsToRedeem: Points to spend
        redeemType: Action suffix, defaults to 'discount'
        redeemValue: 'dynamic' or a dollar value
    """
    data = _json_body()
    email = _field(data, 'email')
    points = _field(data, 'pointsToRedeem', 'points_to_redeem')

    if not email or not points:
        return bad_request('Missing email or pointsToRedeem.', ErrorCode.MISSING_FIELD)

    result = build_rewards_service().redeem(
        email,
        points,
        redeem_type=_field(data, 'redeemType', 'redeem_type') or 'discount',
        redeem_value=_field(data, 'redeemValue', 'redeem_value')
    )

    return jsonify({'message': 'Redeemed points successfully.', **result})


@referrals_bp.route('/cancel-redeem', methods=['POST'])
def cancel_redeem():
    """Cancel the outstanding discount and refund its points."""
    data = _json_body()
    email = _field(data, 'email')

    if not email:
        return bad_request('Missing email.', ErrorCode.MISSING_FIELD)

    result = build_rewards_service().cancel_redeem(
        email,
        _field(data, 'pointsToRefund', 'points_to_refund')
    )

    return jsonify({'message': 'Points refunded.', **result})


@referrals_bp.route('/mark-discount-used', methods=['POST'])
def mark_discount_used():
    data = _json_body()
    email = _field(data, 'email')
    used_code = _field(data, 'usedCode', 'used_code')

    if not email or not used_code:
        return bad_request('Missing email or usedCode.', ErrorCode.MISSING_FIELD)

    build_rewards_service().mark_discount_used(email, used_code)

    return jsonify({'message': 'Discount removed from DB and deactivated in Shopify.', 'success': True})


@referrals_bp.route('/create-welcome-discount', methods=['POST'])
def create_welcome_discount():
    data = _json_body()
    email = _field(data, 'email')

    if not email:
        return bad_request('Missing email.', ErrorCode.MISSING_FIELD)

    result = build_rewards_service().create_welcome_discount(email)

    return jsonify({'message': 'Welcome discount created successfully.', **result})


@referrals_bp.route('/redeem-milestone', methods=['POST'])
def redeem_milestone():
    """Claim the free-product reward for a referral milestone."""
    data = _json_body()
    email = _field(data, 'email')
    milestone = _field(data, 'milestonePoints', 'milestone_points', 'milestone')

    if not email or not milestone:
        return bad_request('Invalid request.', ErrorCode.MISSING_FIELD)

    result = build_rewards_service().milestone_redeem(email, milestone)

    return jsonify({'message': 'Milestone redeemed!', **result})


@referrals_bp.route('/test-purchase', methods=['POST'])
def test_purchase():
    """
    Simulate a purchase for storefront testing.

    Requires TEST_ENDPOINT_SECRET in the body ('secret') or the
    X-Test-Secret header. Disabled when no secret is configured.
    """
    data = _json_body()
    expected = current_app.config.get('TEST_ENDPOINT_SECRET')
    provided = data.get('secret') or request.headers.get('X-Test-Secret') or ''

    if not expected or not hmac.compare_digest(str(provided), expected):
        return unauthorized('Unauthorized - invalid secret key', ErrorCode.INVALID_SECRET)

    email = _field(data, 'email')
    order_total = _field(data, 'orderTotal', 'order_total')

    if not email or order_total is None:
        return bad_request('Email and orderTotal are required.', ErrorCode.MISSING_FIELD)

    result = build_rewards_service().process_test_purchase(email, order_total)

    return jsonify({
        'message': (
            f"Test purchase successful! Awarded {result['points_awarded']} points "
            f"for ${result['order_total']:.2f} order."
        ),
        'email': email,
        **result
    })
