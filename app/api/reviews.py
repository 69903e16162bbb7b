"""
Product review proxy endpoints.

Forwards storefront review submissions and lookups to Judge.me so the
private API token stays on the server.
"""
from flask import Blueprint, request, jsonify, current_app

from ..config import RewardsSettings
from ..services.judgeme_service import JudgeMeService
from ..utils.errors import ErrorCode, bad_request

reviews_bp = Blueprint('reviews', __name__)


def _judgeme() -> JudgeMeService:
    return JudgeMeService.from_settings(RewardsSettings.from_config(current_app.config))


@reviews_bp.route('/submit-review', methods=['POST'])
def submit_review():
    data = request.get_json(silent=True)
    if not data:
        return bad_request('Review data is required', ErrorCode.MISSING_FIELD)

    return jsonify(_judgeme().submit_review(data))


@reviews_bp.route('/customer-reviews', methods=['GET'])
def customer_reviews():
    email = request.args.get('email')
    if not email:
        return bad_request('Customer email is required', ErrorCode.MISSING_FIELD)

    return jsonify(_judgeme().fetch_customer_reviews(email))
