"""
Webhook handlers for the referral rewards service.
Processes Shopify order webhooks into purchase points.
"""
from .shopify import webhooks_bp, verify_shopify_webhook

__all__ = [
    'webhooks_bp',
    'verify_shopify_webhook',
]
