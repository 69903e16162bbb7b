"""
Judge.me Integration Service.

Proxies product review submission and per-customer review lookups so the
storefront never holds the private API token.

API Documentation: https://judge.me/api/docs
"""

import logging
import requests
from typing import Dict, Any, Optional

from ..utils.exceptions import JudgeMeError, ConfigurationError

logger = logging.getLogger(__name__)


class JudgeMeService:
    """
    Judge.me product review integration.

    Usage:
        service = JudgeMeService(api_token, shop_domain)
        service.submit_review({'id': 123, 'email': 'a@example.com', ...})
    """

    BASE_URL = "https://judge.me/api/v1"

    def __init__(self, api_token: Optional[str], shop_domain: str):
        self.api_token = api_token
        self.shop_domain = shop_domain

    @classmethod
    def from_settings(cls, settings) -> 'JudgeMeService':
        return cls(settings.judgeme_api_token, settings.shop_domain)

    def is_enabled(self) -> bool:
        """Check if Judge.me integration is configured."""
        return bool(self.api_token and self.shop_domain)

    def _auth_params(self) -> Dict[str, str]:
        if not self.is_enabled():
            raise ConfigurationError("Judge.me API token not configured")
        return {
            'api_token': self.api_token,
            'shop_domain': self.shop_domain,
            'platform': 'shopify'
        }

    def submit_review(self, review: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a review.

        Args:
            review: Judge.me review fields (id, email, name, rating, body, ...)

        Returns:
            Judge.me response body

        Raises:
            JudgeMeError: request failed or was rejected
        """
        payload = dict(review or {})
        payload.update(self._auth_params())

        try:
            response = requests.post(
                f'{self.BASE_URL}/reviews',
                json=payload,
                timeout=10
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error(f'[JudgeMe] Review submission failed: {e}')
            raise JudgeMeError(f'Failed to submit review: {e}', e)

        return response.json() if response.content else {}

    def fetch_customer_reviews(self, email: str) -> Dict[str, Any]:
        """
        Reviews written by a customer.

        Raises:
            JudgeMeError: request failed
        """
        params = self._auth_params()
        params['reviewer_email'] = email

        try:
            response = requests.get(
                f'{self.BASE_URL}/reviews',
                params=params,
                timeout=10
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error(f'[JudgeMe] Review lookup failed for {email}: {e}')
            raise JudgeMeError(f'Failed to fetch reviews: {e}', e)

        return response.json()
