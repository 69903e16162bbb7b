"""
Klaviyo Integration Service.

Subscribes new program members to the store's email list.

API Documentation: https://developers.klaviyo.com/en/reference/api_overview
API Revision: 2024-10-15
"""

import logging
import requests
from typing import Dict, Optional

from ..utils.exceptions import KlaviyoError

logger = logging.getLogger(__name__)


class KlaviyoService:
    """
    Klaviyo API integration for email marketing.

    Usage:
        service = KlaviyoService(api_key, list_id)
        service.subscribe_to_list('a@example.com', 'Ada')
    """

    BASE_URL = "https://a.klaviyo.com/api"
    API_REVISION = "2024-10-15"

    def __init__(self, api_key: Optional[str], list_id: Optional[str]):
        self.api_key = api_key
        self.list_id = list_id

    @classmethod
    def from_settings(cls, settings) -> 'KlaviyoService':
        return cls(settings.klaviyo_api_key, settings.klaviyo_list_id)

    def _get_headers(self) -> Dict[str, str]:
        """Get headers for Klaviyo API requests."""
        if not self.api_key:
            raise KlaviyoError("Klaviyo API key not configured")

        return {
            "Authorization": f"Klaviyo-API-Key {self.api_key}",
            "revision": self.API_REVISION,
            "Content-Type": "application/json",
            "Accept": "application/json"
        }

    def is_enabled(self) -> bool:
        return bool(self.api_key and self.list_id)

    def subscribe_to_list(self, email: str, first_name: str = None) -> Optional[bool]:
        """
        Subscribe a profile to the configured list.

        Returns:
            True when Klaviyo accepted the subscription, False when it did
            not (worth retrying), None when Klaviyo is not configured
        """
        if not self.is_enabled():
            logger.warning('[Klaviyo] Not configured, skipping subscription')
            return None

        profile = {"email": email}
        if first_name:
            profile["first_name"] = first_name

        payload = {
            "data": {
                "type": "profile-subscription-bulk-create-job",
                "attributes": {
                    "profiles": {
                        "data": [
                            {
                                "type": "profile",
                                "attributes": {
                                    "email": email,
                                    "subscriptions": {
                                        "email": {
                                            "marketing": {"consent": "SUBSCRIBED"}
                                        }
                                    }
                                }
                            }
                        ]
                    }
                },
                "relationships": {
                    "list": {
                        "data": {"type": "list", "id": self.list_id}
                    }
                }
            }
        }

        try:
            response = requests.post(
                f"{self.BASE_URL}/profile-subscription-bulk-create-jobs/",
                headers=self._get_headers(),
                json=payload,
                timeout=10
            )
        except requests.exceptions.RequestException as e:
            logger.error(f'[Klaviyo] Subscription request failed for {email}: {e}')
            return False

        if response.status_code not in [200, 201, 202, 204]:
            logger.error(f'[Klaviyo] Subscription error {response.status_code}: {response.text}')
            return False

        if first_name:
            self._update_first_name(profile)

        logger.info(f'[Klaviyo] Subscribed {email} to list {self.list_id}')
        return True

    def _update_first_name(self, profile: Dict[str, str]) -> None:
        """Create or update the profile so the first name is stored."""
        payload = {
            "data": {
                "type": "profile",
                "attributes": profile
            }
        }
        try:
            response = requests.post(
                f"{self.BASE_URL}/profile-import/",
                headers=self._get_headers(),
                json=payload,
                timeout=10
            )
            if response.status_code not in [200, 201, 202]:
                logger.warning(f'[Klaviyo] Profile update error {response.status_code}')
        except requests.exceptions.RequestException as e:
            logger.warning(f'[Klaviyo] Profile update failed: {e}')
