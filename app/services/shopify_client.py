"""
Shopify Admin API client.
Handles reward discount codes and customer spend lookups.
"""
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Dict, Any

import httpx

from ..utils.exceptions import ShopifyError, ConfigurationError
from .discount_codes import (
    build_milestone_code,
    build_points_code,
    discount_amount_for,
)

logger = logging.getLogger(__name__)


class RewardKind:
    FIXED_AMOUNT = 'fixed_amount'
    FREE_PRODUCT = 'free_product'


class ShopifyClient:
    """
    Client for Shopify Admin GraphQL API.

    Supports:
    - Minting single-use reward discount codes (fixed amount or free collection item)
    - Expiring a discount code
    - Customer lifetime spend lookup
    """

    def __init__(self, shop_domain: str, access_token: str = None, api_version: str = '2025-04'):
        self.shop_domain = (shop_domain or '').replace('https://', '').replace('http://', '').rstrip('/')
        self.access_token = access_token
        self.api_version = api_version
        self.graphql_url = f'https://{self.shop_domain}/admin/api/{api_version}/graphql.json'

    @classmethod
    def from_settings(cls, settings) -> 'ShopifyClient':
        return cls(
            settings.shop_domain,
            access_token=settings.shopify_admin_token,
            api_version=settings.shopify_api_version
        )

    def _execute_query(self, query: str, variables: Optional[Dict] = None) -> Dict[str, Any]:
        """Execute a GraphQL query."""
        if not self.access_token:
            raise ConfigurationError('SHOPIFY_ADMIN_TOKEN is not configured')

        headers = {
            'X-Shopify-Access-Token': self.access_token,
            'Content-Type': 'application/json'
        }

        payload = {'query': query}
        if variables:
            payload['variables'] = variables

        try:
            with httpx.Client() as client:
                response = client.post(
                    self.graphql_url,
                    headers=headers,
                    json=payload,
                    timeout=30.0
                )
                response.raise_for_status()
                result = response.json()
        except httpx.HTTPError as e:
            raise ShopifyError(f'Shopify request failed: {e}', e)
        except ValueError as e:
            raise ShopifyError(f'Shopify returned invalid JSON: {e}', e)

        if 'errors' in result:
            raise ShopifyError(f"GraphQL errors: {result['errors']}")

        return result.get('data') or {}

    # ==================== Discounts ====================

    def create_discount(
        self,
        value_spec=None,
        points: int = 0,
        reward_kind: str = RewardKind.FIXED_AMOUNT,
        collection_id: str = None
    ) -> Dict[str, Any]:
        """
        Create a single-use discount code.

        Args:
            value_spec: 'dynamic' (points / 100 dollars) or a dollar value like '15'
            points: Points being redeemed, used by 'dynamic'
            reward_kind: 'fixed_amount' or 'free_product'
            collection_id: Collection GID, required for 'free_product'

        Returns:
            Dict with code and discount_id

        Raises:
            ShopifyError: Shopify rejected the discount
        """
        starts_at = datetime.utcnow().isoformat() + 'Z'

        if reward_kind == RewardKind.FREE_PRODUCT:
            if not collection_id:
                raise ShopifyError('Missing collection_id for free collection reward')

            code = build_milestone_code()
            discount_input = {
                'title': f'Free Collection Reward ({code})',
                'code': code,
                'startsAt': starts_at,
                'customerSelection': {'all': True},
                'customerGets': {
                    'value': {'percentage': 1.0},
                    'items': {
                        'collections': {'add': [collection_id]}
                    }
                },
                'combinesWith': {
                    'orderDiscounts': False,
                    'productDiscounts': False,
                    'shippingDiscounts': True
                },
                'usageLimit': 1,
                'appliesOncePerCustomer': True
            }
        else:
            amount = discount_amount_for(value_spec, points)
            code = build_points_code(amount)
            discount_input = {
                'title': f'${amount} Off Points Reward',
                'code': code,
                'startsAt': starts_at,
                'customerSelection': {'all': True},
                'customerGets': {
                    'value': {
                        'discountAmount': {
                            'amount': str(amount),
                            'appliesOnEachItem': False
                        }
                    },
                    'items': {'all': True}
                },
                'combinesWith': {
                    'orderDiscounts': True,
                    'productDiscounts': True,
                    'shippingDiscounts': True
                },
                'usageLimit': 1,
                'appliesOncePerCustomer': True
            }

        mutation = """
        mutation discountCodeBasicCreate($basicCodeDiscount: DiscountCodeBasicInput!) {
            discountCodeBasicCreate(basicCodeDiscount: $basicCodeDiscount) {
                codeDiscountNode {
                    id
                    codeDiscount {
                        ... on DiscountCodeBasic {
                            codes(first: 1) {
                                nodes {
                                    code
                                }
                            }
                        }
                    }
                }
                userErrors {
                    field
                    message
                }
            }
        }
        """

        result = self._execute_query(mutation, {'basicCodeDiscount': discount_input})
        data = result.get('discountCodeBasicCreate') or {}

        user_errors = data.get('userErrors', [])
        if user_errors:
            raise ShopifyError(f'Discount creation failed: {user_errors}')

        node = data.get('codeDiscountNode') or {}
        codes = (node.get('codeDiscount') or {}).get('codes', {}).get('nodes', [])
        if not node.get('id'):
            raise ShopifyError('Discount creation returned no discount')

        logger.info(f'[Shopify] Created discount {code}')
        return {
            'code': codes[0].get('code') if codes else code,
            'discount_id': node.get('id')
        }

    def deactivate_discount(self, discount_id: str) -> bool:
        """
        Expire a discount code by ending it one minute after it started.

        Raises:
            ShopifyError: discount not found or update rejected
        """
        if not discount_id:
            raise ShopifyError('No discount id to deactivate')

        query = """
        query getDiscount($id: ID!) {
            codeDiscountNode(id: $id) {
                codeDiscount {
                    ... on DiscountCodeBasic {
                        startsAt
                    }
                }
            }
        }
        """

        result = self._execute_query(query, {'id': discount_id})
        node = result.get('codeDiscountNode') or {}
        starts_at = (node.get('codeDiscount') or {}).get('startsAt')
        if not starts_at:
            raise ShopifyError(f'Could not retrieve startsAt for discount {discount_id}')

        started = datetime.fromisoformat(starts_at.replace('Z', '+00:00'))
        ends_at = (started + timedelta(seconds=60)).isoformat()

        mutation = """
        mutation discountCodeBasicUpdate($id: ID!, $basicCodeDiscount: DiscountCodeBasicInput!) {
            discountCodeBasicUpdate(id: $id, basicCodeDiscount: $basicCodeDiscount) {
                codeDiscountNode {
                    id
                }
                userErrors {
                    field
                    message
                }
            }
        }
        """

        result = self._execute_query(mutation, {
            'id': discount_id,
            'basicCodeDiscount': {'endsAt': ends_at}
        })

        user_errors = (result.get('discountCodeBasicUpdate') or {}).get('userErrors', [])
        if user_errors:
            raise ShopifyError(user_errors[0].get('message') or 'Failed to deactivate discount')

        logger.info(f'[Shopify] Deactivated discount {discount_id}')
        return True

    # ==================== Customers ====================

    def get_customer_total_spent(self, email: str) -> Decimal:
        """
        Lifetime spend for the customer with this email.

        Returns:
            Amount spent, 0 when Shopify has no such customer

        Raises:
            ShopifyError: lookup failed
        """
        query = """
        query getCustomerByEmail($email: String!) {
            customers(first: 1, query: $email) {
                edges {
                    node {
                        id
                        email
                        amountSpent {
                            amount
                            currencyCode
                        }
                    }
                }
            }
        }
        """

        result = self._execute_query(query, {'email': f'email:{email}'})
        edges = (result.get('customers') or {}).get('edges', [])
        if not edges:
            return Decimal('0')

        amount = (edges[0].get('node', {}).get('amountSpent') or {}).get('amount')
        return Decimal(str(amount or '0'))
