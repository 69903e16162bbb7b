"""
Tests for the Shopify Admin GraphQL client.
"""
import httpx
import pytest
from decimal import Decimal
from unittest.mock import MagicMock, patch

from app.services.shopify_client import RewardKind, ShopifyClient
from app.utils.exceptions import ConfigurationError, ShopifyError


def graphql_response(data=None, errors=None):
    response = MagicMock()
    body = {'data': data or {}}
    if errors:
        body['errors'] = errors
    response.json.return_value = body
    return response


@pytest.fixture
def http():
    """Patch httpx.Client; yields the post mock."""
    with patch('app.services.shopify_client.httpx.Client') as client_cls:
        yield client_cls.return_value.__enter__.return_value.post


@pytest.fixture
def shopify_client():
    return ShopifyClient('https://test-shop.myshopify.com/', access_token='shpat_test', api_version='2025-04')


def created(node_id='gid://shopify/DiscountCodeNode/1', code=None, user_errors=None):
    return graphql_response({
        'discountCodeBasicCreate': {
            'codeDiscountNode': {
                'id': node_id,
                'codeDiscount': {'codes': {'nodes': [{'code': code}] if code else []}}
            } if node_id else None,
            'userErrors': user_errors or []
        }
    })


class TestClientSetup:

    def test_normalizes_domain(self, shopify_client):
        assert shopify_client.shop_domain == 'test-shop.myshopify.com'
        assert shopify_client.graphql_url == 'https://test-shop.myshopify.com/admin/api/2025-04/graphql.json'

    def test_missing_token(self, http):
        client = ShopifyClient('test-shop.myshopify.com')

        with pytest.raises(ConfigurationError):
            client.get_customer_total_spent('ada@example.com')
        http.assert_not_called()

    def test_sends_token_header(self, http, shopify_client):
        http.return_value = graphql_response({'customers': {'edges': []}})

        shopify_client.get_customer_total_spent('ada@example.com')

        headers = http.call_args.kwargs['headers']
        assert headers['X-Shopify-Access-Token'] == 'shpat_test'

    def test_http_error(self, http, shopify_client):
        http.side_effect = httpx.ConnectError('connection refused')

        with pytest.raises(ShopifyError):
            shopify_client.get_customer_total_spent('ada@example.com')

    def test_non_json_body(self, http, shopify_client):
        response = MagicMock()
        response.json.side_effect = ValueError('Expecting value: line 1 column 1 (char 0)')
        http.return_value = response

        with pytest.raises(ShopifyError) as exc:
            shopify_client.get_customer_total_spent('ada@example.com')
        assert 'invalid JSON' in exc.value.message

    def test_graphql_errors(self, http, shopify_client):
        http.return_value = graphql_response(errors=[{'message': 'Throttled'}])

        with pytest.raises(ShopifyError) as exc:
            shopify_client.get_customer_total_spent('ada@example.com')
        assert 'Throttled' in exc.value.message


class TestCreateDiscount:

    def test_dynamic_points_discount(self, http, shopify_client):
        http.return_value = created()

        result = shopify_client.create_discount('dynamic', 1250)

        assert result['discount_id'] == 'gid://shopify/DiscountCodeNode/1'
        assert result['code'].startswith('POINTS12.50CAD_')

        discount = http.call_args.kwargs['json']['variables']['basicCodeDiscount']
        assert discount['code'] == result['code']
        assert discount['usageLimit'] == 1
        assert discount['customerGets']['value']['discountAmount']['amount'] == '12.50'

    def test_fixed_value_discount(self, http, shopify_client):
        http.return_value = created()

        result = shopify_client.create_discount('15', 0)

        assert result['code'].startswith('POINTS15CAD_')

    def test_code_echoed_by_shopify_wins(self, http, shopify_client):
        http.return_value = created(code='POINTS15CAD_SHOP1')
        assert shopify_client.create_discount('15', 0)['code'] == 'POINTS15CAD_SHOP1'

    def test_free_product_discount(self, http, shopify_client):
        http.return_value = created()

        result = shopify_client.create_discount(
            '100', 0,
            reward_kind=RewardKind.FREE_PRODUCT,
            collection_id='gid://shopify/Collection/1'
        )

        assert result['code'].startswith('MILESTONEFREE_')
        discount = http.call_args.kwargs['json']['variables']['basicCodeDiscount']
        assert discount['customerGets']['value'] == {'percentage': 1.0}
        assert discount['customerGets']['items'] == {'collections': {'add': ['gid://shopify/Collection/1']}}

    def test_free_product_requires_collection(self, http, shopify_client):
        with pytest.raises(ShopifyError):
            shopify_client.create_discount('100', 0, reward_kind=RewardKind.FREE_PRODUCT)
        http.assert_not_called()

    def test_user_errors(self, http, shopify_client):
        http.return_value = created(node_id=None, user_errors=[{'field': ['code'], 'message': 'Code taken'}])

        with pytest.raises(ShopifyError):
            shopify_client.create_discount('15', 0)


class TestDeactivateDiscount:

    def test_ends_one_minute_after_start(self, http, shopify_client):
        http.side_effect = [
            graphql_response({'codeDiscountNode': {'codeDiscount': {'startsAt': '2026-01-20T12:00:00Z'}}}),
            graphql_response({'discountCodeBasicUpdate': {'codeDiscountNode': {'id': 'gid://1'}, 'userErrors': []}}),
        ]

        assert shopify_client.deactivate_discount('gid://1') is True

        update = http.call_args_list[1].kwargs['json']['variables']
        assert update['id'] == 'gid://1'
        assert update['basicCodeDiscount']['endsAt'] == '2026-01-20T12:01:00+00:00'

    def test_unknown_discount(self, http, shopify_client):
        http.return_value = graphql_response({'codeDiscountNode': None})

        with pytest.raises(ShopifyError):
            shopify_client.deactivate_discount('gid://missing')

    def test_rejected_update(self, http, shopify_client):
        http.side_effect = [
            graphql_response({'codeDiscountNode': {'codeDiscount': {'startsAt': '2026-01-20T12:00:00Z'}}}),
            graphql_response({'discountCodeBasicUpdate': {'userErrors': [{'message': 'Discount not found'}]}}),
        ]

        with pytest.raises(ShopifyError) as exc:
            shopify_client.deactivate_discount('gid://1')
        assert exc.value.message == 'Discount not found'


class TestCustomerSpend:

    def test_amount_spent(self, http, shopify_client):
        http.return_value = graphql_response({
            'customers': {'edges': [{'node': {'email': 'ada@example.com', 'amountSpent': {'amount': '812.40'}}}]}
        })

        assert shopify_client.get_customer_total_spent('ada@example.com') == Decimal('812.40')
        assert http.call_args.kwargs['json']['variables'] == {'email': 'email:ada@example.com'}

    def test_unknown_customer(self, http, shopify_client):
        http.return_value = graphql_response({'customers': {'edges': []}})
        assert shopify_client.get_customer_total_spent('ghost@example.com') == Decimal('0')
