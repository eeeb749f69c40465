"""
Tests for the Shopify GraphQL client.

HTTP is served by httpx.MockTransport; no request leaves the process.
"""
import json
from datetime import datetime
from unittest.mock import patch

import httpx
import pytest

from qrloyalty.models import Merchant
from qrloyalty.services.shopify_client import ShopifyClient, get_shopify_client
from qrloyalty.utils.exceptions import ConfigurationError, ExternalSyncFailure


DISCOUNT_CREATED = {
    'data': {
        'discountCodeBasicCreate': {
            'codeDiscountNode': {'id': 'gid://shopify/DiscountCodeNode/1'},
            'userErrors': [],
        }
    }
}


class FakeShopify:
    """Serves queued responses and records the requests it saw."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def handler(self, request):
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        status, body = response
        return httpx.Response(status, json=body)

    def patch(self):
        real_client = httpx.Client
        transport = httpx.MockTransport(self.handler)
        return patch(
            'qrloyalty.services.shopify_client.httpx.Client',
            side_effect=lambda **kwargs: real_client(transport=transport, **kwargs),
        )


@pytest.fixture(autouse=True)
def no_backoff():
    with patch('qrloyalty.services.shopify_client.time.sleep') as sleep:
        yield sleep


def _client(max_retries=0):
    return ShopifyClient('test-shop.myshopify.com', 'shpat_token', api_version='2024-10',
                         timeout=2, max_retries=max_retries)


class TestCreateDiscounts:

    def test_percentage_discount(self):
        fake = FakeShopify((200, DISCOUNT_CREATED))
        with fake.patch():
            result = _client().create_percentage_discount(
                'GOLD15_ABC123', 15, starts_at=datetime(2026, 1, 1), ends_at=datetime(2026, 1, 31))

        assert result == {'discount_id': 'gid://shopify/DiscountCodeNode/1', 'code': 'GOLD15_ABC123'}

        request = fake.requests[0]
        assert str(request.url) == 'https://test-shop.myshopify.com/admin/api/2024-10/graphql.json'
        assert request.headers['X-Shopify-Access-Token'] == 'shpat_token'
        discount = json.loads(request.content)['variables']['basicCodeDiscount']
        assert discount['customerGets']['value']['percentage'] == 0.15
        assert discount['startsAt'] == '2026-01-01T00:00:00Z'
        assert discount['endsAt'] == '2026-01-31T00:00:00Z'

    def test_free_shipping_minimum(self):
        fake = FakeShopify((200, {'data': {'discountCodeFreeShippingCreate': {
            'codeDiscountNode': {'id': 'gid://shopify/DiscountCodeNode/2'}, 'userErrors': [],
        }}}))
        with fake.patch():
            result = _client().create_free_shipping_discount('SHIPGOLD_ABC123', minimum_subtotal=30)

        assert result['discount_id'] == 'gid://shopify/DiscountCodeNode/2'
        discount = json.loads(fake.requests[0].content)['variables']['freeShippingCodeDiscount']
        assert discount['minimumRequirement'] == {'subtotal': {'greaterThanOrEqualToSubtotal': '30'}}

    def test_user_errors_raise(self):
        fake = FakeShopify((200, {'data': {'discountCodeBasicCreate': {
            'codeDiscountNode': None,
            'userErrors': [{'field': ['code'], 'message': 'Code must be unique'}],
        }}}))
        with fake.patch(), pytest.raises(ExternalSyncFailure) as exc:
            _client().create_percentage_discount('DUP', 10, starts_at=datetime(2026, 1, 1))

        assert 'Code must be unique' in exc.value.message

    def test_graphql_errors_raise(self):
        fake = FakeShopify((200, {'errors': [{'message': 'Throttled'}]}))
        with fake.patch(), pytest.raises(ExternalSyncFailure):
            _client().create_percentage_discount('X', 10, starts_at=datetime(2026, 1, 1))


class TestRetries:

    def test_retries_server_error_then_succeeds(self, no_backoff):
        fake = FakeShopify((503, {}), (200, DISCOUNT_CREATED))
        with fake.patch():
            result = _client(max_retries=1).create_percentage_discount(
                'GOLD15_ABC123', 15, starts_at=datetime(2026, 1, 1))

        assert result['discount_id'] == 'gid://shopify/DiscountCodeNode/1'
        assert len(fake.requests) == 2
        no_backoff.assert_called_once()

    def test_gives_up_after_max_retries(self):
        fake = FakeShopify((429, {}), (429, {}), (429, {}))
        with fake.patch(), pytest.raises(ExternalSyncFailure) as exc:
            _client(max_retries=2).create_percentage_discount('X', 10, starts_at=datetime(2026, 1, 1))

        assert len(fake.requests) == 3
        assert 'HTTP 429' in exc.value.message

    def test_client_errors_are_not_retried(self):
        fake = FakeShopify((401, {}), (200, DISCOUNT_CREATED))
        with fake.patch(), pytest.raises(ExternalSyncFailure):
            _client(max_retries=3).create_percentage_discount('X', 10, starts_at=datetime(2026, 1, 1))

        assert len(fake.requests) == 1

    def test_transport_error(self):
        fake = FakeShopify(httpx.ConnectError('connection refused'))
        with fake.patch(), pytest.raises(ExternalSyncFailure) as exc:
            _client().find_customer('buyer@example.com')

        assert isinstance(exc.value.original_error, httpx.ConnectError)


class TestCustomers:

    def test_find_by_email(self):
        fake = FakeShopify((200, {'data': {'customers': {'edges': [
            {'node': {'id': 'gid://shopify/Customer/7', 'tags': ['vip']}},
        ]}}}))
        with fake.patch():
            customer = _client().find_customer('buyer@example.com')

        assert customer == {'id': 'gid://shopify/Customer/7', 'tags': ['vip']}
        assert json.loads(fake.requests[0].content)['variables'] == {'query': 'email:buyer@example.com'}

    def test_find_by_gid(self):
        fake = FakeShopify((200, {'data': {'customers': {'edges': []}}}))
        with fake.patch():
            assert _client().find_customer('gid://shopify/Customer/7') is None

        assert json.loads(fake.requests[0].content)['variables'] == {'query': 'id:7'}

    def test_update_tags(self):
        fake = FakeShopify((200, {'data': {'customerUpdate': {
            'customer': {'id': 'gid://shopify/Customer/7', 'tags': ['vip', 'exclusive_gold_access']},
            'userErrors': [],
        }}}))
        with fake.patch():
            tags = _client().update_customer_tags('gid://shopify/Customer/7', ['vip', 'exclusive_gold_access'])

        assert tags == ['vip', 'exclusive_gold_access']


class TestClientConstruction:

    def test_from_merchant_id(self, app, sample_merchant):
        client = ShopifyClient(sample_merchant.id)
        assert client.shop_domain == 'test-shop.myshopify.com'
        assert client.max_retries == app.config['SHOPIFY_MAX_RETRIES']

    def test_missing_merchant(self, app):
        with pytest.raises(ConfigurationError):
            ShopifyClient(12345)

    def test_get_shopify_client_without_credentials(self, app):
        merchant = Merchant(shop_name='No Token', shopify_domain='bare.myshopify.com')
        assert get_shopify_client(merchant) is None
        assert get_shopify_client(None) is None

    def test_strips_scheme(self):
        assert ShopifyClient('https://shop.myshopify.com/', 't').shop_domain == 'shop.myshopify.com'
