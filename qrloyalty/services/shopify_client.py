"""
Shopify Admin API client.
Handles the discount codes and customer tags minted as tier rewards.
"""
import time
import logging
import httpx
from datetime import datetime
from typing import Optional, Dict, Any, List
from flask import current_app, has_app_context

from ..utils.exceptions import ConfigurationError, ExternalSyncFailure

logger = logging.getLogger(__name__)

# Worth retrying: throttled or a server-side hiccup
RETRYABLE_STATUS = {429, 500, 502, 503, 504}


def _setting(key: str, default):
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.replace(microsecond=0).isoformat() + 'Z' if value else None


class ShopifyClient:
    """
    Client for Shopify Admin GraphQL API.

    Supports:
    - Percentage and free-shipping discount codes
    - Customer lookup and tagging

    Every call has a timeout and is retried a bounded number of times on
    transport errors and 429/5xx responses. Anything else, including
    GraphQL errors and userErrors, raises ExternalSyncFailure.
    """

    def __init__(self, merchant_id_or_domain, access_token: str = None, api_version: str = None,
                 timeout: float = None, max_retries: int = None):
        """
        Initialize Shopify client.

        Can be initialized either with:
        - merchant_id (int): Will fetch credentials from database
        - shop_domain + access_token: Direct initialization
        """
        if isinstance(merchant_id_or_domain, int):
            from ..extensions import db
            from ..models.merchant import Merchant
            merchant = db.session.get(Merchant, merchant_id_or_domain)
            if not merchant:
                raise ConfigurationError(f"Merchant {merchant_id_or_domain} not found")
            if not merchant.has_shopify_credentials:
                raise ConfigurationError(f"Merchant {merchant_id_or_domain} missing Shopify credentials")
            shop_domain = merchant.shopify_domain
            access_token = merchant.shopify_access_token
        else:
            shop_domain = merchant_id_or_domain

        self.shop_domain = shop_domain.replace('https://', '').replace('http://', '').rstrip('/')
        self.access_token = access_token
        self.api_version = api_version or _setting('SHOPIFY_API_VERSION', '2024-10')
        self.timeout = float(timeout if timeout is not None else _setting('SHOPIFY_TIMEOUT_SECONDS', 5))
        self.max_retries = int(max_retries if max_retries is not None else _setting('SHOPIFY_MAX_RETRIES', 1))
        self.graphql_url = f'https://{self.shop_domain}/admin/api/{self.api_version}/graphql.json'

    def _execute_query(self, query: str, variables: Optional[Dict] = None) -> Dict[str, Any]:
        """Execute a GraphQL query."""
        headers = {
            'X-Shopify-Access-Token': self.access_token,
            'Content-Type': 'application/json'
        }

        payload = {'query': query}
        if variables:
            payload['variables'] = variables

        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(self.graphql_url, headers=headers, json=payload)
                    response.raise_for_status()
                    result = response.json()
                break
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if status in RETRYABLE_STATUS and attempt < attempts:
                    logger.warning(f"[Shopify] HTTP {status} from {self.shop_domain}, retry {attempt}/{self.max_retries}")
                    time.sleep(0.5 * attempt)
                    continue
                raise ExternalSyncFailure(f"Shopify returned HTTP {status}", e)
            except httpx.TransportError as e:
                if attempt < attempts:
                    logger.warning(f"[Shopify] {type(e).__name__} talking to {self.shop_domain}, retry {attempt}/{self.max_retries}")
                    time.sleep(0.5 * attempt)
                    continue
                raise ExternalSyncFailure(f"Shopify unreachable: {e}", e)
            except ValueError as e:
                raise ExternalSyncFailure("Shopify returned invalid JSON", e)

        if result.get('errors'):
            raise ExternalSyncFailure(f"GraphQL errors: {result['errors']}")

        return result.get('data') or {}

    @staticmethod
    def _raise_user_errors(data: Dict[str, Any], operation: str) -> None:
        user_errors = data.get('userErrors') or []
        if user_errors:
            raise ExternalSyncFailure(f"Shopify {operation} errors: {user_errors}")

    # ==================== Discounts ====================

    def create_percentage_discount(
        self,
        code: str,
        percentage: float,
        starts_at: datetime,
        ends_at: Optional[datetime] = None,
        applies_once_per_customer: bool = True,
        title: str = None
    ) -> Dict[str, Any]:
        """
        Create a basic percentage-off code for all items.

        Args:
            code: The discount code customers enter at checkout
            percentage: Whole percentage (15 means 15% off)
            starts_at / ends_at: Validity window (naive UTC)

        Returns:
            Dict with discount_id and code
        """
        mutation = """
        mutation discountCodeBasicCreate($basicCodeDiscount: DiscountCodeBasicInput!) {
            discountCodeBasicCreate(basicCodeDiscount: $basicCodeDiscount) {
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

        variables = {
            'basicCodeDiscount': {
                'title': title or f"Loyalty {code} ({percentage}% off)",
                'code': code,
                'startsAt': _iso(starts_at),
                'endsAt': _iso(ends_at),
                'appliesOncePerCustomer': applies_once_per_customer,
                'customerSelection': {'all': True},
                'customerGets': {
                    'value': {'percentage': percentage / 100},
                    'items': {'all': True}
                },
            }
        }

        result = self._execute_query(mutation, variables)
        data = result.get('discountCodeBasicCreate') or {}
        self._raise_user_errors(data, 'discountCodeBasicCreate')

        node = data.get('codeDiscountNode') or {}
        if not node.get('id'):
            raise ExternalSyncFailure(f"Shopify did not return a discount id for {code}")
        return {'discount_id': node['id'], 'code': code}

    def create_free_shipping_discount(
        self,
        code: str,
        minimum_subtotal: float = 0,
        starts_at: datetime = None,
        ends_at: Optional[datetime] = None,
        title: str = None
    ) -> Dict[str, Any]:
        """Create a free-shipping code, optionally above a minimum subtotal."""
        mutation = """
        mutation discountCodeFreeShippingCreate($freeShippingCodeDiscount: DiscountCodeFreeShippingInput!) {
            discountCodeFreeShippingCreate(freeShippingCodeDiscount: $freeShippingCodeDiscount) {
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

        discount = {
            'title': title or f"Loyalty free shipping {code}",
            'code': code,
            'startsAt': _iso(starts_at or datetime.utcnow()),
            'endsAt': _iso(ends_at),
            'appliesOncePerCustomer': True,
            'customerSelection': {'all': True},
            'destination': {'all': True},
        }
        if minimum_subtotal:
            discount['minimumRequirement'] = {
                'subtotal': {'greaterThanOrEqualToSubtotal': str(minimum_subtotal)}
            }

        result = self._execute_query(mutation, {'freeShippingCodeDiscount': discount})
        data = result.get('discountCodeFreeShippingCreate') or {}
        self._raise_user_errors(data, 'discountCodeFreeShippingCreate')

        node = data.get('codeDiscountNode') or {}
        if not node.get('id'):
            raise ExternalSyncFailure(f"Shopify did not return a discount id for {code}")
        return {'discount_id': node['id'], 'code': code}

    # ==================== Customers ====================

    def find_customer(self, identifier: str) -> Optional[Dict[str, Any]]:
        """
        Look up a customer by email or numeric id.

        Returns:
            {'id': gid, 'tags': [...]} or None when no customer matches
        """
        if identifier.startswith('gid://'):
            identifier = identifier.split('/')[-1]
        search = f'email:{identifier}' if '@' in identifier else f'id:{identifier}'

        query = """
        query findCustomer($query: String!) {
            customers(first: 1, query: $query) {
                edges {
                    node {
                        id
                        tags
                    }
                }
            }
        }
        """

        result = self._execute_query(query, {'query': search})
        edges = (result.get('customers') or {}).get('edges') or []
        if not edges:
            return None

        node = edges[0].get('node') or {}
        return {'id': node.get('id'), 'tags': list(node.get('tags') or [])}

    def update_customer_tags(self, customer_gid: str, tags: List[str]) -> List[str]:
        """Replace a customer's tags. Returns the tags Shopify stored."""
        mutation = """
        mutation customerUpdate($input: CustomerInput!) {
            customerUpdate(input: $input) {
                customer {
                    id
                    tags
                }
                userErrors {
                    field
                    message
                }
            }
        }
        """

        result = self._execute_query(mutation, {'input': {'id': customer_gid, 'tags': tags}})
        data = result.get('customerUpdate') or {}
        self._raise_user_errors(data, 'customerUpdate')
        return list((data.get('customer') or {}).get('tags') or tags)


def get_shopify_client(merchant) -> Optional[ShopifyClient]:
    """Client for a merchant, or None when it has no Shopify credentials."""
    if merchant is None or not merchant.has_shopify_credentials:
        return None
    return ShopifyClient(merchant.shopify_domain, merchant.shopify_access_token)
