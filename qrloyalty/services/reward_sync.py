"""
Reward sync adapter.

Turns one reward template into a concrete grant: a persisted discount or
shipping code, or a customer tag on the storefront. Remote failures are
logged and the local grant stands:

- codes are saved with a ``local:<kind>:<hex>`` placeholder external id
  and ``synced=False`` and remain usable locally
- tags that could not be written are reported as granted anyway

The adapter never raises ExternalSyncFailure to its caller; it does raise
on local database errors.
"""
import secrets
import string
import uuid
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from flask import current_app

from ..extensions import db
from ..models.rewards import ExternalDiscountRecord
from ..models.reward_config import (
    DiscountConfig,
    FreeShippingConfig,
    ExclusiveProductConfig,
    EarlyAccessConfig,
)
from ..utils.exceptions import ExternalSyncFailure

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_SUFFIX_LENGTH = 6
MAX_CODE_ATTEMPTS = 5


@dataclass
class ProvisionResult:
    """What one provisioner granted."""
    token: str
    code: Optional[str] = None
    external_id: Optional[str] = None
    synced: bool = False


def random_suffix(length: int = CODE_SUFFIX_LENGTH) -> str:
    return ''.join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def placeholder_id(kind: str) -> str:
    return f'local:{kind}:{uuid.uuid4().hex}'


def _format_percentage(percentage) -> str:
    return str(int(percentage)) if float(percentage).is_integer() else str(percentage)


class RewardSyncService:
    """
    Usage:
        sync = RewardSyncService(merchant_id, shopify_client)
        result = sync.create_discount_code('anon_1a2b3c', 'Gold', DiscountConfig(percentage=15))
        result.code      # 'LOYALTYGOLD15_X7K2QP'
        result.synced    # False if Shopify was unreachable

    shopify_client may be None (merchant without credentials); every remote
    step then takes the local fallback.
    """

    def __init__(self, merchant_id: int, shopify_client=None):
        self.merchant_id = merchant_id
        self.shopify = shopify_client

    def _unique_code(self, build) -> str:
        for _ in range(MAX_CODE_ATTEMPTS):
            code = build(random_suffix())
            if not ExternalDiscountRecord.query.filter_by(code=code).first():
                return code
        raise RuntimeError('Could not generate a unique discount code')

    def _remote(self, operation: str, call, *args, **kwargs):
        """Run a remote call; returns None on failure after logging it."""
        if self.shopify is None:
            logger.info(f'[Sync] No Shopify credentials for merchant {self.merchant_id}; {operation} kept local')
            return None
        try:
            return call(*args, **kwargs)
        except ExternalSyncFailure as e:
            logger.warning(f'[Sync] {operation} failed for merchant {self.merchant_id}: {e.message}')
            return None

    def _save_code(self, customer_id: str, tier: str, code: str, kind: str,
                   remote: Optional[dict], percentage, expires_at: datetime) -> ExternalDiscountRecord:
        record = ExternalDiscountRecord(
            merchant_id=self.merchant_id,
            customer_id=customer_id,
            tier=tier,
            code=code,
            external_id=remote['discount_id'] if remote else placeholder_id(kind),
            synced=remote is not None,
            percentage=percentage,
            expires_at=expires_at,
        )
        db.session.add(record)
        db.session.commit()
        return record

    # ==================== Codes ====================

    def create_discount_code(self, customer_id: str, tier: str, config: DiscountConfig) -> ProvisionResult:
        """Mint a percentage code ``{prefix}{TIER}{pct}_{suffix}``."""
        pct = _format_percentage(config.percentage)
        code = self._unique_code(lambda suffix: f'{config.code_prefix}{tier.upper()}{pct}_{suffix}')

        now = datetime.utcnow()
        expires_at = now + timedelta(days=config.expires_in_days)
        remote = self._remote(
            'create_percentage_discount',
            getattr(self.shopify, 'create_percentage_discount', None),
            code,
            config.percentage,
            starts_at=now,
            ends_at=expires_at,
            applies_once_per_customer=config.applies_once_per_customer,
            title=f'Loyalty {tier} - {pct}%',
        )

        record = self._save_code(customer_id, tier, code, 'discount', remote,
                                 config.percentage, expires_at)
        current_app.logger.info(
            f'[Rewards] Discount code {code} for {tier} (customer {customer_id}, synced={record.synced})'
        )
        return ProvisionResult(f'discount_{pct}', code, record.external_id, record.synced)

    def apply_free_shipping(self, customer_id: str, tier: str, config: FreeShippingConfig) -> ProvisionResult:
        """Mint a free-shipping code ``SHIP{TIER}_{suffix}``."""
        code = self._unique_code(lambda suffix: f'SHIP{tier.upper()}_{suffix}')

        now = datetime.utcnow()
        expires_at = now + timedelta(days=config.expires_in_days)
        remote = self._remote(
            'create_free_shipping_discount',
            getattr(self.shopify, 'create_free_shipping_discount', None),
            code,
            minimum_subtotal=config.minimum_order,
            starts_at=now,
            ends_at=expires_at,
            title=f'Loyalty {tier} free shipping',
        )

        record = self._save_code(customer_id, tier, code, 'free_shipping', remote, None, expires_at)
        current_app.logger.info(
            f'[Rewards] Free shipping {code} for {tier} (min {config.minimum_order}, synced={record.synced})'
        )
        return ProvisionResult('free_shipping', code, record.external_id, record.synced)

    # ==================== Tags ====================

    def _tag_customer(self, customer_id: str, tag: str) -> bool:
        """Add tag on the storefront. True if the customer carries it afterwards."""
        customer = self._remote('find_customer', getattr(self.shopify, 'find_customer', None), customer_id)
        if not customer:
            if self.shopify is not None:
                logger.info(f'[Sync] No Shopify customer for {customer_id}; {tag} kept local')
            return False

        if tag in customer['tags']:
            return True

        updated = self._remote(
            'update_customer_tags',
            self.shopify.update_customer_tags,
            customer['id'],
            customer['tags'] + [tag],
        )
        return updated is not None

    def grant_exclusive_product_access(self, customer_id: str, tier: str,
                                       config: ExclusiveProductConfig) -> ProvisionResult:
        tag = f'exclusive_{tier.lower()}_access'
        synced = self._tag_customer(customer_id, tag)
        current_app.logger.info(
            f'[Rewards] Exclusive access {tag} for {customer_id} '
            f'({len(config.product_ids)} products, synced={synced})'
        )
        return ProvisionResult('exclusive_access', synced=synced)

    def grant_early_access(self, customer_id: str, tier: str, config: EarlyAccessConfig) -> ProvisionResult:
        tag = f'early_access_{tier.lower()}'
        synced = self._tag_customer(customer_id, tag)
        window = config.access_window
        current_app.logger.info(
            f'[Rewards] Early access {tag} for {customer_id} '
            f'({window.start} - {window.end}, synced={synced})'
        )
        return ProvisionResult('early_access', synced=synced)

    def provision(self, customer_id: str, tier: str, config) -> ProvisionResult:
        """Dispatch a typed config to its provisioner."""
        if isinstance(config, DiscountConfig):
            return self.create_discount_code(customer_id, tier, config)
        if isinstance(config, FreeShippingConfig):
            return self.apply_free_shipping(customer_id, tier, config)
        if isinstance(config, ExclusiveProductConfig):
            return self.grant_exclusive_product_access(customer_id, tier, config)
        if isinstance(config, EarlyAccessConfig):
            return self.grant_early_access(customer_id, tier, config)
        raise TypeError(f'Unsupported reward config: {type(config).__name__}')
