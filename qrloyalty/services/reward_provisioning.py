"""
Reward Provisioning Engine.

Grants a tier's reward bundle to a customer once per tier transition.

Flow for ensure_tier_rewards(customer_id, tier):
1. State already at this tier -> nothing to do
2. No active templates for the tier -> nothing to do, no state written
3. Take the per-customer lease (reward_provisioning_locks); if another
   request holds it, back off. Re-read state under the lease.
4. Run every template through the sync adapter; one failing reward does
   not stop the others
5. Save the new state (tier, reward tokens, primary code) and release

Concurrent scans for one customer therefore mint at most one bundle per
transition, even across gunicorn workers.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from flask import current_app
from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models.merchant import Merchant
from ..models.rewards import CustomerRewardState, ExternalDiscountRecord, ProvisioningLock
from ..utils.exceptions import NotFoundError
from .reward_sync import RewardSyncService
from .reward_templates import RewardTemplateStore
from .shopify_client import get_shopify_client


STATUS_UNCHANGED = 'unchanged'
STATUS_NO_TEMPLATES = 'no_templates'
STATUS_IN_PROGRESS = 'in_progress'
STATUS_PROVISIONED = 'provisioned'


@dataclass
class ProvisioningOutcome:
    status: str
    tier: str
    tokens: List[str] = field(default_factory=list)
    primary_code: Optional[str] = None
    failures: List[Dict[str, str]] = field(default_factory=list)

    @property
    def provisioned(self) -> bool:
        return self.status == STATUS_PROVISIONED

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status,
            'tier': self.tier,
            'tokens': list(self.tokens),
            'primary_code': self.primary_code,
            'failures': list(self.failures),
        }


def describe_reward(reward_type: str, config: Dict[str, Any]) -> str:
    """Human-readable line for a reward, shown in the next-tier preview."""
    config = config or {}
    if reward_type == 'discount':
        return f"{config.get('percentage')}% off your next order"
    if reward_type == 'free_shipping':
        minimum = config.get('minimum_order', config.get('minimumOrder', 0))
        return f"Free shipping on orders over {minimum}" if minimum else 'Free shipping on every order'
    if reward_type == 'exclusive_product':
        return 'Access to exclusive products'
    if reward_type == 'early_access':
        return 'Early access to special sales'
    return 'Special reward'


class RewardProvisioningEngine:
    """
    Usage:
        engine = RewardProvisioningEngine(merchant_id)
        outcome = engine.ensure_tier_rewards('anon_1a2b3c', 'Gold')
        if outcome.failures:
            ...
    """

    def __init__(self, merchant_id: int, sync_service: RewardSyncService = None,
                 template_store: RewardTemplateStore = None):
        self.merchant_id = merchant_id
        self._sync = sync_service
        self.templates = template_store or RewardTemplateStore(merchant_id)

    @property
    def sync(self) -> RewardSyncService:
        if self._sync is None:
            merchant = db.session.get(Merchant, self.merchant_id)
            self._sync = RewardSyncService(self.merchant_id, get_shopify_client(merchant))
        return self._sync

    def _load_state(self, customer_id: str) -> Optional[CustomerRewardState]:
        return CustomerRewardState.query.filter_by(
            merchant_id=self.merchant_id,
            customer_id=customer_id,
        ).populate_existing().first()

    # ==================== Lease ====================

    def _acquire_lock(self, customer_id: str) -> Optional[str]:
        """Take the customer's provisioning lease. Returns the owner token, or None if held."""
        now = datetime.utcnow()
        ttl = current_app.config.get('PROVISIONING_LOCK_TTL', 60)
        owner = uuid.uuid4().hex

        try:
            # Leases past their expiry belong to a crashed run
            db.session.execute(
                delete(ProvisioningLock)
                .where(
                    ProvisioningLock.merchant_id == self.merchant_id,
                    ProvisioningLock.customer_id == customer_id,
                    ProvisioningLock.expires_at < now,
                )
                .execution_options(synchronize_session=False)
            )
            db.session.add(ProvisioningLock(
                merchant_id=self.merchant_id,
                customer_id=customer_id,
                owner=owner,
                acquired_at=now,
                expires_at=now + timedelta(seconds=ttl),
            ))
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            return None
        return owner

    def _release_lock(self, customer_id: str, owner: str) -> None:
        try:
            db.session.execute(
                delete(ProvisioningLock)
                .where(
                    ProvisioningLock.merchant_id == self.merchant_id,
                    ProvisioningLock.customer_id == customer_id,
                    ProvisioningLock.owner == owner,
                )
                .execution_options(synchronize_session=False)
            )
            db.session.commit()
        except Exception as e:
            # Left to expire after PROVISIONING_LOCK_TTL
            db.session.rollback()
            current_app.logger.error(f'[Rewards] Failed to release lease for {customer_id}: {e}')

    # ==================== Provisioning ====================

    def ensure_tier_rewards(self, customer_id: str, tier: str) -> ProvisioningOutcome:
        """
        Make sure the customer holds the rewards of ``tier``.

        Idempotent per tier: once the state records ``tier`` further calls
        mint nothing.
        """
        state = self._load_state(customer_id)
        if state and state.current_tier == tier:
            return ProvisioningOutcome(STATUS_UNCHANGED, tier,
                                       list(state.active_reward_kinds or []), state.primary_code)

        templates = self.templates.get_active_templates(tier)
        if not templates:
            current_app.logger.info(f'[Rewards] No reward templates for tier {tier} (merchant {self.merchant_id})')
            return ProvisioningOutcome(STATUS_NO_TEMPLATES, tier)

        owner = self._acquire_lock(customer_id)
        if owner is None:
            current_app.logger.info(f'[Rewards] Provisioning already running for {customer_id}, skipping')
            return ProvisioningOutcome(STATUS_IN_PROGRESS, tier)

        try:
            state = self._load_state(customer_id)
            if state and state.current_tier == tier:
                return ProvisioningOutcome(STATUS_UNCHANGED, tier,
                                           list(state.active_reward_kinds or []), state.primary_code)

            outcome = ProvisioningOutcome(STATUS_PROVISIONED, tier)
            for template in templates:
                reward_type = template.reward_type
                try:
                    result = self.sync.provision(customer_id, tier, template.typed_config)
                except Exception as e:
                    db.session.rollback()
                    current_app.logger.error(
                        f'[Rewards] {reward_type} reward failed for {customer_id} at {tier}: {e}'
                    )
                    outcome.failures.append({'reward_type': reward_type, 'error': str(e)})
                    continue

                outcome.tokens.append(result.token)
                if result.code and (reward_type == 'discount' or outcome.primary_code is None):
                    outcome.primary_code = result.code

            self._save_state(customer_id, outcome)
            current_app.logger.info(
                f'[Rewards] {customer_id} -> {tier}: {outcome.tokens}'
                + (f' ({len(outcome.failures)} failed)' if outcome.failures else '')
            )
            return outcome
        finally:
            self._release_lock(customer_id, owner)

    def _save_state(self, customer_id: str, outcome: ProvisioningOutcome) -> CustomerRewardState:
        ttl_days = current_app.config.get('REWARD_STATE_TTL_DAYS', 30)
        state = self._load_state(customer_id)
        if state is None:
            state = CustomerRewardState(merchant_id=self.merchant_id, customer_id=customer_id)
            db.session.add(state)

        state.current_tier = outcome.tier
        state.active_reward_kinds = list(outcome.tokens)
        state.primary_code = outcome.primary_code
        state.expires_at = datetime.utcnow() + timedelta(days=ttl_days)
        db.session.commit()
        return state

    # ==================== Read model ====================

    def _current_code(self, customer_id: str, tier: str) -> Optional[ExternalDiscountRecord]:
        """Most recent unused, unexpired code for the tier."""
        now = datetime.utcnow()
        return ExternalDiscountRecord.query.filter(
            ExternalDiscountRecord.merchant_id == self.merchant_id,
            ExternalDiscountRecord.customer_id == customer_id,
            ExternalDiscountRecord.tier == tier,
            ExternalDiscountRecord.is_used.is_(False),
            db.or_(ExternalDiscountRecord.expires_at.is_(None), ExternalDiscountRecord.expires_at > now),
        ).order_by(ExternalDiscountRecord.created_at.desc(), ExternalDiscountRecord.id.desc()).first()

    def get_customer_active_rewards(self, customer_id: str) -> Optional[Dict[str, Any]]:
        """
        What the customer currently holds, or None before any provisioning.

        ``expires_at`` is the bundle's display window; ``code_valid`` and
        ``code_expires_at`` come from the code's own record.
        """
        state = self._load_state(customer_id)
        if not state:
            return None

        current = self._current_code(customer_id, state.current_tier)
        code = state.primary_code or (current.code if current else None)
        record = None
        if code:
            record = ExternalDiscountRecord.query.filter_by(
                merchant_id=self.merchant_id, code=code
            ).first()

        discount_value = None
        for candidate in (record, current):
            if candidate is not None and candidate.percentage is not None:
                discount_value = candidate.percentage
                break

        return {
            'customer_id': customer_id,
            'tier': state.current_tier,
            'active_rewards': list(state.active_reward_kinds or []),
            'discount_code': code,
            'discount_value': discount_value,
            'expires_at': state.expires_at.isoformat() if state.expires_at else None,
            'is_expired': state.is_expired(),
            'code_valid': record.is_valid() if record else False,
            'code_expires_at': record.expires_at.isoformat() if record and record.expires_at else None,
        }

    def mark_discount_code_used(self, customer_id: str, code: str) -> bool:
        """
        Mark one of the customer's codes as redeemed.

        Returns:
            True if the code was marked now, False if it was already used

        Raises:
            NotFoundError: the customer has no such code
        """
        stmt = (
            update(ExternalDiscountRecord)
            .where(
                ExternalDiscountRecord.merchant_id == self.merchant_id,
                ExternalDiscountRecord.customer_id == customer_id,
                ExternalDiscountRecord.code == code,
                ExternalDiscountRecord.is_used.is_(False),
            )
            .values(is_used=True, used_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        updated = db.session.execute(stmt).rowcount
        db.session.commit()

        if updated:
            current_app.logger.info(f'[Rewards] Code {code} used by {customer_id}')
            return True

        exists = ExternalDiscountRecord.query.filter_by(
            merchant_id=self.merchant_id, customer_id=customer_id, code=code
        ).first()
        if not exists:
            raise NotFoundError('Discount code', code)
        return False

    def next_tier_rewards(self, next_tier: Optional[str]) -> List[Dict[str, Any]]:
        """Preview of what reaching next_tier would grant."""
        if not next_tier:
            return []
        return [
            {
                'type': template.reward_type,
                'config': template.config or {},
                'description': describe_reward(template.reward_type, template.config),
            }
            for template in self.templates.get_active_templates(next_tier)
        ]
