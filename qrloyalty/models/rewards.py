"""
Tier reward models.

- RewardTemplate: what a tier grants, configured per merchant
- CustomerRewardState: which tier's rewards a customer currently holds
- ExternalDiscountRecord: every discount/shipping code ever minted
- ProvisioningLock: per-customer lease that serializes provisioning runs

None of these rows are deleted by the provisioning engine. Expiry is
decided by comparing timestamps at read time.
"""
from datetime import datetime
from typing import Dict, Any, Optional
from ..extensions import db
from .reward_config import parse_config, config_to_dict, RewardConfig


class RewardTemplate(db.Model):
    """
    Merchant-configured reward for one tier.

    config always holds the serialized form of the typed config matching
    reward_type (see reward_config.py).
    """
    __tablename__ = 'reward_templates'

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey('merchants.id'), nullable=False)

    tier = db.Column(db.String(50), nullable=False)
    reward_type = db.Column(db.String(30), nullable=False)
    config = db.Column(db.JSON, default=dict, nullable=False)
    is_active = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('merchant_id', 'tier', 'reward_type', name='uq_reward_templates_merchant_tier_type'),
        db.Index('ix_reward_templates_merchant_tier', 'merchant_id', 'tier'),
    )

    def __repr__(self):
        return f'<RewardTemplate {self.merchant_id}/{self.tier}/{self.reward_type}>'

    @property
    def typed_config(self) -> RewardConfig:
        return parse_config(self.reward_type, self.config)

    def set_config(self, config: RewardConfig) -> None:
        self.config = config_to_dict(config)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'merchant_id': self.merchant_id,
            'tier': self.tier,
            'reward_type': self.reward_type,
            'config': self.config or {},
            'is_active': self.is_active,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


class CustomerRewardState(db.Model):
    """
    The tier reward bundle a customer currently holds.

    Invariant: after a successful provisioning run current_tier equals the
    tier resolved from the customer's balance at that time. Between a
    points award and the next run it may lag behind.
    """
    __tablename__ = 'customer_reward_states'

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey('merchants.id'), nullable=False)
    customer_id = db.Column(db.String(255), nullable=False)

    current_tier = db.Column(db.String(50), nullable=False)
    active_reward_kinds = db.Column(db.JSON, default=list)  # ['discount_10', 'free_shipping', ...]
    primary_code = db.Column(db.String(100))
    expires_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('merchant_id', 'customer_id', name='uq_customer_reward_states_merchant_customer'),
    )

    def __repr__(self):
        return f'<CustomerRewardState {self.merchant_id}/{self.customer_id} tier={self.current_tier}>'

    def is_expired(self, now: datetime = None) -> bool:
        return bool(self.expires_at and self.expires_at <= (now or datetime.utcnow()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'merchant_id': self.merchant_id,
            'customer_id': self.customer_id,
            'current_tier': self.current_tier,
            'active_reward_kinds': list(self.active_reward_kinds or []),
            'primary_code': self.primary_code,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


class ExternalDiscountRecord(db.Model):
    """
    A discount or free-shipping code minted for a customer.

    external_id is the platform's discount node id, or a local placeholder
    (local:<kind>:<hex>) when the platform could not be reached. Unsynced
    codes are still honored locally; this table is the source of truth for
    whether a code is usable.
    """
    __tablename__ = 'external_discount_records'

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey('merchants.id'), nullable=False)
    customer_id = db.Column(db.String(255), nullable=False)
    tier = db.Column(db.String(50), nullable=False)

    code = db.Column(db.String(100), nullable=False, unique=True)
    external_id = db.Column(db.String(255), nullable=False)
    synced = db.Column(db.Boolean, default=False)
    percentage = db.Column(db.Float)  # None for free shipping codes

    is_used = db.Column(db.Boolean, default=False)
    used_at = db.Column(db.DateTime)
    expires_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.Index('ix_external_discount_records_customer', 'merchant_id', 'customer_id', 'tier'),
    )

    def __repr__(self):
        return f'<ExternalDiscountRecord {self.code} synced={self.synced}>'

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        """Usable: not redeemed and not past its own expiry."""
        if self.is_used:
            return False
        return not (self.expires_at and self.expires_at <= (now or datetime.utcnow()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'code': self.code,
            'tier': self.tier,
            'customer_id': self.customer_id,
            'external_id': self.external_id,
            'synced': self.synced,
            'percentage': self.percentage,
            'is_used': self.is_used,
            'is_valid': self.is_valid(),
            'used_at': self.used_at.isoformat() if self.used_at else None,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class ProvisioningLock(db.Model):
    """
    Lease held while rewards are provisioned for one customer.

    The unique key makes acquisition a single INSERT; a second request for
    the same customer gets an IntegrityError instead of racing.
    """
    __tablename__ = 'reward_provisioning_locks'

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, nullable=False)
    customer_id = db.Column(db.String(255), nullable=False)
    owner = db.Column(db.String(64), nullable=False)
    acquired_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)

    __table_args__ = (
        db.UniqueConstraint('merchant_id', 'customer_id', name='uq_reward_provisioning_locks_merchant_customer'),
    )

    def __repr__(self):
        return f'<ProvisioningLock {self.merchant_id}/{self.customer_id} owner={self.owner}>'
