"""
Loyalty program and points balance models.

Points are a single running balance per (merchant, customer). There is no
transaction history: the balance row is the only record, mutated through
atomic increments and conditional decrements in the points ledger service.
"""
from datetime import datetime
from enum import Enum
from typing import Dict, Any
from ..extensions import db


class PointsSource(str, Enum):
    """Where the most recent point change came from."""
    SCAN = 'scan'
    PURCHASE = 'purchase'
    MANUAL = 'manual'


class LoyaltyProgram(db.Model):
    """
    Per-merchant loyalty program settings.

    tier_thresholds is an ordered list of {"name", "min_points"}; an empty
    list means the configured defaults apply. Edits overwrite the list
    wholesale (latest wins).
    """
    __tablename__ = 'loyalty_programs'

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey('merchants.id'), nullable=False, unique=True)

    name = db.Column(db.String(100), default='Loyalty program')
    description = db.Column(db.String(500))
    points_per_scan = db.Column(db.Integer, default=10, nullable=False)
    tier_thresholds = db.Column(db.JSON, default=list)
    active = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    merchant = db.relationship('Merchant', backref=db.backref('loyalty_program', uselist=False))

    def __repr__(self):
        return f'<LoyaltyProgram merchant={self.merchant_id} active={self.active}>'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'merchant_id': self.merchant_id,
            'name': self.name,
            'description': self.description,
            'points_per_scan': self.points_per_scan,
            'tier_thresholds': self.tier_thresholds or [],
            'active': self.active,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


class PointsBalance(db.Model):
    """
    Current points balance for a (merchant, customer) pair.

    Design notes:
    - One row per pair (unique constraint)
    - Never assigned directly after creation; see PointsLedgerService
    - customer_id is either a storefront customer id or an anonymous
      fingerprint id (anon_...)
    """
    __tablename__ = 'points_balances'

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey('merchants.id'), nullable=False)
    customer_id = db.Column(db.String(255), nullable=False)

    points = db.Column(db.Integer, default=0, nullable=False)
    last_source = db.Column(db.String(20), default=PointsSource.SCAN.value)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('merchant_id', 'customer_id', name='uq_points_balances_merchant_customer'),
        db.CheckConstraint('points >= 0', name='ck_points_balances_non_negative'),
        db.Index('ix_points_balances_points', 'points'),
    )

    def __repr__(self):
        return f'<PointsBalance {self.merchant_id}/{self.customer_id} pts={self.points}>'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'merchant_id': self.merchant_id,
            'customer_id': self.customer_id,
            'points': self.points,
            'last_source': self.last_source,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
