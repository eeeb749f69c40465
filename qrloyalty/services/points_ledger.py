"""
Points Ledger Service.

One running balance per (merchant, customer). Every change is a single
conditional UPDATE so concurrent scans from the same customer never lose
increments:

- award: ``points = points + :amount``; creates the row on first award
- redeem: ``points = points - :amount WHERE points >= :amount``

There is no transaction history. The balance row is the whole ledger.
"""
from datetime import datetime
from typing import Any, Dict, Optional
from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models.loyalty import PointsBalance, PointsSource
from ..utils.exceptions import InsufficientPointsError, ValidationError
from .loyalty_program import LoyaltyProgramService
from .tier_resolver import tier_progress

POINTS_SOURCES = [s.value for s in PointsSource]


class PointsLedgerService:
    """
    Usage:
        ledger = PointsLedgerService(merchant_id)
        balance = ledger.award('anon_1a2b3c', 10, 'scan')
        ledger.redeem('anon_1a2b3c', 5)
        info = ledger.get_balance('anon_1a2b3c')
    """

    def __init__(self, merchant_id: int, program_service: LoyaltyProgramService = None):
        self.merchant_id = merchant_id
        self.program_service = program_service or LoyaltyProgramService(merchant_id)

    def _balance_filter(self, customer_id: str):
        return (
            PointsBalance.merchant_id == self.merchant_id,
            PointsBalance.customer_id == customer_id,
        )

    def _load(self, customer_id: str) -> Optional[PointsBalance]:
        return PointsBalance.query.filter(
            *self._balance_filter(customer_id)
        ).populate_existing().first()

    def _increment(self, customer_id: str, amount: int, source: str) -> int:
        stmt = (
            update(PointsBalance)
            .where(*self._balance_filter(customer_id))
            .values(
                points=PointsBalance.points + amount,
                last_source=source,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return db.session.execute(stmt).rowcount

    def award(self, customer_id: str, amount: int, source: str = PointsSource.SCAN.value) -> PointsBalance:
        """
        Atomically add points, creating the balance on first award.

        Args:
            customer_id: Storefront or anonymous customer id
            amount: Positive whole number of points
            source: One of scan, purchase, manual

        Raises:
            ValidationError: amount not a positive integer or unknown source
        """
        errors = []
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            errors.append({'field': 'amount', 'message': 'Points amount must be a positive integer'})
        if source not in POINTS_SOURCES:
            errors.append({'field': 'source', 'message': f'source must be one of {", ".join(POINTS_SOURCES)}'})
        if not customer_id:
            errors.append({'field': 'customer_id', 'message': 'customer_id is required'})
        if errors:
            raise ValidationError('Invalid points award', errors=errors)

        try:
            if self._increment(customer_id, amount, source) == 0:
                try:
                    with db.session.begin_nested():
                        db.session.add(PointsBalance(
                            merchant_id=self.merchant_id,
                            customer_id=customer_id,
                            points=amount,
                            last_source=source,
                        ))
                except IntegrityError:
                    # Another request created the row first
                    self._increment(customer_id, amount, source)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        balance = self._load(customer_id)
        current_app.logger.info(
            f'[Points] +{amount} ({source}) merchant={self.merchant_id} '
            f'customer={customer_id} balance={balance.points}'
        )
        return balance

    def redeem(self, customer_id: str, amount: int) -> PointsBalance:
        """
        Subtract points if the balance covers them.

        Raises:
            ValidationError: amount not a positive integer
            InsufficientPointsError: balance below amount (balance unchanged)
        """
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise ValidationError('Points amount must be a positive integer', field='amount')

        stmt = (
            update(PointsBalance)
            .where(*self._balance_filter(customer_id), PointsBalance.points >= amount)
            .values(points=PointsBalance.points - amount, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        try:
            updated = db.session.execute(stmt).rowcount
            if updated == 0:
                db.session.rollback()
                current = self._load(customer_id)
                raise InsufficientPointsError(current.points if current else 0, amount)
            db.session.commit()
        except InsufficientPointsError:
            raise
        except Exception:
            db.session.rollback()
            raise

        balance = self._load(customer_id)
        current_app.logger.info(
            f'[Points] -{amount} merchant={self.merchant_id} customer={customer_id} balance={balance.points}'
        )
        return balance

    def get_points(self, customer_id: str) -> int:
        balance = self._load(customer_id)
        return balance.points if balance else 0

    def get_balance(self, customer_id: str) -> Dict[str, Any]:
        """
        Points plus tier standing.

        Returns:
            {'points', 'tier', 'next_tier', 'points_to_next_tier'}; the last
            two are None at the top tier.
        """
        points = self.get_points(customer_id)
        progress = tier_progress(points, self.program_service.get_thresholds())
        return {
            'customer_id': customer_id,
            'points': points,
            **progress,
        }
