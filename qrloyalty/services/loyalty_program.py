"""
Loyalty Program Service.

Per-merchant program settings: points per scan, the tier threshold
table, and whether the program is active. The threshold table is read on
every balance lookup, so it is cached; the cache is injected rather than
imported so the service can run without one.
"""
from typing import Any, Dict, List, Optional
from flask import current_app

from ..extensions import db
from ..models.loyalty import LoyaltyProgram
from ..utils.cache import cache_key
from ..utils.exceptions import ValidationError
from .tier_resolver import TierThreshold, normalize_thresholds


class LoyaltyProgramService:
    """
    Usage:
        service = LoyaltyProgramService(merchant_id, cache=get_cache(current_app))
        thresholds = service.get_thresholds()
    """

    def __init__(self, merchant_id: int, cache=None):
        self.merchant_id = merchant_id
        self.cache = cache

    def _thresholds_key(self) -> str:
        return cache_key('thresholds', merchant_id=self.merchant_id)

    def get_program(self) -> Optional[LoyaltyProgram]:
        return LoyaltyProgram.query.filter_by(merchant_id=self.merchant_id).first()

    def get_or_create_program(self) -> LoyaltyProgram:
        """Return the merchant's program, creating one with defaults."""
        program = self.get_program()
        if program:
            return program

        program = LoyaltyProgram(
            merchant_id=self.merchant_id,
            points_per_scan=current_app.config.get('DEFAULT_POINTS_PER_SCAN', 10),
            tier_thresholds=[],
            active=True,
        )
        db.session.add(program)
        db.session.commit()
        current_app.logger.info(f'[Loyalty] Created default program for merchant {self.merchant_id}')
        return program

    def get_thresholds(self) -> List[TierThreshold]:
        """
        The merchant's ascending threshold table.

        Falls back to DEFAULT_TIER_THRESHOLDS from config when the merchant
        has no program or an empty table.
        """
        if self.cache is not None:
            cached = self.cache.get(self._thresholds_key())
            if cached is not None:
                return normalize_thresholds(cached)

        program = self.get_program()
        raw = (program.tier_thresholds if program else None) or \
            current_app.config.get('DEFAULT_TIER_THRESHOLDS')
        thresholds = normalize_thresholds(raw)

        if self.cache is not None:
            self.cache.set(
                self._thresholds_key(),
                [t.to_dict() for t in thresholds],
                timeout=current_app.config.get('THRESHOLD_CACHE_TIMEOUT', 300),
            )
        return thresholds

    def update_program(self, data: Dict[str, Any]) -> LoyaltyProgram:
        """
        Update program settings. The threshold table is replaced, not merged.

        Raises:
            ValidationError: listing every invalid field
        """
        errors = []
        points_per_scan = data.get('points_per_scan')
        if points_per_scan is not None and (
            not isinstance(points_per_scan, int) or isinstance(points_per_scan, bool) or points_per_scan < 1
        ):
            errors.append({'field': 'points_per_scan', 'message': 'points_per_scan must be a positive integer'})

        thresholds = data.get('tier_thresholds')
        if thresholds is not None:
            errors.extend(_validate_thresholds(thresholds))

        if errors:
            raise ValidationError('Invalid loyalty program settings', errors=errors)

        program = self.get_or_create_program()
        for key in ('name', 'description', 'active'):
            if key in data:
                setattr(program, key, data[key])
        if points_per_scan is not None:
            program.points_per_scan = points_per_scan
        if thresholds is not None:
            program.tier_thresholds = [t.to_dict() for t in normalize_thresholds(thresholds)]

        db.session.commit()
        if self.cache is not None:
            self.cache.delete(self._thresholds_key())

        current_app.logger.info(f'[Loyalty] Program updated for merchant {self.merchant_id}')
        return program


def _validate_thresholds(thresholds) -> List[Dict[str, str]]:
    if not isinstance(thresholds, list):
        return [{'field': 'tier_thresholds', 'message': 'tier_thresholds must be a list'}]

    errors = []
    names = set()
    for index, entry in enumerate(thresholds):
        if not isinstance(entry, dict) or not entry.get('name'):
            errors.append({'field': f'tier_thresholds[{index}].name', 'message': 'name is required'})
            continue
        min_points = entry.get('min_points', entry.get('minPoints'))
        if not isinstance(min_points, int) or isinstance(min_points, bool) or min_points < 0:
            errors.append({
                'field': f'tier_thresholds[{index}].min_points',
                'message': 'min_points must be a non-negative integer',
            })
        if entry['name'] in names:
            errors.append({'field': f'tier_thresholds[{index}].name', 'message': 'duplicate tier name'})
        names.add(entry['name'])
    return errors
