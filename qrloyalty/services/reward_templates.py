"""
Reward Template Store.

CRUD for the per-merchant, per-tier reward templates the provisioning
engine reads. At most one template exists per (merchant, tier,
reward_type); creating an existing key updates it in place.

Deleting a template never revokes rewards already provisioned from it.
"""
from typing import Any, Dict, List, Optional
from flask import current_app

from ..extensions import db
from ..models.rewards import RewardTemplate
from ..models.reward_config import (
    REWARD_TYPES,
    RewardType,
    DiscountConfig,
    FreeShippingConfig,
    ExclusiveProductConfig,
    EarlyAccessConfig,
    config_to_dict,
    default_config,
    parse_config,
)
from ..utils.exceptions import RewardTemplateNotFoundError, ValidationError


# Default reward set per tier, seeded for new merchants
DEFAULT_TEMPLATES = {
    'Bronze': [
        (RewardType.DISCOUNT, lambda: DiscountConfig(percentage=5, code_prefix='BRONZE')),
    ],
    'Silver': [
        (RewardType.DISCOUNT, lambda: DiscountConfig(percentage=10, code_prefix='SILVER')),
        (RewardType.FREE_SHIPPING, lambda: FreeShippingConfig(minimum_order=50)),
    ],
    'Gold': [
        (RewardType.DISCOUNT, lambda: DiscountConfig(percentage=15, code_prefix='GOLD')),
        (RewardType.FREE_SHIPPING, lambda: FreeShippingConfig(minimum_order=30)),
        (RewardType.EXCLUSIVE_PRODUCT, lambda: ExclusiveProductConfig()),
    ],
    'Platinum': [
        (RewardType.DISCOUNT, lambda: DiscountConfig(percentage=20, code_prefix='PLATINUM')),
        (RewardType.FREE_SHIPPING, lambda: FreeShippingConfig(minimum_order=0)),
        (RewardType.EXCLUSIVE_PRODUCT, lambda: ExclusiveProductConfig()),
        (RewardType.EARLY_ACCESS, lambda: EarlyAccessConfig.default()),
    ],
}


def _raw_config(data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    raw = data.get('config', data.get('configuration'))
    return raw if isinstance(raw, dict) else None


def _reward_type(data: Dict[str, Any]) -> Optional[str]:
    return data.get('reward_type', data.get('rewardType'))


def _tier(value):
    # Non-strings pass through for validate_template to reject
    return value.strip() if isinstance(value, str) else value


def validate_template(tier, reward_type, raw_config) -> List[Dict[str, str]]:
    """
    Check a template's tier, type and config.

    Returns every violation as {field, message}; config field names are
    prefixed with ``config.``.
    """
    errors = []
    if not isinstance(tier, str) or not tier.strip():
        errors.append({'field': 'tier', 'message': 'tier must be a non-empty string'})
    if reward_type not in REWARD_TYPES:
        errors.append({
            'field': 'reward_type',
            'message': f'reward_type must be one of {", ".join(REWARD_TYPES)}',
        })
        return errors

    config = parse_config(reward_type, raw_config)
    for error in config.validate():
        errors.append({'field': f"config.{error['field']}", 'message': error['message']})
    return errors


class RewardTemplateStore:
    """
    Usage:
        store = RewardTemplateStore(merchant_id)
        template = store.create_template({'tier': 'Gold', 'reward_type': 'discount',
                                          'config': {'percentage': 15}})
        templates = store.get_active_templates('Gold')
    """

    def __init__(self, merchant_id: int):
        self.merchant_id = merchant_id

    def list_templates(self, tier: str = None, reward_type: str = None,
                       active_only: bool = False) -> List[RewardTemplate]:
        query = RewardTemplate.query.filter_by(merchant_id=self.merchant_id)
        if tier:
            query = query.filter_by(tier=tier)
        if reward_type:
            query = query.filter_by(reward_type=reward_type)
        if active_only:
            query = query.filter_by(is_active=True)
        return query.order_by(RewardTemplate.tier, RewardTemplate.id).all()

    def get_active_templates(self, tier: str) -> List[RewardTemplate]:
        """Active templates for a tier, in creation order."""
        return RewardTemplate.query.filter_by(
            merchant_id=self.merchant_id,
            tier=tier,
            is_active=True,
        ).order_by(RewardTemplate.id).all()

    def get_template(self, template_id: int) -> RewardTemplate:
        template = RewardTemplate.query.filter_by(
            id=template_id, merchant_id=self.merchant_id
        ).first()
        if not template:
            raise RewardTemplateNotFoundError(template_id)
        return template

    def create_template(self, data: Dict[str, Any]) -> RewardTemplate:
        """
        Create a template, or update the existing one for the same
        (tier, reward_type).

        Raises:
            ValidationError: listing every invalid field
        """
        tier = _tier(data.get('tier') or '')
        reward_type = _reward_type(data)
        raw = _raw_config(data)

        errors = validate_template(tier, reward_type, raw)
        if errors:
            raise ValidationError('Invalid reward template', errors=errors)

        config = parse_config(reward_type, raw)
        template = RewardTemplate.query.filter_by(
            merchant_id=self.merchant_id, tier=tier, reward_type=reward_type
        ).first()

        if template:
            template.set_config(config)
            template.is_active = bool(data.get('is_active', True))
            action = 'Updated'
        else:
            template = RewardTemplate(
                merchant_id=self.merchant_id,
                tier=tier,
                reward_type=reward_type,
                config=config_to_dict(config),
                is_active=bool(data.get('is_active', True)),
            )
            db.session.add(template)
            action = 'Created'

        db.session.commit()
        current_app.logger.info(
            f'[Rewards] {action} template {reward_type} for {tier} (merchant {self.merchant_id})'
        )
        return template

    def update_template(self, template_id: int, data: Dict[str, Any]) -> RewardTemplate:
        """
        Update tier, type, config or active flag.

        Changing reward_type rebuilds the config from the new type's
        defaults plus whatever config fields came with this update; the
        old config is discarded.
        """
        template = self.get_template(template_id)

        tier = _tier(data.get('tier') or template.tier)
        reward_type = _reward_type(data) or template.reward_type
        raw = _raw_config(data)
        type_changed = reward_type != template.reward_type

        if type_changed:
            merged = raw or {}
        else:
            merged = dict(template.config or {})
            merged.update(raw or {})

        errors = validate_template(tier, reward_type, merged)
        if errors:
            raise ValidationError('Invalid reward template', errors=errors)

        if (tier, reward_type) != (template.tier, template.reward_type):
            clash = RewardTemplate.query.filter(
                RewardTemplate.merchant_id == self.merchant_id,
                RewardTemplate.tier == tier,
                RewardTemplate.reward_type == reward_type,
                RewardTemplate.id != template.id,
            ).first()
            if clash:
                raise ValidationError(
                    f'A {reward_type} template already exists for {tier}', field='reward_type'
                )

        template.tier = tier
        template.reward_type = reward_type
        template.set_config(parse_config(reward_type, merged) if merged else default_config(reward_type))
        if 'is_active' in data:
            template.is_active = bool(data['is_active'])

        db.session.commit()
        current_app.logger.info(f'[Rewards] Updated template {template_id} (merchant {self.merchant_id})')
        return template

    def delete_template(self, template_id: int) -> None:
        template = self.get_template(template_id)
        db.session.delete(template)
        db.session.commit()
        current_app.logger.info(f'[Rewards] Deleted template {template_id} (merchant {self.merchant_id})')

    def create_default_templates(self) -> List[RewardTemplate]:
        """
        Seed the default reward set for Bronze through Platinum.

        Existing (tier, reward_type) keys are left alone.

        Returns:
            The templates that were created
        """
        existing = {
            (t.tier, t.reward_type)
            for t in RewardTemplate.query.filter_by(merchant_id=self.merchant_id).all()
        }

        created = []
        for tier, rewards in DEFAULT_TEMPLATES.items():
            for reward_type, make_config in rewards:
                if (tier, reward_type.value) in existing:
                    continue
                template = RewardTemplate(
                    merchant_id=self.merchant_id,
                    tier=tier,
                    reward_type=reward_type.value,
                    config=config_to_dict(make_config()),
                    is_active=True,
                )
                db.session.add(template)
                created.append(template)

        db.session.commit()
        current_app.logger.info(
            f'[Rewards] Seeded {len(created)} default templates for merchant {self.merchant_id}'
        )
        return created
