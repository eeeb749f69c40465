"""
Typed reward template configuration.

Each reward type has exactly one config shape. Templates store the
serialized form in a JSON column; everything that reads or writes a
template goes through ``parse_config`` / ``default_config`` so the rest of
the code works with these dataclasses instead of raw dicts.

Keys are accepted in snake_case and in the camelCase used by the admin UI
(``codePrefix``, ``minimumOrder``, ``expiresInDays`` ...).
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class RewardType(str, Enum):
    """Kinds of tier reward a merchant can configure."""
    DISCOUNT = 'discount'
    FREE_SHIPPING = 'free_shipping'
    EXCLUSIVE_PRODUCT = 'exclusive_product'
    EARLY_ACCESS = 'early_access'


REWARD_TYPES = [t.value for t in RewardType]

DEFAULT_EXPIRES_IN_DAYS = 30


def _get(raw: Dict[str, Any], *keys, default=None):
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return default


def _parse_datetime(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return None
    # Stored timestamps are naive UTC
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None) - (parsed.utcoffset() or timedelta(0))
    return parsed


def _number(value, default=None):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    try:
        number = float(value)
    except (TypeError, ValueError):
        return value  # Left for validate() to report
    return int(number) if number.is_integer() else number


def _list(value, convert=None):
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        return value  # Left for validate() to report
    return [convert(v) for v in value] if convert else list(value)


def _validate_strings(name: str, value) -> List[Dict[str, str]]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        return [{'field': name, 'message': f'{name} must be a list of strings'}]
    return []


@dataclass
class DiscountConfig:
    percentage: Any = 10
    code_prefix: str = 'LOYALTY'
    expires_in_days: Any = DEFAULT_EXPIRES_IN_DAYS
    applies_once_per_customer: bool = True

    reward_type = RewardType.DISCOUNT

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'DiscountConfig':
        base = cls()
        return cls(
            percentage=_number(_get(raw, 'percentage'), base.percentage),
            code_prefix=str(_get(raw, 'code_prefix', 'codePrefix', default=base.code_prefix)),
            expires_in_days=_number(_get(raw, 'expires_in_days', 'expiresInDays'), base.expires_in_days),
            applies_once_per_customer=bool(_get(
                raw, 'applies_once_per_customer', 'appliesOncePerCustomer',
                default=base.applies_once_per_customer,
            )),
        )

    def validate(self) -> List[Dict[str, str]]:
        errors = _validate_expiry(self.expires_in_days)
        if not isinstance(self.percentage, (int, float)) or isinstance(self.percentage, bool) \
                or not 1 <= self.percentage <= 100:
            errors.append({'field': 'percentage', 'message': 'percentage must be between 1 and 100'})
        if not self.code_prefix or not self.code_prefix.strip():
            errors.append({'field': 'code_prefix', 'message': 'code_prefix must not be empty'})
        return errors


@dataclass
class FreeShippingConfig:
    minimum_order: Any = 0
    zones: List[str] = field(default_factory=list)
    expires_in_days: Any = DEFAULT_EXPIRES_IN_DAYS

    reward_type = RewardType.FREE_SHIPPING

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'FreeShippingConfig':
        base = cls()
        return cls(
            minimum_order=_number(_get(raw, 'minimum_order', 'minimumOrder'), base.minimum_order),
            zones=_list(_get(raw, 'zones', 'shipping_zones', 'shippingZones')),
            expires_in_days=_number(_get(raw, 'expires_in_days', 'expiresInDays'), base.expires_in_days),
        )

    def validate(self) -> List[Dict[str, str]]:
        errors = _validate_expiry(self.expires_in_days)
        if not isinstance(self.minimum_order, (int, float)) or isinstance(self.minimum_order, bool) \
                or self.minimum_order < 0:
            errors.append({'field': 'minimum_order', 'message': 'minimum_order must be zero or greater'})
        errors.extend(_validate_strings('zones', self.zones))
        return errors


@dataclass
class ExclusiveProductConfig:
    product_ids: List[str] = field(default_factory=list)
    collection_ids: List[str] = field(default_factory=list)
    expires_in_days: Any = DEFAULT_EXPIRES_IN_DAYS

    reward_type = RewardType.EXCLUSIVE_PRODUCT

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'ExclusiveProductConfig':
        base = cls()
        return cls(
            product_ids=_list(_get(raw, 'product_ids', 'productIds'), str),
            collection_ids=_list(_get(raw, 'collection_ids', 'collectionIds'), str),
            expires_in_days=_number(_get(raw, 'expires_in_days', 'expiresInDays'), base.expires_in_days),
        )

    def validate(self) -> List[Dict[str, str]]:
        errors = _validate_expiry(self.expires_in_days)
        errors.extend(_validate_strings('product_ids', self.product_ids))
        errors.extend(_validate_strings('collection_ids', self.collection_ids))
        return errors


@dataclass
class AccessWindow:
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            'start': self.start.isoformat() if self.start else None,
            'end': self.end.isoformat() if self.end else None,
        }


@dataclass
class EarlyAccessConfig:
    access_window: AccessWindow = field(default_factory=AccessWindow)
    expires_in_days: Any = DEFAULT_EXPIRES_IN_DAYS

    reward_type = RewardType.EARLY_ACCESS

    @classmethod
    def default(cls) -> 'EarlyAccessConfig':
        start = datetime.utcnow().replace(microsecond=0)
        return cls(access_window=AccessWindow(start, start + timedelta(days=DEFAULT_EXPIRES_IN_DAYS)))

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'EarlyAccessConfig':
        window = _get(raw, 'access_window', 'accessWindow', default={})
        if not isinstance(window, dict):
            window = {}  # Reported by validate() as a missing start and end
        start = _get(window, 'start') or _get(raw, 'sale_start_date', 'saleStartDate')
        end = _get(window, 'end') or _get(raw, 'sale_end_date', 'saleEndDate')
        return cls(
            access_window=AccessWindow(_parse_datetime(start), _parse_datetime(end)),
            expires_in_days=_number(_get(raw, 'expires_in_days', 'expiresInDays'), DEFAULT_EXPIRES_IN_DAYS),
        )

    def validate(self) -> List[Dict[str, str]]:
        errors = _validate_expiry(self.expires_in_days)
        window = self.access_window
        if window.start is None or window.end is None:
            errors.append({'field': 'access_window', 'message': 'access_window requires valid start and end'})
        elif not window.start < window.end:
            errors.append({'field': 'access_window', 'message': 'access_window start must be before end'})
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            'access_window': self.access_window.to_dict(),
            'expires_in_days': self.expires_in_days,
        }


RewardConfig = Union[DiscountConfig, FreeShippingConfig, ExclusiveProductConfig, EarlyAccessConfig]

CONFIG_CLASSES = {
    RewardType.DISCOUNT.value: DiscountConfig,
    RewardType.FREE_SHIPPING.value: FreeShippingConfig,
    RewardType.EXCLUSIVE_PRODUCT.value: ExclusiveProductConfig,
    RewardType.EARLY_ACCESS.value: EarlyAccessConfig,
}


def _validate_expiry(expires_in_days) -> List[Dict[str, str]]:
    if not isinstance(expires_in_days, int) or isinstance(expires_in_days, bool) or expires_in_days < 1:
        return [{'field': 'expires_in_days', 'message': 'expires_in_days must be a positive whole number'}]
    return []


def default_config(reward_type: str) -> RewardConfig:
    """Fresh config of the given type's default shape."""
    cls = CONFIG_CLASSES[reward_type]
    if cls is EarlyAccessConfig:
        return EarlyAccessConfig.default()
    return cls()


def parse_config(reward_type: str, raw: Optional[Dict[str, Any]]) -> RewardConfig:
    """
    Build the typed config for reward_type from raw JSON.

    Missing keys fall back to the type's defaults. Unknown keys are
    dropped, so a config written for another type never leaks through.

    Raises:
        KeyError: reward_type is not one of REWARD_TYPES
    """
    cls = CONFIG_CLASSES[reward_type]
    if not raw:
        return default_config(reward_type)
    if cls is EarlyAccessConfig and not any(
        k in raw for k in ('access_window', 'accessWindow', 'sale_start_date', 'saleStartDate')
    ):
        parsed = EarlyAccessConfig.from_dict(raw)
        parsed.access_window = EarlyAccessConfig.default().access_window
        return parsed
    return cls.from_dict(raw)


def config_to_dict(config: RewardConfig) -> Dict[str, Any]:
    """Serialize a typed config for the JSON column."""
    if isinstance(config, EarlyAccessConfig):
        return config.to_dict()
    return asdict(config)
