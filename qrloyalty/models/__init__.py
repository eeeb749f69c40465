"""
Database models for the QR loyalty service.
QR codes, scan analytics, points balances and tier rewards.
"""
from .merchant import Merchant
from .loyalty import LoyaltyProgram, PointsBalance, PointsSource
from .qr_code import QRCode, QRCodeType, AnalyticsEvent, AnalyticsEventType
from .reward_config import (
    RewardType,
    REWARD_TYPES,
    DiscountConfig,
    FreeShippingConfig,
    ExclusiveProductConfig,
    EarlyAccessConfig,
    AccessWindow,
    default_config,
    parse_config,
    config_to_dict,
)
from .rewards import (
    RewardTemplate,
    CustomerRewardState,
    ExternalDiscountRecord,
    ProvisioningLock,
)

__all__ = [
    'Merchant',
    'LoyaltyProgram',
    'PointsBalance',
    'PointsSource',
    'QRCode',
    'QRCodeType',
    'AnalyticsEvent',
    'AnalyticsEventType',
    # Reward configuration
    'RewardType',
    'REWARD_TYPES',
    'DiscountConfig',
    'FreeShippingConfig',
    'ExclusiveProductConfig',
    'EarlyAccessConfig',
    'AccessWindow',
    'default_config',
    'parse_config',
    'config_to_dict',
    # Tier rewards
    'RewardTemplate',
    'CustomerRewardState',
    'ExternalDiscountRecord',
    'ProvisioningLock',
]
