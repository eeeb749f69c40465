"""
Business logic services for the QR loyalty service.
"""
from .loyalty_program import LoyaltyProgramService
from .points_ledger import PointsLedgerService
from .reward_templates import RewardTemplateStore
from .reward_sync import RewardSyncService, ProvisionResult
from .reward_provisioning import RewardProvisioningEngine, ProvisioningOutcome
from .scan_pipeline import ScanPipeline, ScanRequest, ScanResult, StageOutcome

__all__ = [
    'LoyaltyProgramService',
    'PointsLedgerService',
    'RewardTemplateStore',
    'RewardSyncService',
    'ProvisionResult',
    'RewardProvisioningEngine',
    'ProvisioningOutcome',
    'ScanPipeline',
    'ScanRequest',
    'ScanResult',
    'StageOutcome',
]
