"""
Utility modules for the loyalty service.
"""
from .logging_config import setup_logging, get_logger
from .errors import (
    ErrorCode,
    error_response,
    bad_request,
    unauthorized,
    not_found,
    internal_error,
    exception_response,
)
from .exceptions import (
    QRLoyaltyError,
    NotFoundError,
    QRCodeNotFoundError,
    RewardTemplateNotFoundError,
    ExpiredError,
    ValidationError,
    InsufficientPointsError,
    ExternalSyncFailure,
    ConfigurationError,
)
