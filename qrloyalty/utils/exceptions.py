"""
Custom exceptions for QR loyalty business logic.

These exceptions carry a stable error code so API handlers can map them
to HTTP status codes without inspecting messages.
"""


class QRLoyaltyError(Exception):
    """Base exception for all loyalty business logic errors."""

    def __init__(self, message: str, code: str = "QRLOYALTY_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(QRLoyaltyError):
    """Resource not found."""

    def __init__(self, resource: str, identifier=None):
        self.resource = resource
        self.identifier = identifier
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with ID {identifier} not found"
        super().__init__(message, "NOT_FOUND")


class QRCodeNotFoundError(NotFoundError):
    """QR code could not be resolved."""

    def __init__(self, identifier=None):
        super().__init__("QR code", identifier)


class RewardTemplateNotFoundError(NotFoundError):
    """Reward template not found."""

    def __init__(self, identifier=None):
        super().__init__("Reward template", identifier)


class ExpiredError(QRLoyaltyError):
    """Resource exists but is past its expiry."""

    def __init__(self, resource: str, identifier=None, expired_at=None):
        self.expired_at = expired_at
        message = f"{resource} has expired"
        if identifier:
            message = f"{resource} {identifier} has expired"
        super().__init__(message, "EXPIRED")


class ValidationError(QRLoyaltyError):
    """
    Invalid input data.

    Carries one entry per violated field so callers can report every
    problem at once instead of the first one found.
    """

    def __init__(self, message: str = "Validation failed", field: str = None, errors: list = None):
        self.errors = list(errors or [])
        if field and not self.errors:
            self.errors.append({'field': field, 'message': message})
        self.field = field or (self.errors[0]['field'] if self.errors else None)
        super().__init__(message, "VALIDATION_ERROR")

    @property
    def fields(self) -> list:
        return [e['field'] for e in self.errors]


class InsufficientPointsError(QRLoyaltyError):
    """Not enough points for the operation."""

    def __init__(self, current: int, required: int):
        self.current = current
        self.required = required
        message = f"Insufficient points. Current: {current}, Required: {required}"
        super().__init__(message, "INSUFFICIENT_POINTS")


class ExternalSyncFailure(QRLoyaltyError):
    """Error communicating with the commerce platform. Non-fatal for local state."""

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(message, "EXTERNAL_SYNC_FAILURE")


class ConfigurationError(QRLoyaltyError):
    """Application configuration error."""

    def __init__(self, message: str):
        super().__init__(message, "CONFIGURATION_ERROR")
