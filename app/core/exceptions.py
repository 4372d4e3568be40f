"""
Domain errors raised by the platform services.

Routers translate these into HTTP responses using ``status_code``.
"""


class PlatformError(Exception):
    """Base error for all business-rule failures."""

    status_code = 400

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)


class ValidationError(PlatformError):
    """Raised when input fails a business validation rule."""

    status_code = 422


class NotFoundError(PlatformError):
    """Raised when a requested record does not exist for the caller."""

    status_code = 404

    def __init__(self, resource: str, identifier=None) -> None:
        if identifier is None:
            super().__init__(f"{resource} not found")
        else:
            super().__init__(f"{resource} not found: {identifier}")
        self.resource = resource
        self.identifier = identifier


class NotAuthorizedError(PlatformError):
    """Raised when the caller does not own the record being changed."""

    status_code = 403


class InvalidStateError(PlatformError):
    """Raised when an operation is not allowed in the record's current state."""

    status_code = 409


class InsufficientFundsError(PlatformError):
    """Raised when a wallet or account lacks the funds for an operation."""

    def __init__(self, message: str = "Insufficient funds available.", required=None, available=None) -> None:
        super().__init__(message)
        self.required = required
        self.available = available


class InsufficientMarginError(PlatformError):
    """Raised when free margin cannot cover a new position."""

    def __init__(self, required: float, available: float) -> None:
        super().__init__("Insufficient margin available.")
        self.required = required
        self.available = available


class CopyTradingNotAllowedError(PlatformError):
    """Raised when a trader's privacy settings refuse a copy request."""

    status_code = 403
