"""Error types for the Tenant Health Engine.

Services raise these; the API layer maps them onto HTTP status codes.
Privacy-floor misses and missing data are not errors and never raise.
"""


class TenantHealthError(Exception):
    """Base class for all engine errors.

    Attributes:
        message: Human-readable description.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(TenantHealthError):
    """Raised when a requested record does not exist."""


class ConflictError(TenantHealthError):
    """Raised when a request conflicts with current state or is invalid."""


class JobNotFoundError(NotFoundError):
    """Raised when polling a job id the queue does not know about."""
