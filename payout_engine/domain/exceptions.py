"""Domain-specific exceptions"""

from typing import Any, Dict, Optional


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ProviderError(DomainException):
    """Money-transfer provider returned an error response"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class ProviderTimeoutError(ProviderError):
    """Provider call did not complete within the HTTP timeout"""

    pass


class ProviderNetworkError(ProviderError):
    """Provider unreachable (connection reset, DNS failure, ...)"""

    pass


class QuoteExpiredError(DomainException):
    """Quote was used after its expiry time"""

    pass


class InvalidInputError(DomainException):
    """Request data is missing or malformed"""

    pass


class InvalidTransitionError(DomainException):
    """Payout status change not allowed by the state machine"""

    def __init__(self, from_status: str, to_status: str):
        super().__init__(f"Invalid payout status transition: {from_status} -> {to_status}")
        self.from_status = from_status
        self.to_status = to_status


class DuplicateReferenceError(DomainException):
    """A payout with the same reference already exists"""

    def __init__(self, reference: str):
        super().__init__(f"Payout reference already exists: {reference}")
        self.reference = reference


class PayoutNotFoundError(DomainException):
    """No payout record matches the lookup"""

    pass


class StorageError(DomainException):
    """Persistence layer failed for a reason other than a constraint"""

    pass
