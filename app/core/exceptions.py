from typing import List, Optional

from app.schemas.buyer import FieldError


class BuyerLeadsError(Exception):
    """Base class for all buyer-leads domain exceptions.

    Every custom exception in this module inherits from here so that a
    single ``except BuyerLeadsError`` clause can catch any domain
    error.
    """

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(detail)


class BuyerValidationError(BuyerLeadsError):
    """Raised when a buyer record violates one or more field rules.

    ``errors`` holds every violation found, not just the first, so the
    caller can surface them all at once.
    """

    def __init__(
        self,
        errors: List[FieldError],
        detail: str = "Buyer validation failed",
    ):
        self.errors = list(errors)
        super().__init__(detail)

    @property
    def fields(self) -> List[str]:
        """Return the field names that failed, in reporting order."""
        return [error.field for error in self.errors]


class ConflictError(BuyerLeadsError):
    """Raised when an update was based on a stale copy of the buyer."""

    def __init__(
        self, detail: str = "Buyer was modified by someone else; reload and retry"
    ):
        super().__init__(detail)


class BuyerNotFoundError(BuyerLeadsError):
    """Raised when a requested buyer does not exist."""

    def __init__(self, detail: str = "Buyer not found"):
        super().__init__(detail)


class ForbiddenError(BuyerLeadsError):
    """Raised when the acting user neither owns the buyer nor is an admin."""

    def __init__(self, detail: str = "You do not have permission to modify this buyer"):
        super().__init__(detail)


class StorageError(BuyerLeadsError):
    """Raised when the backing store fails.

    Never retried by the service layer; the caller decides whether a
    retry makes sense.
    """

    def __init__(self, detail: str = "Storage unavailable"):
        super().__init__(detail)


class AuthenticationError(BuyerLeadsError):
    """Raised when the request carries no valid session token."""

    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(detail)


class UnrecognizedValueError(BuyerLeadsError):
    """Describes an enum field value outside its allowed set.

    Returned (not raised) by the normalizer so the caller can choose
    between rejecting the input and substituting a default.
    """

    def __init__(self, field: str, value: object, detail: Optional[str] = None):
        self.field = field
        self.value = value
        super().__init__(detail or f"Unrecognized value {value!r} for {field}")
