"""
Error taxonomy for the catalogue core.

Every failure a catalogue operation can end with is one of the classes
below. Operations restore their own state before raising, so callers can
treat any ``CatalogError`` as a clean, reportable outcome. The HTTP layer
maps each class to a status code through ``status_code``.
"""

from typing import Optional


class CatalogError(Exception):
    """Base class for all failures reported by the catalogue core."""

    kind = "catalog_error"
    status_code = 400

    def __init__(self, message: str = ""):
        # Class docstrings double as the user-facing default message.
        self.message = message or (type(self).__doc__ or self.kind).strip()
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.kind, "detail": self.message}


class ValidationError(CatalogError):
    """Submitted fields failed client-side validation."""

    kind = "validation_error"
    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.field:
            data["field"] = self.field
        return data


class DuplicateReview(ValidationError):
    """The viewer has already reviewed this book."""

    kind = "duplicate_review"
    status_code = 409


class AuthenticationRequired(CatalogError):
    """Please sign in to continue."""

    kind = "authentication_required"
    status_code = 401


class OperationInProgress(CatalogError):
    """Another change is still being saved."""

    kind = "operation_in_progress"
    status_code = 409


class InvalidTransition(CatalogError):
    """The review editor cannot do that right now."""

    kind = "invalid_transition"
    status_code = 409


class StoreError(CatalogError):
    """The data store rejected the request."""

    kind = "store_error"
    status_code = 500


class AuthorizationDenied(StoreError):
    """You can only change entries you created."""

    kind = "authorization_denied"
    status_code = 403


class NotFound(StoreError):
    """The requested entry no longer exists."""

    kind = "not_found"
    status_code = 404


class ConstraintViolation(StoreError):
    """The data store refused the values provided."""

    kind = "constraint_violation"
    status_code = 409


class StoreUnavailable(StoreError):
    """The data store could not be reached. Please try again."""

    kind = "store_unavailable"
    status_code = 503
