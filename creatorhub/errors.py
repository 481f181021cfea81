"""
Service Error Taxonomy
======================

Domain exceptions raised by the service layer and rendered by the API.

WHY THIS FILE EXISTS
--------------------
Callers must be able to tell failures apart by a stable, machine-readable
code rather than by parsing message strings:

    1. Input errors       - field length, numeric bounds, enum membership
    2. Lookup errors      - an id or tracking code that does not resolve
    3. Ownership errors   - requester does not own the resource
    4. State errors       - duplicates, illegal state transitions
    5. Provider errors    - payment / email provider failures

Each exception carries an ErrorCode, an ErrorCategory and the HTTP status
the API layer uses when rendering it (see creatorhub/main.py).

Store-layer failures (SQLAlchemy errors) are NOT wrapped here; they
propagate unchanged and surface as a generic 500.

RELATED FILES
-------------
- creatorhub/main.py: exception handlers
- creatorhub/services/*.py: raise these errors before any mutating call
"""

from enum import Enum
from typing import Any, Dict, Optional


# =============================================================================
# ERROR CLASSIFICATION ENUMS
# =============================================================================

class ErrorCategory(Enum):
    """Broad error categories, used for logging level and alerting."""
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    AUTHORIZATION = "authorization"
    CONFLICT = "conflict"
    EXTERNAL = "external"
    UNKNOWN = "unknown"


class ErrorCode(Enum):
    """Machine-readable error codes returned to API clients."""
    VALIDATION_FAILED = "ERR_001"
    NOT_FOUND = "ERR_002"
    FORBIDDEN = "ERR_003"
    CONFLICT = "ERR_004"
    LINK_INACTIVE = "ERR_005"
    INVALID_STATE = "ERR_006"
    NO_ELIGIBLE_CLICK = "ERR_007"

    EXTERNAL_SERVICE_ERROR = "ERR_050"

    INTERNAL_ERROR = "ERR_999"


# =============================================================================
# EXCEPTIONS
# =============================================================================

class ServiceError(Exception):
    """Base class for every domain error.

    ATTRIBUTES:
        message: Human readable message (safe to show for 4xx)
        code: ErrorCode
        category: ErrorCategory
        status_code: HTTP status used by the API layer
        details: Optional structured context (field name, ids)
    """

    code = ErrorCode.INTERNAL_ERROR
    category = ErrorCategory.UNKNOWN
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "detail": self.message,
            "code": self.code.value,
            "category": self.category.value,
        }
        if self.details:
            result["details"] = self.details
        return result


class ValidationError(ServiceError):
    """Malformed or out-of-range input."""

    code = ErrorCode.VALIDATION_FAILED
    category = ErrorCategory.VALIDATION
    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        if field:
            details["field"] = field
        super().__init__(message, details)
        self.field = field


class NotFoundError(ServiceError):
    code = ErrorCode.NOT_FOUND
    category = ErrorCategory.NOT_FOUND
    status_code = 404

    def __init__(self, resource: str, identifier: Any = None):
        message = f"{resource} not found"
        details = {"resource": resource}
        if identifier is not None:
            details["id"] = str(identifier)
        super().__init__(message, details)
        self.resource = resource


class AuthorizationError(ServiceError):
    """Requester does not own the resource."""

    code = ErrorCode.FORBIDDEN
    category = ErrorCategory.AUTHORIZATION
    status_code = 403

    def __init__(self, message: str = "You do not have access to this resource"):
        super().__init__(message)


class ConflictError(ServiceError):
    """Duplicate email, tracking code or active subscription."""

    code = ErrorCode.CONFLICT
    category = ErrorCategory.CONFLICT
    status_code = 409


class InvalidStateError(ConflictError):
    """Operation not allowed in the resource's current state."""

    code = ErrorCode.INVALID_STATE


class LinkInactiveError(ServiceError):
    code = ErrorCode.LINK_INACTIVE
    category = ErrorCategory.CONFLICT
    status_code = 410

    def __init__(self, tracking_code: str):
        super().__init__("Affiliate link is inactive", {"tracking_code": tracking_code})


class NoEligibleClickError(NotFoundError):
    """No unconverted click inside the attribution window."""

    code = ErrorCode.NO_ELIGIBLE_CLICK

    def __init__(self, tracking_code: str, window_days: int):
        ServiceError.__init__(
            self,
            f"No unconverted click found within the last {window_days} days",
            {"tracking_code": tracking_code, "window_days": window_days},
        )
        self.resource = "affiliate_click"


class ExternalServiceError(ServiceError):
    """Payment or email provider failure.

    The message shown to API clients is always generic; `provider_message`
    is kept for logs only.
    """

    code = ErrorCode.EXTERNAL_SERVICE_ERROR
    category = ErrorCategory.EXTERNAL
    status_code = 502

    def __init__(self, provider: str, provider_message: str = ""):
        super().__init__(f"{provider} request failed", {"provider": provider})
        self.provider = provider
        self.provider_message = provider_message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detail": "An upstream service is unavailable. Please try again later.",
            "code": self.code.value,
            "category": self.category.value,
        }
