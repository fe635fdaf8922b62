"""
Service error taxonomy.

Services raise these; ``main.py`` renders them as
``{"success": false, "error": ..., "kind": ..., "code": ...}`` with the
matching HTTP status. ``code`` is a stable machine-readable reason so that
clients can tell e.g. an already-used coupon from an expired one.
"""

from typing import Any, Dict, Optional


class ServiceError(Exception):
    """Base class for errors surfaced to the caller."""

    status_code = 500
    kind = "internal"

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body = {
            "success": False,
            "error": self.message,
            "kind": self.kind,
            "code": self.code,
        }
        if self.details:
            body["details"] = self.details
        return body


class ValidationFailed(ServiceError):
    """Missing or malformed input."""
    status_code = 400
    kind = "validation"


class Unauthorized(ServiceError):
    """Caller identity missing where required."""
    status_code = 401
    kind = "unauthorized"


class Forbidden(ServiceError):
    """Caller known but lacks role, approval or ownership."""
    status_code = 403
    kind = "forbidden"


class NotFound(ServiceError):
    status_code = 404
    kind = "not_found"


class Conflict(ServiceError):
    """State-machine violation or uniqueness clash."""
    status_code = 409
    kind = "conflict"


class DependencyFailure(ServiceError):
    """An external collaborator (gateway, mail, renderer) failed."""
    status_code = 502
    kind = "dependency"
