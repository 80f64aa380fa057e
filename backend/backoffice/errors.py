# Overview: Error taxonomy shared by services and routes; each error knows its HTTP status.

"""
Service-layer errors.

Services raise these; routes translate them to JSON with the attached
status code. Anything that is not a ServiceError is treated as an
unexpected failure (logged, 500).
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for business-rule failures."""
    status_code = 400
    code = "SERVICE_ERROR"

    def __init__(self, message: str, details: dict | None = None, code: str | None = None):
        super().__init__(message)
        self.details = details or {}
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {
            "error": str(self),
            "code": self.code,
            "details": self.details,
        }


class ValidationError(ServiceError):
    """400-level input problem."""
    status_code = 400
    code = "VALIDATION_ERROR"


class AuthError(ServiceError):
    """Missing or invalid identity."""
    status_code = 401
    code = "AUTH_REQUIRED"


class ForbiddenError(ServiceError):
    """Authenticated, but not the owner and not an admin."""
    status_code = 403
    code = "FORBIDDEN"


class NotFoundError(ServiceError):
    status_code = 404
    code = "NOT_FOUND"


class InvalidStateError(ServiceError):
    """Operation not allowed in the entity's current lifecycle state."""
    status_code = 400
    code = "INVALID_STATE"


class InsufficientBalanceError(ServiceError):
    """Package consumption exceeds the available balance."""
    status_code = 400
    code = "INSUFFICIENT_BALANCE"


class ConflictError(ServiceError):
    """409-level uniqueness conflict (e.g., duplicate tax id)."""
    status_code = 409
    code = "CONFLICT"
