# Overview: Typed service errors shared by the sale engine and its routes.

"""
Error taxonomy for the sale engine.

Services raise these; the enclosing transaction is rolled back and the
error reaches the caller unchanged. Routes turn them into JSON with the
error's status code. Anything that is not a ServiceError is treated as an
internal failure and never shown verbatim to the client.
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for business-rule and lookup failures."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return {"error": body}


class NotFoundError(ServiceError):
    """404: product, sale, customer or supervisor missing."""

    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str = "Resource", details: dict | None = None):
        super().__init__(f"{resource} not found", details)
        self.resource = resource


class BadRequestError(ServiceError):
    """400: malformed input or a business rule the request violates."""

    status_code = 400
    code = "BAD_REQUEST"


class InsufficientStockError(BadRequestError):
    code = "INSUFFICIENT_STOCK"


class InsufficientPointsError(BadRequestError):
    code = "INSUFFICIENT_POINTS"


class InvalidStateError(BadRequestError):
    """Sale is not in a status that allows the requested transition."""

    code = "INVALID_STATE"


class UnauthorizedError(ServiceError):
    """401: bad PIN or missing/invalid operator identity."""

    status_code = 401
    code = "UNAUTHORIZED"


class ForbiddenError(ServiceError):
    """403: identity is known but lacks the capability."""

    status_code = 403
    code = "FORBIDDEN"


class ConflictError(ServiceError):
    """409: reserved for duplicate invoice scenarios."""

    status_code = 409
    code = "CONFLICT"


class InternalError(ServiceError):
    status_code = 500
    code = "INTERNAL_ERROR"
