"""Error taxonomy shared by every bounded context.

Each error carries a machine-readable ``code`` next to its human message so
that the HTTP edge (and any other caller) can branch on the kind of failure
without parsing text. Errors are raised where a rule is violated and only
translated at the edge (see ``app.py``).
"""

from typing import Any


class ShopError(Exception):
    """Base class for every expected failure."""

    code = "ERROR"
    http_status = 400

    def __init__(self, message: str, code: str | None = None, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(ShopError):
    """The input was rejected: empty cart, stale price or stock, expired card..."""

    code = "VALIDATION_ERROR"
    http_status = 400


class NotFoundError(ShopError):
    code = "NOT_FOUND"
    http_status = 404


class ConflictError(ShopError):
    """The resource is not in a state that allows the request (illegal transition, already cancelled...)."""

    code = "CONFLICT"
    http_status = 409


class ForbiddenError(ShopError):
    code = "FORBIDDEN"
    http_status = 403


class DependencyError(ShopError):
    """A collaborator (stock store, gateway, database) could not be reached."""

    code = "DEPENDENCY_UNAVAILABLE"
    http_status = 503


class PaymentDeclinedError(ShopError):
    """The gateway refused the charge. The order is left in ``failed``."""

    code = "PAYMENT_DECLINED"
    http_status = 402
