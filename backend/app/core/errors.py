"""
Order engine error taxonomy.

Services raise these; the API layer translates them into
``{"success": false, "message": ...}`` responses using ``status_code``.
"""

from typing import Any


class OrderEngineError(Exception):
    """Base class for errors the engine reports to its callers."""

    status_code = 500
    code = "ORDER_ENGINE_ERROR"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class OrderValidationError(OrderEngineError):
    """Malformed or incomplete input, rejected before any write."""

    status_code = 400
    code = "VALIDATION_ERROR"


class OrderNotFoundError(OrderEngineError):
    status_code = 404
    code = "ORDER_NOT_FOUND"

    def __init__(self, order_id: Any):
        super().__init__("Order not found", order_id=str(order_id))


class InvalidStateError(OrderEngineError):
    """A status change the order's current state does not allow."""

    status_code = 400
    code = "INVALID_STATE"


class PermissionDeniedError(OrderEngineError):
    status_code = 403
    code = "PERMISSION_DENIED"


class StoreError(OrderEngineError):
    """
    Persistence failure.

    Never retried for writes. The originating driver exception is chained as
    ``__cause__``; its text is logged, not returned to callers.
    """

    status_code = 500
    code = "STORE_ERROR"


class UnauthenticatedError(OrderEngineError):
    """No usable caller identity on a request that needs one."""

    status_code = 401
    code = "UNAUTHENTICATED"
