"""
Error taxonomy shared by the cart, payment and callback layers.

Every error carries an HTTP status and a stable machine-readable code so the
request boundary can render it without knowing where it was raised.
"""
from typing import Any, Dict, Optional


class StorefrontError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class InvalidArgument(StorefrontError):
    """Client input violates a precondition."""
    status_code = 400
    code = "invalid_argument"


class NotFound(StorefrontError):
    """Referenced entity is absent."""
    status_code = 404
    code = "not_found"


class EmptyCart(StorefrontError):
    status_code = 400
    code = "empty_cart"


class IntentAlreadyPending(StorefrontError):
    status_code = 409
    code = "intent_already_pending"


# ------------------------------------------------------
# GATEWAY
# ------------------------------------------------------

class GatewayError(StorefrontError):
    """Raised by payment gateway adapters."""

    def __init__(self, message: str, provider: Optional[str] = None, **context: Any):
        super().__init__(message, provider=provider, **context)
        self.provider = provider


class GatewayUnavailable(GatewayError):
    """
    Transport failure, timeout or provider 5xx.

    `retryable` is False when the request may already have reached the
    provider and resending it is not safe.
    """
    status_code = 502
    code = "gateway_unavailable"

    def __init__(self, message: str, provider: Optional[str] = None, retryable: bool = True, **context: Any):
        super().__init__(message, provider=provider, **context)
        self.retryable = retryable


class GatewayRejected(GatewayError):
    """Provider refused the request. Not retried."""
    status_code = 400
    code = "gateway_rejected"


# ------------------------------------------------------
# CALLBACKS (acknowledged to the provider, never surfaced)
# ------------------------------------------------------

class CallbackError(StorefrontError):
    status_code = 200


class InvalidCallback(CallbackError):
    code = "invalid_callback"


class UnknownIntent(CallbackError):
    code = "unknown_intent"


class ConflictingCallback(CallbackError):
    code = "conflicting_callback"


__all__ = [
    "StorefrontError",
    "InvalidArgument",
    "NotFound",
    "EmptyCart",
    "IntentAlreadyPending",
    "GatewayError",
    "GatewayUnavailable",
    "GatewayRejected",
    "CallbackError",
    "InvalidCallback",
    "UnknownIntent",
    "ConflictingCallback",
]
