from typing import Optional

from fastapi import Header, Request

from storefront.config import settings
from storefront.errors import InvalidArgument
from storefront.services.cart_service import CartService
from storefront.services.orchestrator import PaymentOrchestrator
from storefront.services.reporting import ReportingView
from storefront.services.webhook_service import WebhookLog


def get_cart_id(x_cart_id: Optional[str] = Header(None, alias="X-Cart-ID")) -> str:
    """Cart scope for the request; anonymous callers share the default cart."""
    if x_cart_id is None:
        return settings.DEFAULT_CART_ID
    cart_id = x_cart_id.strip()
    if not cart_id or len(cart_id) > 64:
        raise InvalidArgument("X-Cart-ID must be 1-64 characters")
    return cart_id


def get_cart_service(request: Request) -> CartService:
    return request.app.state.cart_service


def get_orchestrator(request: Request) -> PaymentOrchestrator:
    return request.app.state.orchestrator


def get_reporting(request: Request) -> ReportingView:
    return request.app.state.reporting


def get_webhook_log(request: Request) -> WebhookLog:
    return request.app.state.webhook_log

