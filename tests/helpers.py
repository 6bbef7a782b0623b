"""
Shared test wiring: in-memory database, controllable clock and scripted
provider APIs served through httpx.MockTransport.
"""
import json
import os
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx

from storefront.db import build_engine, build_session_factory, create_all
from storefront.psp.dispatcher import PSPDispatcher
from storefront.psp.mpesa_adapter import MpesaAdapter
from storefront.psp.paypal_adapter import PayPalAdapter
from storefront.services.cart_service import CartService
from storefront.services.cart_store import CartStore
from storefront.services.orchestrator import PaymentOrchestrator
from storefront.services.reporting import ReportingView
from storefront.services.retry_schedule import RetryPolicy

T0 = datetime(2026, 1, 1, 12, 0, 0)

PAYPAL_BASE = "https://paypal.test"
MPESA_BASE = "https://mpesa.test"


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


def _session_factory(url: str):
    engine = build_engine(url)
    create_all(engine)
    return build_session_factory(engine)


def memory_session_factory():
    return _session_factory("sqlite://")


def file_session_factory(directory: str):
    """SQLite file database; each thread gets its own connection."""
    return _session_factory(f"sqlite:///{os.path.join(directory, 'storefront.db')}")


class ProviderStub:
    """Answers provider API calls from a queue of scripted responses."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.responses: List[Any] = []
        self.on_request: Optional[Callable[[httpx.Request], None]] = None

    def queue(self, status: int, body: Any) -> "ProviderStub":
        self.responses.append((status, body))
        return self

    def fail_transport(self) -> "ProviderStub":
        self.responses.append(httpx.ConnectError)
        return self

    def time_out(self) -> "ProviderStub":
        """The provider received the request but never answered."""
        self.responses.append(httpx.ReadTimeout)
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.on_request is not None:
            self.on_request(request)
        if not self.responses:
            return httpx.Response(500, json={"message": "no scripted response"})
        scripted = self.responses.pop(0)
        if scripted is httpx.ConnectError:
            raise httpx.ConnectError("connection refused", request=request)
        if scripted is httpx.ReadTimeout:
            raise httpx.ReadTimeout("read timed out", request=request)
        status, body = scripted
        return httpx.Response(status, json=body)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))


# ------------------------------------------------------
# PROVIDER PAYLOADS
# ------------------------------------------------------

def paypal_order(order_id: str) -> Dict[str, Any]:
    return {
        "id": order_id,
        "status": "CREATED",
        "links": [
            {"rel": "self", "href": f"{PAYPAL_BASE}/v2/checkout/orders/{order_id}", "method": "GET"},
            {"rel": "approve", "href": f"https://www.sandbox.paypal.com/checkoutnow?token={order_id}", "method": "GET"},
        ],
    }


def paypal_capture_event(
    order_id: str,
    amount: str,
    currency: str = "USD",
    event_type: str = "PAYMENT.CAPTURE.COMPLETED",
) -> Dict[str, Any]:
    return {
        "id": f"WH-{order_id}",
        "event_type": event_type,
        "resource_type": "capture",
        "resource": {
            "id": f"CAP-{order_id}",
            "status": "COMPLETED",
            "amount": {"currency_code": currency, "value": amount},
            "supplementary_data": {"related_ids": {"order_id": order_id}},
        },
    }


def mpesa_accepted(checkout_request_id: str) -> Dict[str, Any]:
    return {
        "MerchantRequestID": f"M-{checkout_request_id}",
        "CheckoutRequestID": checkout_request_id,
        "ResponseCode": "0",
        "ResponseDescription": "Success. Request accepted for processing",
        "CustomerMessage": "Success. Request accepted for processing",
    }


def mpesa_callback(checkout_request_id: str, result_code: int = 0, amount: Optional[Any] = None) -> Dict[str, Any]:
    callback: Dict[str, Any] = {
        "MerchantRequestID": f"M-{checkout_request_id}",
        "CheckoutRequestID": checkout_request_id,
        "ResultCode": result_code,
        "ResultDesc": "The service request is processed successfully." if result_code == 0 else "Request cancelled by user",
    }
    if amount is not None:
        callback["CallbackMetadata"] = {
            "Item": [
                {"Name": "Amount", "Value": amount},
                {"Name": "MpesaReceiptNumber", "Value": "NLJ7RT61SV"},
                {"Name": "PhoneNumber", "Value": 254708374149},
            ]
        }
    return {"Body": {"stkCallback": callback}}


# ------------------------------------------------------
# WIRING
# ------------------------------------------------------

def no_sleep(seconds: float) -> None:
    pass


def build_dispatcher(paypal: ProviderStub, mpesa: ProviderStub, max_attempts: int = 1) -> PSPDispatcher:
    policy = RetryPolicy(max_attempts=max_attempts, initial_delay_seconds=0.01)
    dispatcher = PSPDispatcher()
    dispatcher.register(PayPalAdapter(
        PAYPAL_BASE,
        "paypal-token",
        return_url="https://shop.test/paypal/return",
        cancel_url="https://shop.test/paypal/cancel",
        client=paypal.client(),
        retry_policy=policy,
        sleep=no_sleep,
    ))
    dispatcher.register(MpesaAdapter(
        MPESA_BASE,
        "mpesa-token",
        passkey="passkey",
        callback_url="https://shop.test/mpesa/callback",
        client=mpesa.client(),
        retry_policy=policy,
        sleep=no_sleep,
        clock=lambda: T0,
    ))
    return dispatcher


class Storefront:
    """Every service wired over one in-memory database."""

    def __init__(
        self,
        expired_grace_seconds: int = 0,
        intent_timeout_seconds: int = 300,
        max_attempts: int = 1,
        session_factory=None,
    ):
        self.session_factory = session_factory or memory_session_factory()
        self.clock = FakeClock()
        self.paypal = ProviderStub()
        self.mpesa = ProviderStub()
        self.dispatcher = build_dispatcher(self.paypal, self.mpesa, max_attempts=max_attempts)
        self.carts = CartService(CartStore(self.session_factory))
        self.orchestrator = PaymentOrchestrator(
            self.carts,
            self.dispatcher,
            self.session_factory,
            intent_timeout_seconds=intent_timeout_seconds,
            expired_grace_seconds=expired_grace_seconds,
            clock=self.clock,
        )
        self.reporting = ReportingView(self.session_factory)

    def fill_scenario_cart(self, cart_id: str = "c1") -> None:
        self.carts.add_item(cart_id, "A", "Apple", "10", 2)
        self.carts.add_item(cart_id, "B", "Banana", "5", 1)

    def mpesa_checkout(self, cart_id: str = "c1", ref: str = "R1"):
        self.mpesa.queue(200, mpesa_accepted(ref))
        return self.orchestrator.start_checkout(cart_id, "mpesa", phone_number="0708374149")

    def paypal_checkout(self, cart_id: str = "c1", ref: str = "ORDER-1"):
        self.paypal.queue(201, paypal_order(ref))
        return self.orchestrator.start_checkout(cart_id, "paypal")


def request_json(request: httpx.Request) -> Tuple[str, Dict[str, Any]]:
    return request.url.path, json.loads(request.content)
