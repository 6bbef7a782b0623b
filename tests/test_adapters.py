import base64
import unittest
from decimal import Decimal

from storefront.config import Settings
from storefront.domain import CallbackOutcome
from storefront.errors import GatewayRejected, GatewayUnavailable, InvalidArgument, InvalidCallback
from storefront.psp import MpesaAdapter, PayPalAdapter, PSPDispatcher, PSPProvider, parse_provider
from storefront.psp.mpesa_adapter import normalize_msisdn
from tests.helpers import (
    MPESA_BASE,
    PAYPAL_BASE,
    ProviderStub,
    T0,
    build_dispatcher,
    mpesa_accepted,
    mpesa_callback,
    paypal_capture_event,
    paypal_order,
    request_json,
)


class TestPayPalAdapter(unittest.TestCase):
    def setUp(self):
        self.stub = ProviderStub()
        self.sleeps = []
        self.dispatcher = build_dispatcher(self.stub, ProviderStub(), max_attempts=3)
        self.adapter = self.dispatcher.get_adapter("paypal")
        self.adapter._sleep = self.sleeps.append

    def test_initiate_creates_capture_order(self):
        self.stub.queue(201, paypal_order("ORDER-1"))

        result = self.adapter.initiate(Decimal("25"), "usd", "intent-1", description="Two apples")

        self.assertEqual(result.provider_ref, "ORDER-1")
        self.assertEqual(result.continuation["type"], "redirect")
        self.assertIn("token=ORDER-1", result.continuation["redirect_url"])

        request = self.stub.requests[0]
        self.assertEqual(request.headers["Authorization"], "Bearer paypal-token")
        path, body = request_json(request)
        self.assertEqual(path, "/v2/checkout/orders")
        self.assertEqual(body["intent"], "CAPTURE")
        unit = body["purchase_units"][0]
        self.assertEqual(unit["reference_id"], "intent-1")
        self.assertEqual(unit["amount"], {"currency_code": "USD", "value": "25.00"})
        self.assertEqual(unit["description"], "Two apples")

    def test_transport_errors_retry_then_succeed(self):
        self.stub.fail_transport().queue(502, {"message": "bad gateway"}).queue(201, paypal_order("ORDER-1"))

        result = self.adapter.initiate(Decimal("10"), "USD", "intent-1")

        self.assertEqual(result.provider_ref, "ORDER-1")
        self.assertEqual(len(self.stub.requests), 3)
        self.assertEqual(self.sleeps, [0.01, 0.02])

    def test_retries_exhausted_is_unavailable(self):
        for _ in range(3):
            self.stub.queue(503, {"message": "down"})
        with self.assertRaises(GatewayUnavailable):
            self.adapter.initiate(Decimal("10"), "USD", "intent-1")
        self.assertEqual(len(self.stub.requests), 3)

    def test_retried_order_create_reuses_request_id(self):
        self.stub.queue(503, {"message": "down"}).time_out().queue(201, paypal_order("ORDER-1"))

        self.adapter.initiate(Decimal("10"), "USD", "intent-1")

        self.assertEqual(len(self.stub.requests), 3)
        self.assertEqual([r.headers.get("PayPal-Request-Id") for r in self.stub.requests], ["intent-1"] * 3)

    def test_rate_limit_is_retried(self):
        self.stub.queue(429, {"message": "slow down"}).queue(201, paypal_order("ORDER-1"))
        self.assertEqual(self.adapter.initiate(Decimal("10"), "USD", "i").provider_ref, "ORDER-1")

    def test_client_error_is_rejected_without_retry(self):
        self.stub.queue(422, {"name": "UNPROCESSABLE_ENTITY", "message": "Currency not supported"})
        with self.assertRaises(GatewayRejected) as ctx:
            self.adapter.initiate(Decimal("10"), "XYZ", "intent-1")
        self.assertIn("Currency not supported", ctx.exception.message)
        self.assertEqual(len(self.stub.requests), 1)

    def test_missing_approval_link_is_unavailable(self):
        self.stub.queue(201, {"id": "ORDER-1", "links": []})
        with self.assertRaises(GatewayUnavailable):
            self.adapter.initiate(Decimal("10"), "USD", "intent-1")

    def test_parse_capture_completed(self):
        parsed = self.adapter.parse_callback(paypal_capture_event("ORDER-1", "25.00"))
        self.assertEqual(parsed.provider_ref, "ORDER-1")
        self.assertEqual(parsed.outcome, CallbackOutcome.SUCCESS)
        self.assertEqual(parsed.amount, Decimal("25.00"))
        self.assertEqual(parsed.currency, "USD")

    def test_parse_capture_denied(self):
        parsed = self.adapter.parse_callback(
            paypal_capture_event("ORDER-1", "25.00", event_type="PAYMENT.CAPTURE.DENIED")
        )
        self.assertEqual(parsed.outcome, CallbackOutcome.FAILURE)
        self.assertEqual(parsed.reason, "PAYMENT.CAPTURE.DENIED")

    def test_parse_approval_reversed_uses_order_id(self):
        parsed = self.adapter.parse_callback({
            "event_type": "CHECKOUT.PAYMENT-APPROVAL.REVERSED",
            "resource": {"order_id": "ORDER-7"},
        })
        self.assertEqual(parsed.provider_ref, "ORDER-7")
        self.assertEqual(parsed.outcome, CallbackOutcome.FAILURE)
        self.assertIsNone(parsed.amount)

    def test_parse_rejects_bad_payloads(self):
        bad = [
            {"event_type": "CUSTOMER.DISPUTE.CREATED", "resource": {"id": "X"}},
            {"event_type": "PAYMENT.CAPTURE.COMPLETED", "resource": "nope"},
            {"event_type": "PAYMENT.CAPTURE.COMPLETED", "resource": {"amount": {"value": "1"}}},
            {"resource": {}},
        ]
        for payload in bad:
            with self.assertRaises(InvalidCallback):
                self.adapter.parse_callback(payload)

    def test_capture(self):
        self.stub.queue(201, {"id": "ORDER-1", "status": "COMPLETED"})
        out = self.adapter.capture("ORDER-1")
        self.assertEqual(out["status"], "COMPLETED")
        self.assertEqual(self.stub.requests[0].url.path, "/v2/checkout/orders/ORDER-1/capture")
        self.assertEqual(self.stub.requests[0].headers["PayPal-Request-Id"], "capture-ORDER-1")


class TestMpesaAdapter(unittest.TestCase):
    def setUp(self):
        self.stub = ProviderStub()
        self.adapter = build_dispatcher(ProviderStub(), self.stub).get_adapter("mpesa")

    def test_initiate_sends_stk_push(self):
        self.stub.queue(200, mpesa_accepted("ws_CO_1"))

        result = self.adapter.initiate(Decimal("25.00"), "KES", "intent-1", phone_number="0708 374 149")

        self.assertEqual(result.provider_ref, "ws_CO_1")
        self.assertEqual(result.continuation["type"], "push")
        self.assertEqual(result.continuation["checkout_request_id"], "ws_CO_1")

        path, body = request_json(self.stub.requests[0])
        self.assertEqual(path, "/mpesa/stkpush/v1/processrequest")
        timestamp = T0.strftime("%Y%m%d%H%M%S")
        self.assertEqual(body["Timestamp"], timestamp)
        self.assertEqual(base64.b64decode(body["Password"]).decode(), f"174379passkey{timestamp}")
        self.assertEqual(body["Amount"], 25)
        self.assertEqual(body["PartyA"], "254708374149")
        self.assertEqual(body["PhoneNumber"], "254708374149")
        self.assertEqual(body["CallBackURL"], "https://shop.test/mpesa/callback")
        self.assertLessEqual(len(body["TransactionDesc"]), 13)

    def test_initiate_preconditions(self):
        with self.assertRaises(GatewayRejected):
            self.adapter.initiate(Decimal("25"), "USD", "i", phone_number="0708374149")
        with self.assertRaises(GatewayRejected):
            self.adapter.initiate(Decimal("25.50"), "KES", "i", phone_number="0708374149")
        with self.assertRaises(GatewayRejected):
            self.adapter.initiate(Decimal("25"), "KES", "i")
        with self.assertRaises(GatewayRejected):
            self.adapter.initiate(Decimal("25"), "KES", "i", phone_number="12345")
        self.assertEqual(self.stub.requests, [])

    def test_business_refusal_is_rejected(self):
        self.stub.queue(200, {"ResponseCode": "1", "ResponseDescription": "Insufficient balance"})
        with self.assertRaises(GatewayRejected):
            self.adapter.initiate(Decimal("25"), "KES", "i", phone_number="0708374149")

    def test_push_resent_only_when_never_delivered(self):
        adapter = build_dispatcher(ProviderStub(), self.stub, max_attempts=3).get_adapter("mpesa")
        self.stub.fail_transport().queue(200, mpesa_accepted("ws_CO_1"))

        result = adapter.initiate(Decimal("25"), "KES", "i", phone_number="0708374149")

        self.assertEqual(result.provider_ref, "ws_CO_1")
        self.assertEqual(len(self.stub.requests), 2)

    def test_push_not_resent_after_provider_received_it(self):
        adapter = build_dispatcher(ProviderStub(), self.stub, max_attempts=3).get_adapter("mpesa")
        for scripted in (self.stub.time_out, lambda: self.stub.queue(503, {"errorMessage": "down"})):
            self.stub.requests.clear()
            scripted()
            with self.assertRaises(GatewayUnavailable) as ctx:
                adapter.initiate(Decimal("25"), "KES", "i", phone_number="0708374149")
            self.assertFalse(ctx.exception.retryable)
            self.assertEqual(len(self.stub.requests), 1)

    def test_rate_limited_push_is_retried(self):
        adapter = build_dispatcher(ProviderStub(), self.stub, max_attempts=2).get_adapter("mpesa")
        self.stub.queue(429, {"errorMessage": "slow down"}).queue(200, mpesa_accepted("ws_CO_1"))
        self.assertEqual(adapter.initiate(Decimal("25"), "KES", "i", phone_number="0708374149").provider_ref, "ws_CO_1")

    def test_parse_success(self):
        parsed = self.adapter.parse_callback(mpesa_callback("ws_CO_1", amount=25))
        self.assertEqual(parsed.provider_ref, "ws_CO_1")
        self.assertEqual(parsed.outcome, CallbackOutcome.SUCCESS)
        self.assertEqual(parsed.amount, Decimal("25.00"))
        self.assertEqual(parsed.currency, "KES")

    def test_parse_failure(self):
        parsed = self.adapter.parse_callback(mpesa_callback("ws_CO_1", result_code=1032))
        self.assertEqual(parsed.outcome, CallbackOutcome.FAILURE)
        self.assertEqual(parsed.reason, "Request cancelled by user")
        self.assertIsNone(parsed.amount)

    def test_parse_success_without_amount_is_invalid(self):
        with self.assertRaises(InvalidCallback):
            self.adapter.parse_callback(mpesa_callback("ws_CO_1", result_code=0))

    def test_parse_rejects_bad_payloads(self):
        bad = [
            {},
            {"Body": {}},
            {"Body": {"stkCallback": "x"}},
            {"Body": {"stkCallback": {"ResultCode": 0}}},
            {"Body": {"stkCallback": {"CheckoutRequestID": "ws_CO_1"}}},
        ]
        for payload in bad:
            with self.assertRaises(InvalidCallback):
                self.adapter.parse_callback(payload)

    def test_normalize_msisdn(self):
        self.assertEqual(normalize_msisdn("0708374149"), "254708374149")
        self.assertEqual(normalize_msisdn("+254 708 374 149"), "254708374149")
        self.assertEqual(normalize_msisdn("708374149"), "254708374149")
        self.assertEqual(normalize_msisdn("0110123456"), "254110123456")


class TestDispatcher(unittest.TestCase):
    def test_parse_provider(self):
        self.assertEqual(parse_provider("PayPal"), PSPProvider.PAYPAL)
        self.assertEqual(parse_provider(" mpesa "), PSPProvider.MPESA)
        self.assertEqual(parse_provider(PSPProvider.MPESA), PSPProvider.MPESA)
        with self.assertRaises(InvalidArgument):
            parse_provider("stripe")
        with self.assertRaises(InvalidArgument):
            parse_provider(None)

    def test_adapters_built_from_settings_and_cached(self):
        settings = Settings(
            PAYPAL_API_BASE=PAYPAL_BASE,
            PAYPAL_ACCESS_TOKEN="tok",
            MPESA_API_BASE=MPESA_BASE,
            MPESA_PASSKEY="pk",
            GATEWAY_MAX_ATTEMPTS=5,
        )
        dispatcher = PSPDispatcher(settings)

        paypal = dispatcher.get_adapter("paypal")
        self.assertIsInstance(paypal, PayPalAdapter)
        self.assertIs(dispatcher.get_adapter(PSPProvider.PAYPAL), paypal)
        self.assertEqual(paypal.retry_policy.max_attempts, 5)
        self.assertEqual(paypal.api_base, PAYPAL_BASE)

        mpesa = dispatcher.get_adapter("mpesa")
        self.assertIsInstance(mpesa, MpesaAdapter)
        self.assertEqual(mpesa.passkey, "pk")

        dispatcher.clear_cache()
        self.assertIsNot(dispatcher.get_adapter("paypal"), paypal)

    def test_unconfigured_dispatcher(self):
        with self.assertRaises(InvalidArgument):
            PSPDispatcher().get_adapter("paypal")

    def test_callback_adapter_by_shape_and_marker(self):
        dispatcher = build_dispatcher(ProviderStub(), ProviderStub())

        self.assertEqual(
            dispatcher.resolve_callback_adapter(paypal_capture_event("O", "1.00")).provider,
            PSPProvider.PAYPAL,
        )
        self.assertEqual(
            dispatcher.resolve_callback_adapter(mpesa_callback("R", amount=1)).provider,
            PSPProvider.MPESA,
        )
        # The route marker wins over the shape
        self.assertEqual(
            dispatcher.resolve_callback_adapter(paypal_capture_event("O", "1.00"), "mpesa").provider,
            PSPProvider.MPESA,
        )
        with self.assertRaises(InvalidCallback):
            dispatcher.resolve_callback_adapter({"foo": 1})
        with self.assertRaises(InvalidCallback):
            dispatcher.resolve_callback_adapter(["not", "a", "dict"])
        with self.assertRaises(InvalidCallback):
            dispatcher.resolve_callback_adapter({}, "venmo")


if __name__ == "__main__":
    unittest.main()
