"""PayPal Adapter Implementation (Orders API v2, redirect then capture)."""
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from storefront.domain import CallbackOutcome, CallbackResult, InitiateResult, to_money
from storefront.errors import GatewayUnavailable, InvalidCallback
from .adapter import PaymentGatewayAdapter, PSPProvider

SUCCESS_EVENTS = {"PAYMENT.CAPTURE.COMPLETED"}
FAILURE_EVENTS = {
    "PAYMENT.CAPTURE.DENIED",
    "PAYMENT.CAPTURE.DECLINED",
    "CHECKOUT.PAYMENT-APPROVAL.REVERSED",
}


class PayPalAdapter(PaymentGatewayAdapter):
    """PayPal payment gateway adapter."""

    provider = PSPProvider.PAYPAL

    def __init__(
        self,
        api_base: str,
        access_token: Optional[str] = None,
        return_url: str = "",
        cancel_url: str = "",
        **kwargs
    ):
        """Initialize PayPal adapter."""
        super().__init__(api_base, access_token, **kwargs)
        self.return_url = return_url
        self.cancel_url = cancel_url

    def initiate(
        self,
        amount: Decimal,
        currency: str,
        reference: str,
        **options
    ) -> InitiateResult:
        """Create a PayPal order and return the buyer approval link."""
        payload = {
            "intent": "CAPTURE",
            "purchase_units": [{
                "reference_id": reference,
                "custom_id": reference,
                "description": options.get("description") or "Storefront order",
                "amount": {
                    "currency_code": currency.upper(),
                    "value": str(to_money(amount)),
                },
            }],
            "application_context": {
                "return_url": options.get("return_url") or self.return_url,
                "cancel_url": options.get("cancel_url") or self.cancel_url,
                "user_action": "PAY_NOW",
            },
        }
        # PayPal replays the stored response for a repeated PayPal-Request-Id
        order = self._request("POST", "/v2/checkout/orders", payload, headers={"PayPal-Request-Id": reference})

        order_id = order.get("id")
        approve_url = next(
            (
                link.get("href")
                for link in order.get("links") or []
                if link.get("rel") in ("approve", "payer-action")
            ),
            None,
        )
        if not order_id or not approve_url:
            raise GatewayUnavailable("PayPal order response missing id or approval link", provider=self.provider.value)

        return InitiateResult(
            provider_ref=order_id,
            continuation={"type": "redirect", "redirect_url": approve_url},
        )

    def capture(self, order_id: str) -> Dict[str, Any]:
        """Capture an approved order. The settled outcome still arrives by webhook."""
        data = self._request(
            "POST",
            f"/v2/checkout/orders/{order_id}/capture",
            {},
            headers={"PayPal-Request-Id": f"capture-{order_id}"},
        )
        return {"order_id": data.get("id") or order_id, "status": data.get("status")}

    @classmethod
    def matches(cls, payload: Any) -> bool:
        return isinstance(payload, dict) and "event_type" in payload and "resource" in payload

    def parse_callback(self, payload: Dict[str, Any]) -> CallbackResult:
        """Normalize a PayPal webhook event."""
        if not self.matches(payload):
            raise InvalidCallback("Not a PayPal webhook event")

        event_type = payload.get("event_type")
        resource = payload.get("resource")
        if not isinstance(resource, dict):
            raise InvalidCallback("PayPal event has no resource")

        if event_type in SUCCESS_EVENTS:
            outcome = CallbackOutcome.SUCCESS
        elif event_type in FAILURE_EVENTS:
            outcome = CallbackOutcome.FAILURE
        else:
            raise InvalidCallback(f"Unsupported PayPal event type: {event_type}")

        related = (resource.get("supplementary_data") or {}).get("related_ids") or {}
        if event_type.startswith("PAYMENT.CAPTURE."):
            order_id = related.get("order_id")
        else:
            order_id = resource.get("order_id") or resource.get("id")
        if not order_id:
            raise InvalidCallback("PayPal event does not reference an order")

        amount = currency = None
        money = resource.get("amount")
        if isinstance(money, dict) and money.get("value") is not None:
            try:
                amount = to_money(money["value"])
            except (InvalidOperation, ValueError):
                raise InvalidCallback("PayPal event amount is not a number")
            currency = (money.get("currency_code") or "").upper() or None

        return CallbackResult(
            provider_ref=str(order_id),
            outcome=outcome,
            amount=amount,
            currency=currency,
            reason=event_type,
        )
