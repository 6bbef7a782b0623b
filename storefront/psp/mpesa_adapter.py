"""M-Pesa Adapter Implementation (Daraja STK push, result by server callback)."""
import base64
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Optional

from storefront.domain import CallbackOutcome, CallbackResult, InitiateResult, to_money
from storefront.errors import GatewayRejected, GatewayUnavailable, InvalidCallback
from .adapter import PaymentGatewayAdapter, PSPProvider

MPESA_CURRENCY = "KES"


def normalize_msisdn(phone: str) -> str:
    """Normalize a Kenyan phone number to the 2547XXXXXXXX form Daraja expects."""
    digits = re.sub(r"\D", "", phone or "")
    if digits.startswith("0") and len(digits) == 10:
        digits = "254" + digits[1:]
    elif len(digits) == 9 and digits[0] in "17":
        digits = "254" + digits
    if not re.fullmatch(r"254[17]\d{8}", digits):
        raise GatewayRejected(f"Invalid M-Pesa phone number: {phone!r}", provider=PSPProvider.MPESA.value)
    return digits


class MpesaAdapter(PaymentGatewayAdapter):
    """M-Pesa payment gateway adapter."""

    provider = PSPProvider.MPESA
    # An STK push carries no idempotency key; a resend is a second prompt on the phone
    resend_safe = False

    def __init__(
        self,
        api_base: str,
        access_token: Optional[str] = None,
        shortcode: str = "174379",
        passkey: Optional[str] = None,
        callback_url: str = "",
        transaction_type: str = "CustomerPayBillOnline",
        account_reference: str = "payment",
        transaction_desc: str = "Storefront order",
        clock: Optional[Callable[[], datetime]] = None,
        **kwargs
    ):
        """Initialize M-Pesa adapter."""
        super().__init__(api_base, access_token, **kwargs)
        self.shortcode = shortcode
        self.passkey = passkey or ""
        self.callback_url = callback_url
        self.transaction_type = transaction_type
        self.account_reference = account_reference
        self.transaction_desc = transaction_desc
        self._clock = clock or datetime.now

    def _password(self, timestamp: str) -> str:
        raw = f"{self.shortcode}{self.passkey}{timestamp}"
        return base64.b64encode(raw.encode()).decode()

    def initiate(
        self,
        amount: Decimal,
        currency: str,
        reference: str,
        **options
    ) -> InitiateResult:
        """Send an STK push to the customer's phone."""
        if currency.upper() != MPESA_CURRENCY:
            raise GatewayRejected(f"M-Pesa only accepts {MPESA_CURRENCY}", provider=self.provider.value)
        if amount != amount.to_integral_value():
            raise GatewayRejected("M-Pesa amounts must be whole shillings", provider=self.provider.value)
        phone = options.get("phone_number")
        if not phone:
            raise GatewayRejected("phone_number is required for M-Pesa checkout", provider=self.provider.value)
        msisdn = normalize_msisdn(phone)

        timestamp = self._clock().strftime("%Y%m%d%H%M%S")
        payload = {
            "BusinessShortCode": self.shortcode,
            "Password": self._password(timestamp),
            "Timestamp": timestamp,
            "TransactionType": self.transaction_type,
            "Amount": int(amount),
            "PartyA": msisdn,
            "PartyB": self.shortcode,
            "PhoneNumber": msisdn,
            "CallBackURL": self.callback_url,
            "AccountReference": (options.get("account_reference") or self.account_reference)[:12],
            "TransactionDesc": (options.get("description") or self.transaction_desc)[:13],
        }
        data = self._request("POST", "/mpesa/stkpush/v1/processrequest", payload)

        if str(data.get("ResponseCode", "")) != "0":
            raise GatewayRejected(
                f"M-Pesa declined the push: {data.get('ResponseDescription') or data.get('errorMessage')}",
                provider=self.provider.value,
            )
        checkout_request_id = data.get("CheckoutRequestID")
        if not checkout_request_id:
            raise GatewayUnavailable("M-Pesa response missing CheckoutRequestID", provider=self.provider.value)

        return InitiateResult(
            provider_ref=checkout_request_id,
            continuation={
                "type": "push",
                "checkout_request_id": checkout_request_id,
                "merchant_request_id": data.get("MerchantRequestID"),
                "customer_message": data.get("CustomerMessage"),
            },
        )

    @classmethod
    def matches(cls, payload: Any) -> bool:
        if not isinstance(payload, dict):
            return False
        body = payload.get("Body")
        return isinstance(body, dict) and "stkCallback" in body

    def parse_callback(self, payload: Dict[str, Any]) -> CallbackResult:
        """Normalize a Daraja stkCallback notification."""
        if not self.matches(payload):
            raise InvalidCallback("Not an M-Pesa STK callback")

        callback = payload["Body"]["stkCallback"]
        if not isinstance(callback, dict):
            raise InvalidCallback("M-Pesa stkCallback is not an object")

        checkout_request_id = callback.get("CheckoutRequestID")
        if not checkout_request_id:
            raise InvalidCallback("M-Pesa callback missing CheckoutRequestID")

        try:
            result_code = int(callback.get("ResultCode"))
        except (TypeError, ValueError):
            raise InvalidCallback("M-Pesa callback missing ResultCode")

        amount = None
        items = (callback.get("CallbackMetadata") or {}).get("Item") or []
        for item in items:
            if isinstance(item, dict) and item.get("Name") == "Amount" and item.get("Value") is not None:
                try:
                    amount = to_money(item["Value"])
                except (InvalidOperation, ValueError):
                    raise InvalidCallback("M-Pesa callback amount is not a number")

        if result_code == 0:
            outcome = CallbackOutcome.SUCCESS
            if amount is None:
                raise InvalidCallback("Successful M-Pesa callback carries no Amount")
        else:
            outcome = CallbackOutcome.FAILURE

        return CallbackResult(
            provider_ref=str(checkout_request_id),
            outcome=outcome,
            amount=amount,
            currency=MPESA_CURRENCY if amount is not None else None,
            reason=callback.get("ResultDesc"),
        )
