"""
Payment Gateway Adapter Base Class and Interface.
Provides a uniform two-phase contract (initiate, later reconcile) over
heterogeneous payment providers (PayPal, M-Pesa).
"""
from abc import ABC, abstractmethod
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Optional

import httpx

from storefront.domain import CallbackResult, InitiateResult
from storefront.errors import GatewayRejected, GatewayUnavailable
from storefront.logging_config import get_logger
from storefront.services.retry_schedule import RetryPolicy, call_with_retry

logger = get_logger(__name__)

# Raised before the request left this process; resending is always safe
UNSENT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)


class PSPProvider(str, Enum):
    """Supported payment providers."""
    PAYPAL = "paypal"
    MPESA = "mpesa"


class PaymentGatewayAdapter(ABC):
    """
    Base adapter for payment providers.
    All provider implementations must inherit from this class.
    """

    provider: PSPProvider
    # Whether a request the provider may already have received can be resent
    resend_safe: bool = True

    def __init__(
        self,
        api_base: str,
        access_token: Optional[str] = None,
        timeout: float = 15.0,
        retry_policy: Optional[RetryPolicy] = None,
        client: Optional[httpx.Client] = None,
        sleep: Optional[Callable[[float], None]] = None,
        **kwargs
    ):
        """
        Initialize adapter with transport configuration.

        Args:
            api_base: Provider REST base URL
            access_token: Pre-issued bearer token for the provider API
            timeout: Per-request timeout in seconds
            retry_policy: Bounded retry policy for transport failures
            client: Optional shared httpx client (tests inject a MockTransport here)
            sleep: Backoff sleep function
            **kwargs: Provider-specific configuration
        """
        self.api_base = api_base.rstrip("/")
        self.access_token = access_token
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.config = kwargs
        self._client = client
        self._sleep = sleep

    @abstractmethod
    def initiate(
        self,
        amount: Decimal,
        currency: str,
        reference: str,
        **options
    ) -> InitiateResult:
        """
        Begin a payment with the provider.

        Args:
            amount: Amount in major currency units
            currency: ISO currency code
            reference: Our payment intent id, echoed to the provider
            **options: Provider-specific parameters (e.g. phone_number)

        Returns:
            InitiateResult with the provider reference and a continuation
            for the client (redirect URL or push confirmation)

        Raises:
            GatewayUnavailable: transport failure after retries (retryable)
            GatewayRejected: provider-side validation failure
        """
        pass

    @abstractmethod
    def parse_callback(self, payload: Dict[str, Any]) -> CallbackResult:
        """
        Validate and normalize an inbound asynchronous notification.

        Raises:
            InvalidCallback: if the payload shape is not recognised
        """
        pass

    @classmethod
    @abstractmethod
    def matches(cls, payload: Any) -> bool:
        """Whether `payload` has this provider's callback shape."""
        pass

    # ------------------------------------------------------
    # TRANSPORT
    # ------------------------------------------------------

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    def _send_once(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]],
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        url = f"{self.api_base}{path}"
        request_headers = self._headers()
        request_headers.update(headers or {})
        try:
            if self._client is not None:
                r = self._client.request(method, url, json=json, headers=request_headers, timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    r = client.request(method, url, json=json, headers=request_headers)
        except UNSENT_ERRORS as e:
            raise GatewayUnavailable(f"{self.provider.value} connection error: {e}", provider=self.provider.value)
        except httpx.TransportError as e:
            raise GatewayUnavailable(
                f"{self.provider.value} transport error: {e}",
                provider=self.provider.value,
                retryable=self.resend_safe,
            )

        if r.status_code == 429:
            raise GatewayUnavailable(
                f"{self.provider.value} returned HTTP 429",
                provider=self.provider.value,
                status_code=r.status_code,
            )
        if r.status_code >= 500:
            raise GatewayUnavailable(
                f"{self.provider.value} returned HTTP {r.status_code}",
                provider=self.provider.value,
                retryable=self.resend_safe,
                status_code=r.status_code,
            )
        if r.status_code >= 400:
            raise GatewayRejected(
                f"{self.provider.value} rejected the request: {self._error_message(r)}",
                provider=self.provider.value,
                status_code=r.status_code,
            )
        try:
            return r.json() if r.content else {}
        except ValueError:
            raise GatewayUnavailable(f"{self.provider.value} returned a non-JSON body", provider=self.provider.value)

    def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """Send a request, retrying transport failures per the retry policy."""
        return call_with_retry(
            lambda: self._send_once(method, path, json, headers),
            self.retry_policy,
            sleep=self._sleep,
            operation=f"{self.provider.value}:{method} {path}",
        )

    @staticmethod
    def _error_message(r: httpx.Response) -> str:
        try:
            body = r.json()
        except ValueError:
            return r.text[:200]
        if isinstance(body, dict):
            return str(body.get("message") or body.get("errorMessage") or body.get("error") or body)[:200]
        return str(body)[:200]

    def __repr__(self):
        return f"<{self.__class__.__name__}(provider={getattr(self, 'provider', 'unknown')})>"
