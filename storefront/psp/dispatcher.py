"""PSP Adapter Dispatcher - Routes to the correct adapter by provider tag or callback shape."""
from typing import Any, Dict, Optional

from storefront.config import Settings
from storefront.errors import InvalidArgument, InvalidCallback
from storefront.services.retry_schedule import RetryPolicy
from .adapter import PaymentGatewayAdapter, PSPProvider
from .mpesa_adapter import MpesaAdapter
from .paypal_adapter import PayPalAdapter


def parse_provider(provider: Any) -> PSPProvider:
    """Map a provider tag ("paypal", "MPESA", PSPProvider.PAYPAL) to PSPProvider."""
    if isinstance(provider, PSPProvider):
        return provider
    try:
        return PSPProvider(str(provider or "").strip().lower())
    except ValueError:
        raise InvalidArgument(f"Unsupported payment provider: {provider}")


class PSPDispatcher:
    """
    Dispatcher that selects and initializes the correct payment adapter.
    Adapters are built lazily from settings and cached per provider.
    """

    def __init__(self, settings: Optional[Settings] = None, **adapter_kwargs):
        self.settings = settings
        self._adapter_kwargs = adapter_kwargs
        self._adapters: Dict[PSPProvider, PaymentGatewayAdapter] = {}

    def register(self, adapter: PaymentGatewayAdapter) -> None:
        """Install a pre-built adapter (used by tests and custom wiring)."""
        self._adapters[adapter.provider] = adapter

    def get_adapter(self, provider: Any) -> PaymentGatewayAdapter:
        """
        Get adapter for the given provider.

        Args:
            provider: Provider tag (paypal, mpesa)

        Returns:
            Initialized adapter

        Raises:
            InvalidArgument: If provider is not supported or not configured
        """
        provider = parse_provider(provider)

        # Return cached adapter if exists
        if provider in self._adapters:
            return self._adapters[provider]

        if self.settings is None:
            raise InvalidArgument(f"Payment provider {provider.value} is not configured")

        adapter = self._build(provider)
        self._adapters[provider] = adapter
        return adapter

    def resolve_callback_adapter(self, payload: Any, provider: Any = None) -> PaymentGatewayAdapter:
        """
        Pick the adapter for an inbound callback.

        The provider marker (from the callback route) wins; otherwise the
        payload shape decides.
        """
        if provider is not None:
            try:
                return self.get_adapter(provider)
            except InvalidArgument as e:
                raise InvalidCallback(str(e))

        for candidate in (PayPalAdapter, MpesaAdapter):
            if candidate.matches(payload):
                return self.get_adapter(candidate.provider)
        raise InvalidCallback("Callback payload does not match any known provider")

    def clear_cache(self):
        """Clear cached adapters (useful for testing)."""
        self._adapters = {}

    def _build(self, provider: PSPProvider) -> PaymentGatewayAdapter:
        s = self.settings
        kwargs = dict(self._adapter_kwargs)
        kwargs.setdefault("timeout", s.GATEWAY_TIMEOUT_SECONDS)
        kwargs.setdefault(
            "retry_policy",
            RetryPolicy(
                max_attempts=s.GATEWAY_MAX_ATTEMPTS,
                initial_delay_seconds=s.GATEWAY_BACKOFF_SECONDS,
                backoff_multiplier=s.GATEWAY_BACKOFF_MULTIPLIER,
                max_delay_seconds=s.GATEWAY_BACKOFF_MAX_SECONDS,
            ),
        )

        if provider == PSPProvider.PAYPAL:
            return PayPalAdapter(
                api_base=s.PAYPAL_API_BASE,
                access_token=s.PAYPAL_ACCESS_TOKEN,
                return_url=s.PAYPAL_RETURN_URL,
                cancel_url=s.PAYPAL_CANCEL_URL,
                **kwargs
            )

        if provider == PSPProvider.MPESA:
            return MpesaAdapter(
                api_base=s.MPESA_API_BASE,
                access_token=s.MPESA_ACCESS_TOKEN,
                shortcode=s.MPESA_SHORTCODE,
                passkey=s.MPESA_PASSKEY,
                callback_url=s.MPESA_CALLBACK_URL,
                transaction_type=s.MPESA_TRANSACTION_TYPE,
                account_reference=s.MPESA_ACCOUNT_REFERENCE,
                transaction_desc=s.MPESA_TRANSACTION_DESC,
                **kwargs
            )

        raise InvalidArgument(f"Unsupported payment provider: {provider}")
