"""Payment gateway adapters (PayPal, M-Pesa) and the dispatcher that selects them."""
from .adapter import PaymentGatewayAdapter, PSPProvider
from .dispatcher import PSPDispatcher, parse_provider
from .mpesa_adapter import MpesaAdapter
from .paypal_adapter import PayPalAdapter

__all__ = [
    "PaymentGatewayAdapter",
    "PSPProvider",
    "PSPDispatcher",
    "parse_provider",
    "MpesaAdapter",
    "PayPalAdapter",
]
