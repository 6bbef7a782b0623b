"""
Checkout endpoints: start a PayPal or M-Pesa payment for the current cart,
finish the PayPal redirect and read back an intent.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from storefront.deps import get_cart_id, get_orchestrator
from storefront.psp.adapter import PSPProvider
from storefront.schemas import CheckoutOut, CheckoutRequest, IntentOut
from storefront.services.orchestrator import PaymentOrchestrator

router = APIRouter(tags=["Payments"])


def _checkout(provider: PSPProvider, body: CheckoutRequest, cart_id: str, orchestrator: PaymentOrchestrator):
    result = orchestrator.start_checkout(cart_id, provider, body.currency, **body.options())
    return CheckoutOut.from_result(result)


@router.post("/paypal/payments", response_model=CheckoutOut)
def create_paypal_payment(
    body: Optional[CheckoutRequest] = None,
    cart_id: str = Depends(get_cart_id),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    """Create a PayPal order for the cart; the client follows continuation.redirect_url."""
    return _checkout(PSPProvider.PAYPAL, body or CheckoutRequest(), cart_id, orchestrator)


@router.post("/mpesa/payments", response_model=CheckoutOut)
def create_mpesa_payment(
    body: CheckoutRequest,
    cart_id: str = Depends(get_cart_id),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    """Send an STK push to body.phone_number for the cart total."""
    return _checkout(PSPProvider.MPESA, body, cart_id, orchestrator)


@router.get("/paypal/return")
def paypal_return(
    token: str = Query(..., min_length=1),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    # PayPal appends the approved order id as ?token=
    return orchestrator.capture_paypal_return(token)


@router.get("/payments/{intent_id}", response_model=IntentOut)
def get_payment(
    intent_id: str,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    return IntentOut.from_view(orchestrator.get_intent(intent_id))
