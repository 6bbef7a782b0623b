"""
Payment Orchestrator: drives a purchase from cart snapshot to a settled,
failed or expired payment intent.

Intent state machine:

    PENDING --callback SUCCESS--> SUCCEEDED
    PENDING --callback FAILURE--> FAILED
    PENDING --timeout-----------> EXPIRED

SUCCEEDED and FAILED are absorbing. EXPIRED may still be overridden by a
legitimate callback that arrives within the configured grace window; outside
it the callback is rejected with ConflictingCallback.

While an EXPIRED intent can still be overridden it blocks a new checkout for
its cart, so one cart never has two payments that can both settle.

Concurrency: the database is authoritative. A checkout_reservations row claims
a cart for the duration of one provider call, and every intent transition is a
conditional UPDATE on the status it was decided from, so API processes and the
expiry worker never overwrite each other. In-process KeyedLocks only reduce
contention. Adapter network calls never run under a lock. When both an intent
and a cart lock are needed the intent lock is taken first.
"""
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from sqlalchemy.exc import IntegrityError

from storefront.db import SessionFactory, session_scope
from storefront.domain import (
    CallbackOutcome,
    CallbackResult,
    CheckoutResult,
    PaymentIntentView,
    PaymentStatus,
    ReconcileResult,
    utcnow,
)
from storefront.errors import (
    ConflictingCallback,
    EmptyCart,
    GatewayError,
    IntentAlreadyPending,
    InvalidArgument,
    InvalidCallback,
    NotFound,
    UnknownIntent,
)
from storefront.logging_config import get_logger
from storefront.psp.adapter import PSPProvider
from storefront.psp.dispatcher import PSPDispatcher
from storefront.services.cart_service import CartService
from storefront.services.intent_store import PaymentIntentStore, to_view
from storefront.services.locks import KeyedLocks
from storefront.models import PaymentIntent

logger = get_logger(__name__)

# A transition decided on a stale read is re-decided at most this many times
TRANSITION_ATTEMPTS = 3

DEFAULT_CURRENCIES: Dict[PSPProvider, str] = {
    PSPProvider.PAYPAL: "USD",
    PSPProvider.MPESA: "KES",
}


class PaymentOrchestrator:
    def __init__(
        self,
        cart_service: CartService,
        dispatcher: PSPDispatcher,
        session_factory: SessionFactory,
        intent_timeout_seconds: int = 300,
        expired_grace_seconds: int = 0,
        clock: Optional[Callable[[], datetime]] = None,
        default_currencies: Optional[Dict[PSPProvider, str]] = None,
    ):
        self.cart_service = cart_service
        self.dispatcher = dispatcher
        self.intents = PaymentIntentStore()
        self.intent_timeout = timedelta(seconds=intent_timeout_seconds)
        self.expired_grace = timedelta(seconds=max(0, expired_grace_seconds))
        self.default_currencies = dict(DEFAULT_CURRENCIES, **(default_currencies or {}))
        self._session_factory = session_factory
        self._clock = clock or utcnow
        self._checkout_locks = KeyedLocks()
        self._intent_locks = KeyedLocks()

    # ------------------------------------------------------
    # CHECKOUT
    # ------------------------------------------------------

    def start_checkout(self, cart_id: str, provider: Any, currency: Optional[str] = None, **options) -> CheckoutResult:
        """
        Snapshot the cart, initiate a payment with `provider` and record a
        PENDING intent. Returns the provider continuation for the client.
        """
        adapter = self.dispatcher.get_adapter(provider)
        provider = adapter.provider
        currency = (currency or self.default_currencies[provider]).strip().upper()
        if not currency:
            raise InvalidArgument("Currency is required")

        intent_id = str(uuid4())
        with self._checkout_locks.hold(cart_id):
            self._reserve(cart_id, intent_id, self._clock())

        recorded = False
        try:
            cart = self.cart_service.get_cart(cart_id)
            if cart.is_empty:
                raise EmptyCart(f"Cart {cart_id} is empty", cart_id=cart_id)
            total = cart.total
            if total <= 0:
                raise InvalidArgument("Cart total must be greater than zero", cart_id=cart_id)

            result = adapter.initiate(total, currency, intent_id, **options)
            created_at = self._clock()
            with session_scope(self._session_factory) as db:
                snapshot = self.intents.create_snapshot(db, cart, currency, created_at)
                self.intents.create(
                    db,
                    intent_id=intent_id,
                    cart_id=cart_id,
                    provider=provider.value,
                    amount=total,
                    currency=currency,
                    provider_ref=result.provider_ref,
                    cart_snapshot_id=snapshot.id,
                    created_at=created_at,
                )
                self.intents.release_checkout(db, cart_id, intent_id)
            recorded = True
        except GatewayError as e:
            logger.warning(
                "checkout_initiate_failed",
                cart_id=cart_id,
                provider=provider.value,
                error_code=e.code,
                error=str(e),
            )
            raise
        except IntegrityError as e:
            logger.error(
                "checkout_record_failed",
                cart_id=cart_id,
                intent_id=intent_id,
                provider_ref=result.provider_ref,
                error=str(e),
            )
            raise IntentAlreadyPending(
                f"Another payment intent was recorded for cart {cart_id}",
                cart_id=cart_id,
            )
        finally:
            if not recorded:
                self._release(cart_id, intent_id)

        logger.info(
            "checkout_started",
            cart_id=cart_id,
            intent_id=intent_id,
            provider=provider.value,
            provider_ref=result.provider_ref,
            amount=str(total),
            currency=currency,
        )
        return CheckoutResult(
            intent_id=intent_id,
            provider=provider.value,
            provider_ref=result.provider_ref,
            amount=total,
            currency=currency,
            continuation=result.continuation,
        )

    # ------------------------------------------------------
    # CALLBACK RECONCILIATION
    # ------------------------------------------------------

    def reconcile(self, payload: Any, provider: Any = None) -> ReconcileResult:
        """
        Apply a provider callback to its pending intent.

        Raises InvalidCallback, UnknownIntent or ConflictingCallback without
        changing state; callers acknowledge the provider regardless.
        """
        adapter = self.dispatcher.resolve_callback_adapter(payload, provider)
        parsed = adapter.parse_callback(payload)

        with session_scope(self._session_factory) as db:
            row = self.intents.get_by_provider_ref(db, parsed.provider_ref)
            if row is not None and row.provider == adapter.provider.value:
                intent_id, cart_id = row.id, row.cart_id
            else:
                intent_id = cart_id = None
        if intent_id is None:
            raise UnknownIntent(
                f"No payment intent for {adapter.provider.value} reference {parsed.provider_ref}",
                provider=adapter.provider.value,
                provider_ref=parsed.provider_ref,
            )

        target = PaymentStatus.SUCCEEDED if parsed.outcome == CallbackOutcome.SUCCESS else PaymentStatus.FAILED
        lines_cleared = 0

        with self._intent_locks.hold(intent_id), self.cart_service.hold(cart_id):
            for _ in range(TRANSITION_ATTEMPTS):
                with session_scope(self._session_factory) as db:
                    row = self.intents.get(db, intent_id)
                    self._check_amount(row, parsed)
                    current = PaymentStatus(row.status)
                    now = self._clock()

                    if current == target:
                        logger.info("callback_duplicate_ignored", intent_id=intent_id, status=current.value)
                        return ReconcileResult(intent_id, current, changed=False)

                    if current == PaymentStatus.EXPIRED and self._within_grace(row, now):
                        logger.warning(
                            "expired_intent_overridden",
                            intent_id=intent_id,
                            status=target.value,
                            expired_at=row.expired_at.isoformat(),
                        )
                    elif current != PaymentStatus.PENDING:
                        logger.warning(
                            "callback_conflicts_with_terminal_state",
                            intent_id=intent_id,
                            status=current.value,
                            callback_outcome=parsed.outcome.value,
                        )
                        raise ConflictingCallback(
                            f"Intent {intent_id} is {current.value}; refusing {target.value}",
                            intent_id=intent_id,
                        )

                    reason = None
                    if target == PaymentStatus.FAILED:
                        reason = parsed.reason or "payment_failed"
                    if not self.intents.transition(db, intent_id, current, target, now, reason):
                        # Changed by another process after the read above; decide again
                        logger.info("intent_transition_raced", intent_id=intent_id, read_status=current.value)
                        continue
                    # Same transaction: the cart is cleared exactly when the intent settles
                    if target == PaymentStatus.SUCCEEDED:
                        lines_cleared = self.cart_service.clear_in_transaction(db, cart_id)
                break
            else:
                raise ConflictingCallback(
                    f"Intent {intent_id} kept changing; refusing {target.value}",
                    intent_id=intent_id,
                )

        if target == PaymentStatus.SUCCEEDED:
            logger.info("cart_cleared", cart_id=cart_id, lines_removed=lines_cleared)
        logger.info(
            "intent_succeeded" if target == PaymentStatus.SUCCEEDED else "intent_failed",
            intent_id=intent_id,
            cart_id=cart_id,
            provider=adapter.provider.value,
            previous_status=current.value,
        )
        return ReconcileResult(intent_id, target, changed=True)

    # ------------------------------------------------------
    # MAINTENANCE
    # ------------------------------------------------------

    def expire_stale_pending(self, now: Optional[datetime] = None) -> List[str]:
        """Transition every PENDING intent older than the timeout to EXPIRED."""
        now = now or self._clock()
        cutoff = now - self.intent_timeout

        with session_scope(self._session_factory) as db:
            candidates = self.intents.stale_pending_ids(db, cutoff)

        expired: List[str] = []
        for intent_id in candidates:
            with self._intent_locks.hold(intent_id), session_scope(self._session_factory) as db:
                # Conditional on PENDING; a callback here or in another process may have settled it
                if self.intents.transition(db, intent_id, PaymentStatus.PENDING, PaymentStatus.EXPIRED, now):
                    expired.append(intent_id)

        if expired:
            logger.info("stale_intents_expired", count=len(expired), intent_ids=expired)
        return expired

    def capture_paypal_return(self, order_id: str) -> Dict[str, Any]:
        """
        Capture the PayPal order the buyer just approved. The intent itself is
        still settled by the capture webhook.
        """
        with session_scope(self._session_factory) as db:
            row = self.intents.get_by_provider_ref(db, order_id)
            if row is None or row.provider != PSPProvider.PAYPAL.value:
                raise NotFound(f"No PayPal payment for order {order_id}", provider_ref=order_id)
            intent_id, status = row.id, row.status

        if status != PaymentStatus.PENDING.value:
            return {"intent_id": intent_id, "order_id": order_id, "status": status, "captured": False}

        adapter = self.dispatcher.get_adapter(PSPProvider.PAYPAL)
        capture = adapter.capture(order_id)
        logger.info("paypal_order_captured", intent_id=intent_id, order_id=order_id, capture_status=capture["status"])
        return {
            "intent_id": intent_id,
            "order_id": capture["order_id"],
            "status": status,
            "capture_status": capture["status"],
            "captured": True,
        }

    def get_intent(self, intent_id: str) -> PaymentIntentView:
        with session_scope(self._session_factory) as db:
            row = self.intents.get(db, intent_id)
            if row is None:
                raise NotFound(f"Payment intent {intent_id} not found", intent_id=intent_id)
            return to_view(row)

    # ------------------------------------------------------
    # HELPERS
    # ------------------------------------------------------

    def _reserve(self, cart_id: str, intent_id: str, now: datetime) -> None:
        revivable_since = now - self.expired_grace if self.expired_grace else None
        try:
            with session_scope(self._session_factory) as db:
                # Claimed before the check, so no other checkout records an intent in between
                self.intents.reserve_checkout(db, cart_id, intent_id, now, stale_before=now - self.intent_timeout)
                blocking = self.intents.open_for_cart(db, cart_id, revivable_since)
                if blocking is not None:
                    raise IntentAlreadyPending(
                        f"Payment intent {blocking.id} is still {blocking.status} for cart {cart_id}",
                        cart_id=cart_id,
                        intent_id=blocking.id,
                    )
        except IntegrityError:
            raise IntentAlreadyPending(f"A checkout is already in progress for cart {cart_id}", cart_id=cart_id)

    def _release(self, cart_id: str, intent_id: str) -> None:
        with session_scope(self._session_factory) as db:
            self.intents.release_checkout(db, cart_id, intent_id)

    def _within_grace(self, row: PaymentIntent, now: datetime) -> bool:
        if not self.expired_grace or row.expired_at is None:
            return False
        return now - row.expired_at <= self.expired_grace

    @staticmethod
    def _check_amount(row: PaymentIntent, parsed: CallbackResult) -> None:
        if parsed.amount is not None and parsed.amount != row.amount:
            raise InvalidCallback(
                f"Callback amount {parsed.amount} does not match intent amount {row.amount}",
                intent_id=row.id,
            )
        if parsed.currency and parsed.currency.upper() != row.currency.upper():
            raise InvalidCallback(
                f"Callback currency {parsed.currency} does not match intent currency {row.currency}",
                intent_id=row.id,
            )

