"""
Data access for payment intents and cart snapshots.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from storefront.domain import Cart, CartLine, PaymentIntentView, PaymentStatus
from storefront.models import CartSnapshot, CheckoutReservation, PaymentIntent


def to_view(row: PaymentIntent) -> PaymentIntentView:
    lines = [CartLine.from_dict(d) for d in (row.snapshot.lines if row.snapshot else [])]
    return PaymentIntentView(
        intent_id=row.id,
        cart_id=row.cart_id,
        provider=row.provider,
        amount=row.amount,
        currency=row.currency,
        status=PaymentStatus(row.status),
        provider_ref=row.provider_ref,
        cart_snapshot_id=row.cart_snapshot_id,
        created_at=row.created_at,
        settled_at=row.settled_at,
        expired_at=row.expired_at,
        failure_reason=row.failure_reason,
        snapshot_lines=lines,
    )


class PaymentIntentStore:

    def create_snapshot(self, db: Session, cart: Cart, currency: str, created_at: datetime) -> CartSnapshot:
        snapshot = CartSnapshot(
            id=str(uuid4()),
            cart_id=cart.cart_id,
            lines=[line.to_dict() for line in cart.lines],
            total=cart.total,
            currency=currency,
            created_at=created_at,
        )
        db.add(snapshot)
        db.flush()
        return snapshot

    def create(
        self,
        db: Session,
        *,
        intent_id: str,
        cart_id: str,
        provider: str,
        amount: Decimal,
        currency: str,
        provider_ref: str,
        cart_snapshot_id: str,
        created_at: datetime,
    ) -> PaymentIntent:
        row = PaymentIntent(
            id=intent_id,
            cart_id=cart_id,
            provider=provider,
            amount=amount,
            currency=currency,
            status=PaymentStatus.PENDING.value,
            provider_ref=provider_ref,
            cart_snapshot_id=cart_snapshot_id,
            created_at=created_at,
            updated_at=created_at,
        )
        db.add(row)
        db.flush()
        return row

    def get(self, db: Session, intent_id: str) -> Optional[PaymentIntent]:
        return db.query(PaymentIntent).filter(PaymentIntent.id == intent_id).first()

    def get_by_provider_ref(self, db: Session, provider_ref: str) -> Optional[PaymentIntent]:
        return db.query(PaymentIntent).filter(PaymentIntent.provider_ref == provider_ref).first()

    def open_for_cart(
        self,
        db: Session,
        cart_id: str,
        revivable_since: Optional[datetime] = None,
    ) -> Optional[PaymentIntent]:
        """
        The cart's PENDING intent, or an EXPIRED one a late callback could
        still settle (expired at or after `revivable_since`).
        """
        is_open = PaymentIntent.status == PaymentStatus.PENDING.value
        if revivable_since is not None:
            is_open = or_(
                is_open,
                and_(
                    PaymentIntent.status == PaymentStatus.EXPIRED.value,
                    PaymentIntent.expired_at >= revivable_since,
                ),
            )
        return (
            db.query(PaymentIntent)
            .filter(PaymentIntent.cart_id == cart_id, is_open)
            .order_by(PaymentIntent.created_at.desc())
            .first()
        )

    # ------------------------------------------------------
    # CHECKOUT RESERVATIONS
    # ------------------------------------------------------

    def reserve_checkout(
        self,
        db: Session,
        cart_id: str,
        intent_id: str,
        now: datetime,
        stale_before: datetime,
    ) -> None:
        """
        Claim the cart for one provider call. Raises IntegrityError on flush
        while another live reservation holds it; reservations older than
        `stale_before` were abandoned and are replaced.
        """
        (
            db.query(CheckoutReservation)
            .filter(CheckoutReservation.cart_id == cart_id, CheckoutReservation.reserved_at < stale_before)
            .delete(synchronize_session=False)
        )
        db.add(CheckoutReservation(cart_id=cart_id, intent_id=intent_id, reserved_at=now))
        db.flush()

    def release_checkout(self, db: Session, cart_id: str, intent_id: str) -> int:
        return (
            db.query(CheckoutReservation)
            .filter(CheckoutReservation.cart_id == cart_id, CheckoutReservation.intent_id == intent_id)
            .delete(synchronize_session=False)
        )

    def stale_pending_ids(self, db: Session, cutoff: datetime) -> List[str]:
        rows = (
            db.query(PaymentIntent.id)
            .filter(
                PaymentIntent.status == PaymentStatus.PENDING.value,
                PaymentIntent.created_at < cutoff,
            )
            .order_by(PaymentIntent.created_at.asc())
            .all()
        )
        return [r[0] for r in rows]

    def settled_between(
        self,
        db: Session,
        start: datetime,
        end: datetime,
        provider: Optional[str] = None,
    ) -> List[PaymentIntent]:
        q = db.query(PaymentIntent).filter(
            PaymentIntent.status == PaymentStatus.SUCCEEDED.value,
            PaymentIntent.settled_at >= start,
            PaymentIntent.settled_at <= end,
        )
        if provider:
            q = q.filter(PaymentIntent.provider == provider)
        return q.order_by(PaymentIntent.settled_at.asc()).all()

    def transition(
        self,
        db: Session,
        intent_id: str,
        expected: PaymentStatus,
        status: PaymentStatus,
        now: datetime,
        reason: Optional[str] = None,
    ) -> bool:
        """
        Move the intent from `expected` to `status` in a single conditional
        UPDATE. Returns False, changing nothing, when the stored status is no
        longer `expected`.
        """
        values = {"status": status.value, "updated_at": now}
        if status == PaymentStatus.SUCCEEDED:
            values["settled_at"] = now
            values["failure_reason"] = None
        elif status == PaymentStatus.FAILED:
            values["failure_reason"] = (reason or "payment_failed")[:255]
        elif status == PaymentStatus.EXPIRED:
            values["expired_at"] = now

        updated = (
            db.query(PaymentIntent)
            .filter(PaymentIntent.id == intent_id, PaymentIntent.status == expected.value)
            .update(values, synchronize_session=False)
        )
        return updated == 1
