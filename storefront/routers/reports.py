"""
Reporting API: settled payments over a time window.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query

from storefront.deps import get_reporting
from storefront.domain import utcnow
from storefront.errors import InvalidArgument
from storefront.schemas import ReportOut, SettledPaymentOut
from storefront.services.reporting import ReportingView

router = APIRouter(tags=["Reports"])


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    """ISO 8601 to naive UTC; offset-less values are taken as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise InvalidArgument(f"Invalid datetime: {value}")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


@router.get("/reports", response_model=ReportOut)
def settled_payments(
    from_: Optional[str] = Query(None, alias="from"),
    to_: Optional[str] = Query(None, alias="to"),
    provider: Optional[str] = Query(None),
    reporting: ReportingView = Depends(get_reporting),
):
    end = _parse_dt(to_) or utcnow()
    start = _parse_dt(from_) or end - timedelta(days=1)
    payments = reporting.list_settled_payments(start, end, provider)
    return ReportOut(
        payments=[SettledPaymentOut.from_payment(p) for p in payments],
        count=len(payments),
        from_=start.isoformat(),
        to=end.isoformat(),
    )
