from fastapi import APIRouter, Depends

from storefront.deps import get_orchestrator
from storefront.services.orchestrator import PaymentOrchestrator

router = APIRouter(tags=["Maintenance"])


@router.post("/maintenance/expire-pending")
def expire_pending(orchestrator: PaymentOrchestrator = Depends(get_orchestrator)):
    """
    Expire PENDING intents older than the intent timeout.
    Same sweep the background worker runs; exposed for cron and operators.
    """
    expired = orchestrator.expire_stale_pending()
    return {"expired": expired, "count": len(expired)}
