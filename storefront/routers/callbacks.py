"""
Provider callbacks: POST /{provider}/callback
- Every callback is logged raw to webhook_events before it is reconciled
- Duplicate callbacks are idempotent (the intent state machine absorbs them)
- Always answers 200; rejected callbacks are logged, never surfaced. A callback
  that failed on a database error stays in webhook_events as failed for replay
"""
import json
from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from storefront.deps import get_orchestrator, get_webhook_log
from storefront.errors import CallbackError, StorefrontError
from storefront.logging_config import get_logger
from storefront.services import webhook_service
from storefront.services.orchestrator import PaymentOrchestrator
from storefront.services.webhook_service import WebhookLog

logger = get_logger(__name__)

router = APIRouter(tags=["Callbacks"])

ACK = {"ResultCode": 0, "ResultDesc": "Accepted"}


def _decode(body: bytes) -> Any:
    try:
        return json.loads(body) if body else None
    except ValueError:
        return {"raw": body.decode("utf-8", errors="replace")}


def _handle(provider: str, payload: Any, orchestrator: PaymentOrchestrator, webhooks: WebhookLog) -> None:
    event_id = webhooks.log_webhook(provider, payload)
    try:
        result = orchestrator.reconcile(payload, provider)
    except CallbackError as e:
        logger.warning(
            "callback_rejected",
            provider=provider,
            error_code=e.code,
            error=e.message,
            webhook_event_id=event_id,
        )
        webhooks.update_webhook_status(event_id, webhook_service.IGNORED, f"{e.code}: {e.message}")
        return
    except StorefrontError as e:
        logger.error("callback_failed", provider=provider, error_code=e.code, error=e.message)
        webhooks.update_webhook_status(event_id, webhook_service.FAILED, f"{e.code}: {e.message}")
        return
    except SQLAlchemyError as e:
        logger.error("callback_failed", provider=provider, error_code="database_error", error=str(e), exc_info=True)
        webhooks.update_webhook_status(event_id, webhook_service.FAILED, f"database_error: {e}")
        return

    detail = f"{result.status.value}" if result.changed else f"duplicate: {result.status.value}"
    webhooks.update_webhook_status(event_id, webhook_service.PROCESSED, detail)


@router.post("/{provider}/callback")
async def provider_callback(
    provider: str,
    request: Request,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
    webhooks: WebhookLog = Depends(get_webhook_log),
):
    payload = _decode(await request.body())
    # Reconciliation takes blocking locks; keep it off the event loop
    await run_in_threadpool(_handle, provider.lower(), payload, orchestrator, webhooks)
    return ACK
