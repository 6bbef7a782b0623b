"""
Raw inbound callback log. Every provider callback is recorded before it is
reconciled so a rejected or unknown notification can still be inspected.
"""
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError

from storefront.db import SessionFactory, session_scope
from storefront.domain import utcnow
from storefront.logging_config import get_logger
from storefront.models import WebhookEvent

logger = get_logger(__name__)

RECEIVED = "received"
PROCESSED = "processed"
IGNORED = "ignored"
FAILED = "failed"


class WebhookLog:
    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    def log_webhook(self, provider: str, payload: Any) -> Optional[int]:
        """
        Log a raw webhook event to the database.
        Returns the event id, or None if it could not be stored.
        """
        try:
            with session_scope(self._session_factory) as db:
                event = WebhookEvent(
                    provider=provider[:16],
                    payload=payload,
                    status=RECEIVED,
                    received_at=utcnow(),
                )
                db.add(event)
                db.flush()
                return event.id
        except SQLAlchemyError as e:
            logger.error("webhook_log_failed", provider=provider, error=str(e))
            return None

    def update_webhook_status(self, event_id: Optional[int], status: str, detail: Optional[str] = None) -> None:
        if event_id is None:
            return
        try:
            with session_scope(self._session_factory) as db:
                event = db.query(WebhookEvent).filter(WebhookEvent.id == event_id).first()
                if event:
                    event.status = status
                    event.processed_at = utcnow()
                    if detail:
                        event.detail = detail
        except SQLAlchemyError as e:
            logger.error("webhook_status_update_failed", event_id=event_id, status=status, error=str(e))
