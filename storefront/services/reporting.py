"""
Reporting: read-only queries over settled payment intents.
"""
from datetime import datetime
from typing import Any, List, Optional

from storefront.db import SessionFactory, session_scope
from storefront.domain import SettledPayment
from storefront.errors import InvalidArgument
from storefront.psp.dispatcher import parse_provider
from storefront.services.intent_store import PaymentIntentStore


class ReportingView:
    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory
        self.intents = PaymentIntentStore()

    def list_settled_payments(
        self,
        start: datetime,
        end: datetime,
        provider: Any = None,
    ) -> List[SettledPayment]:
        """
        Succeeded intents whose settled_at falls in [start, end], oldest first.
        Takes no cart or intent locks; reads committed state only.
        """
        if start > end:
            raise InvalidArgument("Report start must not be after end")
        provider_tag: Optional[str] = parse_provider(provider).value if provider else None

        with session_scope(self._session_factory) as db:
            rows = self.intents.settled_between(db, start, end, provider_tag)
            return [
                SettledPayment(
                    intent_id=row.id,
                    amount=row.amount,
                    currency=row.currency,
                    provider=row.provider,
                    settled_at=row.settled_at,
                )
                for row in rows
            ]
