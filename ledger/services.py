from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal

from django.db import transaction

from ledger.models import LedgerEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerEvent:
    direction: str
    category: str
    amount: Decimal
    method: str
    description: str = ""
    related_entity_type: str | None = None
    related_entity_id: uuid.UUID | None = None
    performed_by_id: uuid.UUID | None = None
    branch_id: uuid.UUID | None = None


class LedgerSink:
    def record(self, event: LedgerEvent) -> None:
        transaction.on_commit(lambda: self.write(event))

    def write(self, event: LedgerEvent) -> LedgerEntry | None:
        try:
            return LedgerEntry.objects.create(
                branch_id=event.branch_id,
                direction=event.direction,
                category=event.category,
                amount=event.amount,
                method=event.method,
                description=event.description[:255],
                related_entity_type=event.related_entity_type,
                related_entity_id=event.related_entity_id,
                performed_by_id=event.performed_by_id,
            )
        except Exception:
            logger.exception(
                "ledger_entry_dropped",
                extra={
                    "ledger_category": event.category,
                    "amount": event.amount,
                    "order_id": event.related_entity_id,
                },
            )
            return None


ledger_sink = LedgerSink()


def _actor_id(user):
    if user is None or not getattr(user, "is_authenticated", False):
        return None
    return user.pk


def record_credit(
    *,
    category,
    amount,
    method,
    description,
    related_entity_type,
    related_entity_id,
    performed_by=None,
    branch_id=None,
):
    ledger_sink.record(
        LedgerEvent(
            direction=LedgerEntry.Direction.CREDIT,
            category=category,
            amount=amount,
            method=method,
            description=description,
            related_entity_type=related_entity_type,
            related_entity_id=related_entity_id,
            performed_by_id=_actor_id(performed_by),
            branch_id=branch_id,
        )
    )
