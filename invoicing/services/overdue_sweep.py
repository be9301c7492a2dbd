from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Iterable, List, Union

from invoicing.logging_config import get_logger
from invoicing.models.invoice import Invoice
from invoicing.services import status_engine
from invoicing.services.invoice_aggregate import mark_overdue

logger = get_logger("services.overdue_sweep")


@dataclass(frozen=True)
class SweepResult:
    updated_invoices: List[Invoice] = field(default_factory=list)
    transitioned_ids: List[str] = field(default_factory=list)


def sweep(invoices: Iterable[Invoice], now: Union[date, datetime]) -> SweepResult:
    """
    Passe les factures ``pending`` échues (échéance < aujourd'hui) en ``overdue``.
    Idempotent : un second passage avec le même ``now`` ne change rien.
    """
    if not isinstance(now, datetime):
        now = datetime.combine(now, time.min, tzinfo=timezone.utc)

    updated: List[Invoice] = []
    transitioned: List[str] = []
    for inv in invoices:
        if status_engine.is_sweep_eligible(inv, now):
            inv = mark_overdue(inv, now=now)
            transitioned.append(inv.id)
        updated.append(inv)

    if transitioned:
        logger.info(
            "overdue_sweep_completed",
            extra={"transitioned": len(transitioned), "invoice_ids": transitioned},
        )
    return SweepResult(updated_invoices=updated, transitioned_ids=transitioned)
