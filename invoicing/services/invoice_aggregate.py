"""
Agrégat facture : seule frontière de mutation.

Chaque opération renvoie un ``InvoiceResult`` portant une *nouvelle* facture
(version incrémentée) ; en cas de rejet la facture d'entrée est intacte.
"""
from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, List, Optional

from invoicing.errors import InvalidAmount, InvalidStatus, InvoiceResult, MissingRequiredField
from invoicing.logging_config import get_logger
from invoicing.models.common import MAX_AMOUNT, ZERO, to_decimal, utcnow
from invoicing.models.invoice import (
    INVOICE_STATUSES,
    MAX_GENERAL_CONDITIONS_PCT,
    ChangeSource,
    Invoice,
    InvoiceStatus,
    StatusChange,
    WorkItem,
)
from invoicing.models.payment import PaymentRequest
from invoicing.services import payment_ledger, status_engine
from invoicing.services.cost_calculator import calculate_costs
from invoicing.services.payment_ledger import LedgerResult

logger = get_logger("services.invoice_aggregate")


def _now(now: Optional[datetime]) -> datetime:
    return now or utcnow()


def _history(
    invoice: Invoice,
    to_status: InvoiceStatus,
    source: ChangeSource,
    paid_amount: Decimal,
    at: datetime,
    note: Optional[str] = None,
) -> List[StatusChange]:
    change = StatusChange(
        from_status=invoice.status,
        to_status=to_status,
        source=source,
        paid_amount=paid_amount,
        at=at,
        note=note,
    )
    return [*invoice.status_history, change]


def create(
    work_items: Iterable[WorkItem],
    supervision_fee: Any,
    percentage: Any,
    due_date: Optional[date],
    client_reference: Optional[str],
    *,
    invoice_number: str,
    invoice_date: Optional[date] = None,
    created_by: Optional[str] = None,
    project_reference: Optional[str] = None,
    now: Optional[datetime] = None,
) -> InvoiceResult:
    items = list(work_items)
    if not items:
        return InvoiceResult.failure(MissingRequiredField("work_items"))
    if not (client_reference or "").strip():
        return InvoiceResult.failure(MissingRequiredField("client_reference"))
    if due_date is None:
        return InvoiceResult.failure(MissingRequiredField("due_date"))

    fee = ZERO if supervision_fee in (None, "") else to_decimal(supervision_fee)
    if fee is None or fee < ZERO or fee > MAX_AMOUNT:
        return InvoiceResult.failure(InvalidAmount(supervision_fee))
    # vide ou illisible : défaut 18.5 ; lisible mais hors [0, 100] : rejet
    pct = to_decimal(percentage)
    if pct is not None and not (ZERO <= pct <= MAX_GENERAL_CONDITIONS_PCT):
        return InvoiceResult.failure(InvalidAmount(percentage))

    at = _now(now)
    costs = calculate_costs(items, fee, percentage)
    invoice = Invoice(
        invoice_number=invoice_number,
        client_reference=client_reference.strip(),
        project_reference=project_reference,
        work_items=items,
        general_conditions_percentage=costs.percentage,
        supervision_fee=costs.supervision_fee,
        line_items_total=costs.line_items_total,
        general_conditions=costs.general_conditions,
        total_cost=costs.total_cost,
        status="pending",
        invoice_date=invoice_date or at.date(),
        due_date=due_date,
        created_by=created_by,
        created_at=at,
        updated_at=at,
        status_history=[StatusChange(to_status="pending", source="created", at=at)],
    )
    logger.info(
        "invoice_created",
        extra={
            "invoice_id": invoice.id,
            "invoice_number": invoice.invoice_number,
            "total_cost": invoice.total_cost,
        },
    )
    return InvoiceResult.success(invoice)


def _apply_ledger(
    invoice: Invoice,
    state: LedgerResult,
    at: datetime,
    status: InvoiceStatus,
    source: ChangeSource,
    note: Optional[str] = None,
    force_history: bool = False,
) -> Invoice:
    update = {
        "payments": list(state.payments),
        "manual_adjustment": state.manual_adjustment,
        "status": status,
        "version": invoice.version + 1,
        "updated_at": at,
    }
    if force_history or status != invoice.status:
        update["status_history"] = _history(invoice, status, source, state.paid_amount, at, note)
    return invoice.model_copy(update=update)


def _derived(invoice: Invoice, state: LedgerResult, at: datetime) -> InvoiceStatus:
    return status_engine.derive_status(
        invoice.status, state.paid_amount, invoice.total_cost, invoice.due_date, at
    )


def record_payment(
    invoice: Invoice, request: PaymentRequest, *, now: Optional[datetime] = None
) -> InvoiceResult:
    at = _now(now)
    state = payment_ledger.apply_payment(invoice, request, today=at.date())
    if not state.ok:
        return InvoiceResult.failure(state.error)
    updated = _apply_ledger(invoice, state, at, _derived(invoice, state, at), "ledger")
    return InvoiceResult.success(updated)


def void_payment(
    invoice: Invoice,
    payment_id: str,
    *,
    reason: Optional[str] = None,
    voided_by: Optional[str] = None,
    now: Optional[datetime] = None,
) -> InvoiceResult:
    at = _now(now)
    state = payment_ledger.void_payment(
        invoice, payment_id, today=at.date(), reason=reason, voided_by=voided_by
    )
    if not state.ok:
        return InvoiceResult.failure(state.error)
    updated = _apply_ledger(invoice, state, at, _derived(invoice, state, at), "ledger", reason)
    return InvoiceResult.success(updated)


def set_manual_status(
    invoice: Invoice,
    status: InvoiceStatus,
    explicit_paid_amount: Any = None,
    *,
    note: Optional[str] = None,
    now: Optional[datetime] = None,
) -> InvoiceResult:
    """Correction administrative, toujours tracée avec la source ``manual``."""
    if status not in INVOICE_STATUSES:
        return InvoiceResult.failure(InvalidStatus(status))
    at = _now(now)
    state = payment_ledger.manual_override(invoice, status, explicit_paid_amount)
    if not state.ok:
        return InvoiceResult.failure(state.error)
    updated = _apply_ledger(invoice, state, at, status, "manual", note, force_history=True)
    logger.info(
        "invoice_status_overridden",
        extra={
            "invoice_id": invoice.id,
            "from_status": invoice.status,
            "to_status": status,
            "paid_amount": updated.paid_amount,
            "manual_adjustment": updated.manual_adjustment,
        },
    )
    return InvoiceResult.success(updated)


def mark_overdue(invoice: Invoice, *, now: datetime) -> Invoice:
    """Transition du balayage ; l'appelant a vérifié l'éligibilité."""
    return invoice.model_copy(
        update={
            "status": "overdue",
            "version": invoice.version + 1,
            "updated_at": now,
            "status_history": _history(invoice, "overdue", "sweep", invoice.paid_amount, now),
        }
    )


def attach_payment_document(invoice: Invoice, payment_id: str, document_ref: str) -> InvoiceResult:
    state = payment_ledger.attach_document(invoice, payment_id, document_ref)
    if not state.ok:
        return InvoiceResult.failure(state.error)
    return InvoiceResult.success(
        invoice.model_copy(update={"payments": list(state.payments), "version": invoice.version + 1})
    )


def detach_payment_document(invoice: Invoice, payment_id: str, document_ref: str) -> InvoiceResult:
    state = payment_ledger.detach_document(invoice, payment_id, document_ref)
    if not state.ok:
        return InvoiceResult.failure(state.error)
    return InvoiceResult.success(
        invoice.model_copy(update={"payments": list(state.payments), "version": invoice.version + 1})
    )


def calculate_open_balance(invoice: Invoice) -> Decimal:
    if invoice.status == "cancelled":
        return ZERO
    if invoice.status == "paid" and invoice.paid_amount >= invoice.total_cost:
        return ZERO
    # paid non soldé (état incohérent reconnu), partial-paid, pending, overdue
    return invoice.total_cost - invoice.paid_amount
