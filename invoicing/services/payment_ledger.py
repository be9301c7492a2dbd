"""
Registre des paiements d'une facture.

Le montant payé est toujours recalculé depuis les évènements
(paiements moins annulations) augmenté de l'éventuel ajustement manuel ;
il n'est jamais positionné directement par le flux de paiement.
La voie "correction manuelle" est isolée dans ``manual_override``.
"""
from __future__ import annotations
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Optional, Tuple

from invoicing.errors import (
    InvalidAmount,
    InvalidPartialAmount,
    InvoiceCancelled,
    InvoicingError,
    OverpaymentRejected,
    PaymentAlreadyVoided,
    PaymentNotFound,
)
from invoicing.logging_config import get_logger
from invoicing.models.common import MAX_AMOUNT, ZERO, round2, to_decimal
from invoicing.models.invoice import Invoice, InvoiceStatus
from invoicing.models.payment import Payment, PaymentRequest

logger = get_logger("services.payment_ledger")


@dataclass(frozen=True)
class LedgerResult:
    payments: Tuple[Payment, ...] = ()
    manual_adjustment: Decimal = ZERO
    paid_amount: Decimal = ZERO
    remaining: Decimal = ZERO
    payment: Optional[Payment] = None
    error: Optional[InvoicingError] = None

    @classmethod
    def failure(cls, error: InvoicingError) -> "LedgerResult":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None


def _reject(invoice: Invoice, error: InvoicingError) -> LedgerResult:
    logger.warning(
        "ledger_rejected",
        extra={"invoice_id": invoice.id, "code": error.code, "reason": str(error)},
    )
    return LedgerResult.failure(error)


def _state(
    invoice: Invoice,
    payments: Tuple[Payment, ...],
    manual_adjustment: Decimal,
    payment: Optional[Payment] = None,
) -> LedgerResult:
    paid = sum((p.signed_amount for p in payments), ZERO) + manual_adjustment
    return LedgerResult(
        payments=payments,
        manual_adjustment=manual_adjustment,
        paid_amount=paid,
        remaining=invoice.total_cost - paid,
        payment=payment,
    )


def parse_amount(raw: Any) -> Optional[Decimal]:
    """Montant strictement positif, au centime près, plafonné à MAX_AMOUNT ; None sinon."""
    amount = to_decimal(raw)
    if amount is None or amount <= ZERO or amount > MAX_AMOUNT or amount != round2(amount):
        return None
    return amount


def apply_payment(invoice: Invoice, request: PaymentRequest, *, today: date) -> LedgerResult:
    if invoice.status == "cancelled":
        return _reject(invoice, InvoiceCancelled(invoice.id))

    amount = parse_amount(request.amount)
    if amount is None:
        return _reject(invoice, InvalidAmount(request.amount))

    remaining = invoice.total_cost - invoice.paid_amount
    if amount > remaining:
        return _reject(invoice, OverpaymentRejected(amount, max(remaining, ZERO)))

    payment = Payment(
        amount=amount,
        payment_date=request.payment_date or today,
        method=request.method,
        check_number=request.check_number,
        reference_number=request.reference_number,
        paid_by=request.paid_by,
        paid_by_name=request.paid_by_name,
        notes=request.notes,
        documents=list(request.documents),
    )
    state = _state(invoice, (*invoice.payments, payment), invoice.manual_adjustment, payment)
    logger.info(
        "payment_applied",
        extra={
            "invoice_id": invoice.id,
            "payment_id": payment.id,
            "amount": amount,
            "paid_amount": state.paid_amount,
            "remaining": state.remaining,
        },
    )
    return state


def void_payment(
    invoice: Invoice,
    payment_id: str,
    *,
    today: date,
    reason: Optional[str] = None,
    voided_by: Optional[str] = None,
) -> LedgerResult:
    """Évènement compensatoire : le paiement d'origine reste dans le registre."""
    original = invoice.find_payment(payment_id)
    if original is None:
        return _reject(invoice, PaymentNotFound(payment_id))
    if invoice.is_voided(payment_id):
        return _reject(invoice, PaymentAlreadyVoided(payment_id))

    void = Payment(
        kind="void",
        amount=original.amount,
        payment_date=today,
        method=original.method,
        paid_by=voided_by,
        notes=reason,
        voids_payment_id=original.id,
    )
    state = _state(invoice, (*invoice.payments, void), invoice.manual_adjustment, void)
    if state.paid_amount < ZERO:
        return _reject(invoice, InvalidAmount(-original.amount))

    logger.info(
        "payment_voided",
        extra={"invoice_id": invoice.id, "payment_id": payment_id, "paid_amount": state.paid_amount},
    )
    return state


def manual_override(
    invoice: Invoice,
    status: InvoiceStatus,
    explicit_paid_amount: Any = None,
) -> LedgerResult:
    """
    Correction administrative du montant payé, sans évènement de paiement.

    - ``partial-paid`` : 0 < montant < total, sinon InvalidPartialAmount
    - ``paid``         : montant = total par défaut ; un montant inférieur
      est accepté (état incohérent reconnu, exposé par has_discrepancy)
    - autres statuts   : montant payé inchangé
    L'écart avec le registre est porté par ``manual_adjustment``.
    """
    payments = tuple(invoice.payments)
    ledger = invoice.ledger_total

    if status == "partial-paid":
        amount = to_decimal(explicit_paid_amount)
        if amount is None or not (ZERO < amount < invoice.total_cost):
            return _reject(invoice, InvalidPartialAmount(amount, invoice.total_cost))
        return _state(invoice, payments, amount - ledger)

    if status == "paid":
        if explicit_paid_amount is None:
            amount = invoice.total_cost
        else:
            amount = to_decimal(explicit_paid_amount)
            if amount is None or amount < ZERO:
                return _reject(invoice, InvalidAmount(explicit_paid_amount))
            if amount > invoice.total_cost:
                return _reject(invoice, OverpaymentRejected(amount, invoice.total_cost))
        return _state(invoice, payments, amount - ledger)

    return _state(invoice, payments, invoice.manual_adjustment)


def _replace_payment(invoice: Invoice, updated: Payment) -> LedgerResult:
    payments = tuple(updated if p.id == updated.id else p for p in invoice.payments)
    return _state(invoice, payments, invoice.manual_adjustment, updated)


def attach_document(invoice: Invoice, payment_id: str, document_ref: str) -> LedgerResult:
    """Ajoute une référence de pièce jointe ; montants et statut inchangés."""
    payment = invoice.find_payment(payment_id)
    if payment is None:
        return _reject(invoice, PaymentNotFound(payment_id))
    if document_ref in payment.documents:
        return _state(invoice, tuple(invoice.payments), invoice.manual_adjustment, payment)
    updated = payment.model_copy(update={"documents": [*payment.documents, document_ref]})
    return _replace_payment(invoice, updated)


def detach_document(invoice: Invoice, payment_id: str, document_ref: str) -> LedgerResult:
    payment = invoice.find_payment(payment_id)
    if payment is None:
        return _reject(invoice, PaymentNotFound(payment_id))
    updated = payment.model_copy(
        update={"documents": [d for d in payment.documents if d != document_ref]}
    )
    return _replace_payment(invoice, updated)
