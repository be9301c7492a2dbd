"""
Erreurs typées du moteur de facturation.

Chaque erreur porte un ``code`` lisible par machine et ses données
structurées. Les composants ne les lèvent pas : ils les renvoient dans un
``InvoiceResult`` / ``LedgerResult``. ``unwrap()`` les lève pour l'appelant
qui préfère les exceptions.
"""
from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from invoicing.models.common import format_money

if TYPE_CHECKING:
    from invoicing.models.invoice import Invoice


class InvoicingError(Exception):
    code: str = "INVOICING_ERROR"


class MissingRequiredField(InvoicingError):
    code = "MISSING_REQUIRED_FIELD"

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Missing required field: {field}")


class InvalidAmount(InvoicingError):
    code = "INVALID_AMOUNT"

    def __init__(self, raw: object):
        self.raw = raw
        super().__init__(f"Please enter a valid payment amount (got {raw!r})")


class OverpaymentRejected(InvoicingError):
    code = "OVERPAYMENT_REJECTED"

    def __init__(self, amount: Decimal, remaining: Decimal):
        self.amount = amount
        self.remaining = remaining
        super().__init__(
            f"Payment amount cannot exceed remaining balance of {format_money(remaining)}"
        )


class InvalidPartialAmount(InvoicingError):
    code = "INVALID_PARTIAL_AMOUNT"

    def __init__(self, amount: Optional[Decimal], total_cost: Decimal):
        self.amount = amount
        self.total_cost = total_cost
        super().__init__(
            f"Partial paid amount must be greater than 0 and less than the total cost of "
            f"{format_money(total_cost)}. Use \"paid\" status instead."
        )


class InvalidStatus(InvoicingError):
    code = "INVALID_STATUS"

    def __init__(self, status: object):
        self.status = status
        super().__init__(
            f"Unknown invoice status {status!r}; expected one of "
            "pending, overdue, partial-paid, paid, cancelled"
        )


class InvoiceNotFound(InvoicingError):
    code = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice {invoice_id} not found")


class InvoiceCancelled(InvoicingError):
    code = "INVOICE_CANCELLED"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice {invoice_id} is cancelled and cannot receive payments")


class PaymentNotFound(InvoicingError):
    code = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment {payment_id} not found on this invoice")


class PaymentAlreadyVoided(InvoicingError):
    code = "PAYMENT_ALREADY_VOIDED"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment {payment_id} has already been voided")


class ConcurrencyConflict(InvoicingError):
    code = "CONCURRENCY_CONFLICT"

    def __init__(self, invoice_id: str, expected_version: int, actual_version: int):
        self.invoice_id = invoice_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Invoice {invoice_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version}); reload and retry"
        )


@dataclass(frozen=True)
class InvoiceResult:
    """Résultat d'une opération de l'agrégat : la facture mise à jour ou l'erreur."""

    invoice: Optional["Invoice"] = None
    error: Optional[InvoicingError] = None

    @classmethod
    def success(cls, invoice: "Invoice") -> "InvoiceResult":
        return cls(invoice=invoice)

    @classmethod
    def failure(cls, error: InvoicingError) -> "InvoiceResult":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> "Invoice":
        if self.error is not None:
            raise self.error
        return self.invoice
