from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field, computed_field
from typing import List, Literal, Optional, Union
from datetime import date, datetime
from decimal import Decimal

from .common import ZERO, TimeStamped, gen_id, utcnow
from .payment import Payment

InvoiceStatus = Literal["pending", "overdue", "partial-paid", "paid", "cancelled"]
ChangeSource = Literal["created", "ledger", "sweep", "manual"]

INVOICE_STATUSES: tuple[str, ...] = ("pending", "overdue", "partial-paid", "paid", "cancelled")
DEFAULT_GENERAL_CONDITIONS_PCT = Decimal("18.5")
MAX_GENERAL_CONDITIONS_PCT = Decimal("100")


class WorkItem(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    description: Optional[str] = None
    quantity: Decimal = Field(default=Decimal("1"), ge=0)
    unit: str = ""
    unit_price: Decimal = Field(default=ZERO, ge=0)

    @property
    def line_total(self) -> Decimal:
        return self.quantity * self.unit_price


class StatusChange(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    from_status: Optional[InvoiceStatus] = None
    to_status: InvoiceStatus
    source: ChangeSource
    paid_amount: Decimal = ZERO
    at: datetime = Field(default_factory=utcnow)
    note: Optional[str] = None


class Invoice(TimeStamped):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=gen_id)
    invoice_number: str
    client_reference: str
    project_reference: Optional[str] = None

    work_items: List[WorkItem] = Field(default_factory=list)
    general_conditions_percentage: Decimal = DEFAULT_GENERAL_CONDITIONS_PCT
    supervision_fee: Decimal = ZERO

    # snapshot du calculateur au moment de la création
    line_items_total: Decimal = ZERO
    general_conditions: Decimal = ZERO
    total_cost: Decimal = ZERO

    status: InvoiceStatus = "pending"
    payments: List[Payment] = Field(default_factory=list)
    # apport de la voie "correction manuelle", distinct du registre
    manual_adjustment: Decimal = ZERO

    invoice_date: date
    due_date: date
    created_by: Optional[str] = None

    version: int = 1
    status_history: List[StatusChange] = Field(default_factory=list)

    # helpers
    @property
    def ledger_total(self) -> Decimal:
        return sum((p.signed_amount for p in self.payments), ZERO)

    @computed_field  # type: ignore[misc]
    @property
    def paid_amount(self) -> Decimal:
        return self.ledger_total + self.manual_adjustment

    @property
    def remaining(self) -> Decimal:
        return self.total_cost - self.paid_amount

    @property
    def has_discrepancy(self) -> bool:
        if self.manual_adjustment != ZERO:
            return True
        return self.status == "paid" and self.paid_amount < self.total_cost

    def find_payment(self, payment_id: str) -> Optional[Payment]:
        for p in self.payments:
            if p.id == payment_id and p.kind == "payment":
                return p
        return None

    def is_voided(self, payment_id: str) -> bool:
        return any(p.kind == "void" and p.voids_payment_id == payment_id for p in self.payments)


class InvoiceDraft(BaseModel):
    """Saisie de création : les champs obligatoires sont contrôlés par l'agrégat (MissingRequiredField)."""
    work_items: List[WorkItem] = Field(default_factory=list)
    supervision_fee: Union[Decimal, str, None] = None
    general_conditions_percentage: Union[Decimal, str, None] = None
    due_date: Optional[date] = None
    client_reference: Optional[str] = None
    project_reference: Optional[str] = None
    invoice_date: Optional[date] = None
    created_by: Optional[str] = None
