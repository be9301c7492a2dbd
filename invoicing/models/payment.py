from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Literal, Optional, Union
from datetime import date, datetime
from decimal import Decimal

from .common import gen_id, utcnow

PaymentMethod = Literal["check", "wire", "ach", "credit_card", "cash", "other"]
PaymentKind = Literal["payment", "void"]


class Payment(BaseModel):
    """Evènement du registre : jamais modifié une fois enregistré (sauf pièces jointes)."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(default_factory=gen_id)
    kind: PaymentKind = "payment"
    amount: Decimal = Field(gt=0)
    payment_date: date
    method: PaymentMethod = "other"
    check_number: Optional[str] = None
    reference_number: Optional[str] = None
    paid_by: Optional[str] = None
    paid_by_name: Optional[str] = None
    notes: Optional[str] = None
    documents: List[str] = Field(default_factory=list)  # références opaques (stockage externe)
    voids_payment_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def signed_amount(self) -> Decimal:
        return -self.amount if self.kind == "void" else self.amount


class PaymentRequest(BaseModel):
    # montant brut : la validation (InvalidAmount) est faite par le registre
    amount: Union[Decimal, str]
    payment_date: Optional[date] = None
    method: PaymentMethod = "other"
    check_number: Optional[str] = None
    reference_number: Optional[str] = None
    paid_by: Optional[str] = None
    paid_by_name: Optional[str] = None
    notes: Optional[str] = None
    documents: List[str] = Field(default_factory=list)
