from __future__ import annotations
from pydantic import BaseModel, ConfigDict
from typing import List, Optional
from datetime import date
from decimal import Decimal

from .invoice import InvoiceStatus
from .payment import Payment


class ReportLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: Optional[str] = None
    quantity: Decimal
    unit: str = ""
    unit_price: Decimal
    line_total: Decimal


class InvoiceReport(BaseModel):
    """Projection en lecture seule consommée telle quelle par le rendu HTML/PDF."""
    model_config = ConfigDict(frozen=True)

    invoice_number: str
    client_reference: str
    invoice_date: date
    due_date: date
    work_items: List[ReportLine]
    line_items_total: Decimal
    general_conditions_percentage: Decimal
    general_conditions: Decimal
    supervision_fee: Decimal
    total_cost: Decimal
    paid_amount: Decimal
    open_balance: Decimal
    status: InvoiceStatus
    has_discrepancy: bool = False
    payments: List[Payment]
