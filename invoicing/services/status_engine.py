"""
Machine à états des factures.

Règles, dans l'ordre de priorité :

1. ``cancelled`` ne change jamais automatiquement.
2. payé >= total            -> ``paid``
3. 0 < payé < total         -> ``partial-paid``
4. ``pending`` et échéance strictement antérieure à la date du jour -> ``overdue``
5. sinon : ``overdue`` reste ``overdue``, tout le reste redevient ``pending``.

Le passage en retard n'est jamais spontané : il n'est appliqué que lors d'une
évaluation explicite (balayage au chargement de la liste).
"""
from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Union

from invoicing.models.common import ZERO, as_date
from invoicing.models.invoice import Invoice, InvoiceStatus

Moment = Union[date, datetime]


def is_past_due(due_date: Optional[date], now: Moment) -> bool:
    # comparaison à la journée, l'heure est ignorée
    if due_date is None:
        return False
    return as_date(due_date) < as_date(now)


def derive_status(
    current: InvoiceStatus,
    paid_amount: Decimal,
    total_cost: Decimal,
    due_date: Optional[date] = None,
    now: Optional[Moment] = None,
) -> InvoiceStatus:
    if current == "cancelled":
        return "cancelled"
    if paid_amount >= total_cost:
        return "paid"
    if ZERO < paid_amount < total_cost:
        return "partial-paid"
    if current == "pending" and now is not None and is_past_due(due_date, now):
        return "overdue"
    if current == "overdue":
        return "overdue"
    return "pending"


def evaluate(invoice: Invoice, now: Optional[Moment] = None) -> InvoiceStatus:
    return derive_status(
        invoice.status, invoice.paid_amount, invoice.total_cost, invoice.due_date, now
    )


def is_sweep_eligible(invoice: Invoice, now: Moment) -> bool:
    """Seules les factures ``pending`` échues passent en retard au balayage."""
    return invoice.status == "pending" and is_past_due(invoice.due_date, now)


def paid_shortfall(invoice: Invoice) -> Decimal:
    """Écart exposé d'une facture marquée ``paid`` sans être soldée (0 sinon)."""
    if invoice.status == "paid" and invoice.paid_amount < invoice.total_cost:
        return invoice.total_cost - invoice.paid_amount
    return ZERO
