from __future__ import annotations
from typing import Dict, Iterable, List

from invoicing.models.common import format_money, round2
from invoicing.models.invoice import INVOICE_STATUSES, Invoice
from invoicing.models.report import InvoiceReport, ReportLine
from invoicing.services.invoice_aggregate import calculate_open_balance


def build_report(invoice: Invoice) -> InvoiceReport:
    return InvoiceReport(
        invoice_number=invoice.invoice_number,
        client_reference=invoice.client_reference,
        invoice_date=invoice.invoice_date,
        due_date=invoice.due_date,
        work_items=[
            ReportLine(
                name=wi.name,
                description=wi.description,
                quantity=wi.quantity,
                unit=wi.unit,
                unit_price=wi.unit_price,
                line_total=round2(wi.line_total),
            )
            for wi in invoice.work_items
        ],
        line_items_total=invoice.line_items_total,
        general_conditions_percentage=invoice.general_conditions_percentage,
        general_conditions=invoice.general_conditions,
        supervision_fee=invoice.supervision_fee,
        total_cost=invoice.total_cost,
        paid_amount=invoice.paid_amount,
        open_balance=calculate_open_balance(invoice),
        status=invoice.status,
        has_discrepancy=invoice.has_discrepancy,
        payments=list(invoice.payments),
    )


def categorize_by_status(invoices: Iterable[Invoice]) -> Dict[str, List[Invoice]]:
    """Colonnes du tableau : une liste par statut, ordre d'entrée conservé."""
    board: Dict[str, List[Invoice]] = {s: [] for s in INVOICE_STATUSES}
    for inv in invoices:
        board[inv.status].append(inv)
    return board


def search_invoices(invoices: Iterable[Invoice], query: str) -> List[Invoice]:
    """Recherche insensible à la casse : numéro, client, date, total ou solde formatés."""
    q = (query or "").strip().casefold()
    out = list(invoices)
    if not q:
        return out

    def _matches(inv: Invoice) -> bool:
        haystack = (
            inv.invoice_number,
            inv.client_reference,
            inv.invoice_date.isoformat(),
            format_money(inv.total_cost),
            format_money(calculate_open_balance(inv)),
        )
        return any(q in field.casefold() for field in haystack)

    return [inv for inv in out if _matches(inv)]
