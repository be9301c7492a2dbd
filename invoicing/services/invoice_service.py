# invoicing/services/invoice_service.py
from __future__ import annotations
import os
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from invoicing.clock import Clock, SystemClock
from invoicing.config import Settings, load_settings
from invoicing.errors import ConcurrencyConflict, InvoiceNotFound, InvoiceResult
from invoicing.logging_config import LogContext, configure_logging, get_logger
from invoicing.models.invoice import Invoice, InvoiceDraft, InvoiceStatus
from invoicing.models.payment import PaymentRequest
from invoicing.models.report import InvoiceReport
from invoicing.services import invoice_aggregate as aggregate
from invoicing.services.overdue_sweep import SweepResult, sweep
from invoicing.services.reporting import build_report, categorize_by_status, search_invoices
from invoicing.storage.json_repo import JsonRepository

logger = get_logger("services.invoice_service")


# ---------- Numérotation ---------- #

def next_invoice_number(existing: Iterable[str], year: int, prefix: str = "INV-") -> str:
    """INV-<année>-<NNNN>, un de plus que le plus grand numéro de l'année."""
    base = f"{prefix}{year}-"
    max_n = 0
    for num in existing:
        if not isinstance(num, str) or not num.startswith(base):
            continue
        tail = num[len(base):]
        if tail.isdigit():
            max_n = max(max_n, int(tail))
    return f"{base}{max_n + 1:04d}"


# ---------- Service ---------- #

class InvoiceService:
    """
    Façade de persistance autour de l'agrégat.
    Chaque écriture passe par compare_and_swap : une mise à jour concurrente
    échoue en ConcurrencyConflict au lieu d'écraser le registre.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        path: Optional[os.PathLike | str] = None,
    ):
        self.settings = settings or load_settings()
        configure_logging(level=self.settings.log_level)
        self.clock = clock or SystemClock()
        self.repo: JsonRepository[Invoice] = JsonRepository(
            path or self.settings.invoices_json,
            entity_name="invoice",
            key="id",
            backup_enabled=self.settings.backup_enabled,
            backup_keep=self.settings.backup_keep,
        )

    # ----------- lecture -----------
    def _hydrate(self, rows: Iterable[Dict[str, Any]]) -> List[Invoice]:
        out: List[Invoice] = []
        for d in rows:
            try:
                out.append(Invoice(**d))
            except ValidationError as e:
                logger.warning("invoice_record_invalid", extra={"invoice_id": d.get("id"), "error": str(e)})
        return out

    def get_invoice(self, invoice_id: str) -> InvoiceResult:
        d = self.repo.get_by_id(invoice_id)
        if d is None:
            return InvoiceResult.failure(InvoiceNotFound(invoice_id))
        hydrated = self._hydrate([d])
        if not hydrated:
            # enregistrement illisible : même traitement que dans la liste
            return InvoiceResult.failure(InvoiceNotFound(invoice_id))
        return InvoiceResult.success(hydrated[0])

    def list_invoices(self, now: Optional[datetime] = None) -> List[Invoice]:
        """Chargement de la liste : le balayage des retards est appliqué et persisté à chaque appel."""
        result = self.sweep_overdue(now)
        return sorted(result.updated_invoices, key=lambda inv: inv.created_at, reverse=True)

    def list_by_project(self, project_reference: str) -> List[Invoice]:
        return self._hydrate(self.repo.find(lambda d: d.get("project_reference") == project_reference))

    def board(self) -> Dict[str, List[Invoice]]:
        return categorize_by_status(self.list_invoices())

    def search(self, query: str) -> List[Invoice]:
        return search_invoices(self.list_invoices(), query)

    # ----------- balayage -----------
    def sweep_overdue(self, now: Optional[datetime] = None) -> SweepResult:
        invoices = self._hydrate(self.repo.list_all())
        previous = {inv.id: inv.version for inv in invoices}
        result = sweep(invoices, now or self.clock.now())

        persisted: List[Invoice] = []
        transitioned: List[str] = []
        for inv in result.updated_invoices:
            if inv.id not in result.transitioned_ids:
                persisted.append(inv)
                continue
            try:
                self.repo.compare_and_swap(inv, previous[inv.id])
            except ConcurrencyConflict as e:
                # un autre écrivain est passé entre-temps : le prochain chargement réévaluera
                logger.warning("overdue_sweep_conflict", extra={"invoice_id": inv.id, "reason": str(e)})
                fresh = self.get_invoice(inv.id)
                if fresh.ok:
                    persisted.append(fresh.unwrap())
                continue
            persisted.append(inv)
            transitioned.append(inv.id)
        return SweepResult(updated_invoices=persisted, transitioned_ids=transitioned)

    # ----------- écriture -----------
    def _persist(self, result: InvoiceResult, expected_version: int) -> InvoiceResult:
        if not result.ok:
            return result
        invoice = result.unwrap()
        try:
            self.repo.compare_and_swap(invoice, expected_version)
        except ConcurrencyConflict as e:
            logger.warning("invoice_write_conflict", extra={"invoice_id": invoice.id, "reason": str(e)})
            return InvoiceResult.failure(e)
        except ValueError:
            return InvoiceResult.failure(InvoiceNotFound(invoice.id))
        return result

    def _load_at(self, invoice_id: str, expected_version: Optional[int]) -> InvoiceResult:
        loaded = self.get_invoice(invoice_id)
        if not loaded.ok or expected_version is None:
            return loaded
        invoice = loaded.unwrap()
        if invoice.version != expected_version:
            return InvoiceResult.failure(
                ConcurrencyConflict(invoice_id, expected_version, invoice.version)
            )
        return loaded

    def create_invoice(self, draft: InvoiceDraft) -> InvoiceResult:
        now = self.clock.now()
        with self.repo.lock:
            number = next_invoice_number(
                (d.get("invoice_number") for d in self.repo.list_all()),
                year=now.year,
                prefix=self.settings.numbering.invoice_prefix,
            )
            result = aggregate.create(
                draft.work_items,
                draft.supervision_fee,
                draft.general_conditions_percentage,
                draft.due_date,
                draft.client_reference,
                invoice_number=number,
                invoice_date=draft.invoice_date,
                created_by=draft.created_by,
                project_reference=draft.project_reference,
                now=now,
            )
            if result.ok:
                self.repo.add(result.unwrap())
        return result

    def record_payment(
        self, invoice_id: str, request: PaymentRequest, expected_version: int
    ) -> InvoiceResult:
        with LogContext.bind(invoice_id=invoice_id, actor_id=request.paid_by):
            loaded = self._load_at(invoice_id, expected_version)
            if not loaded.ok:
                return loaded
            result = aggregate.record_payment(loaded.unwrap(), request, now=self.clock.now())
            return self._persist(result, expected_version)

    def set_status(
        self,
        invoice_id: str,
        status: InvoiceStatus,
        explicit_paid_amount: Any = None,
        *,
        expected_version: Optional[int] = None,
        note: Optional[str] = None,
    ) -> InvoiceResult:
        with LogContext.bind(invoice_id=invoice_id):
            loaded = self._load_at(invoice_id, expected_version)
            if not loaded.ok:
                return loaded
            invoice = loaded.unwrap()
            result = aggregate.set_manual_status(
                invoice, status, explicit_paid_amount, note=note, now=self.clock.now()
            )
            return self._persist(result, invoice.version)

    def void_payment(
        self,
        invoice_id: str,
        payment_id: str,
        expected_version: int,
        *,
        reason: Optional[str] = None,
        voided_by: Optional[str] = None,
    ) -> InvoiceResult:
        with LogContext.bind(invoice_id=invoice_id, actor_id=voided_by):
            loaded = self._load_at(invoice_id, expected_version)
            if not loaded.ok:
                return loaded
            result = aggregate.void_payment(
                loaded.unwrap(), payment_id, reason=reason, voided_by=voided_by, now=self.clock.now()
            )
            return self._persist(result, expected_version)

    def attach_payment_document(self, invoice_id: str, payment_id: str, document_ref: str) -> InvoiceResult:
        """Pièce jointe ajoutée après coup (nouvel essai après un échec d'upload)."""
        loaded = self.get_invoice(invoice_id)
        if not loaded.ok:
            return loaded
        invoice = loaded.unwrap()
        result = aggregate.attach_payment_document(invoice, payment_id, document_ref)
        return self._persist(result, invoice.version)

    def detach_payment_document(self, invoice_id: str, payment_id: str, document_ref: str) -> InvoiceResult:
        loaded = self.get_invoice(invoice_id)
        if not loaded.ok:
            return loaded
        invoice = loaded.unwrap()
        result = aggregate.detach_payment_document(invoice, payment_id, document_ref)
        return self._persist(result, invoice.version)

    # ----------- projections -----------
    def open_balance(self, invoice_id: str) -> Decimal:
        """Lève InvoiceNotFound si l'identifiant est inconnu."""
        return aggregate.calculate_open_balance(self.get_invoice(invoice_id).unwrap())

    def export(self, invoice_id: str) -> InvoiceReport:
        """Lève InvoiceNotFound si l'identifiant est inconnu."""
        return build_report(self.get_invoice(invoice_id).unwrap())
