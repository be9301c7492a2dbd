from datetime import date, datetime, timezone
from decimal import Decimal

from invoicing.models.payment import PaymentRequest
from invoicing.services import invoice_aggregate as aggregate
from invoicing.services.overdue_sweep import sweep


class TestSweep:

    def test_pending_due_yesterday_becomes_overdue(self, invoice_factory, now):
        inv = invoice_factory(due=date(2025, 3, 14))
        result = sweep([inv], now)

        assert result.transitioned_ids == [inv.id]
        swept = result.updated_invoices[0]
        assert swept.status == "overdue"
        assert swept.version == inv.version + 1
        assert swept.status_history[-1].source == "sweep"
        assert aggregate.calculate_open_balance(swept) == Decimal("1000")

    def test_due_today_is_not_overdue(self, invoice_factory, now):
        inv = invoice_factory(due=date(2025, 3, 15))
        result = sweep([inv], now)
        assert result.transitioned_ids == []
        assert result.updated_invoices == [inv]

    def test_second_run_is_a_no_op(self, invoice_factory, now):
        invoices = [invoice_factory(due=date(2025, 3, d), invoice_number=f"INV-2025-{d:04d}") for d in (1, 10, 20)]
        first = sweep(invoices, now)
        second = sweep(first.updated_invoices, now)

        assert len(first.transitioned_ids) == 2
        assert second.transitioned_ids == []
        assert second.updated_invoices == first.updated_invoices

    def test_other_statuses_untouched(self, invoice_factory, now):
        base = invoice_factory(due=date(2025, 1, 1))
        partial = aggregate.record_payment(base, PaymentRequest(amount="1"), now=now).unwrap()
        paid = aggregate.set_manual_status(base, "paid").unwrap()
        cancelled = aggregate.set_manual_status(base, "cancelled").unwrap()
        overdue = aggregate.mark_overdue(base, now=now)

        batch = [partial, paid, cancelled, overdue]
        result = sweep(batch, now)
        assert result.transitioned_ids == []
        assert result.updated_invoices == batch

    def test_accepts_plain_date(self, invoice_factory):
        inv = invoice_factory(due=date(2025, 3, 14))
        result = sweep([inv], date(2025, 3, 15))
        assert result.updated_invoices[0].status == "overdue"
        assert result.updated_invoices[0].updated_at == datetime(2025, 3, 15, tzinfo=timezone.utc)

    def test_order_preserved(self, invoice_factory, now):
        a = invoice_factory(due=date(2025, 4, 1), invoice_number="INV-2025-0001")
        b = invoice_factory(due=date(2025, 3, 1), invoice_number="INV-2025-0002")
        result = sweep([a, b], now)
        assert [i.invoice_number for i in result.updated_invoices] == ["INV-2025-0001", "INV-2025-0002"]
