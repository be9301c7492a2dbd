"""Tests du registre de paiements (voie évènementielle et voie de correction manuelle)."""
from datetime import date
from decimal import Decimal

import pytest

from invoicing.errors import (
    InvalidAmount,
    InvalidPartialAmount,
    InvoiceCancelled,
    OverpaymentRejected,
    PaymentAlreadyVoided,
    PaymentNotFound,
)
from invoicing.models.payment import PaymentRequest
from invoicing.services import invoice_aggregate as aggregate
from invoicing.services import payment_ledger

TODAY = date(2025, 3, 15)


class TestApplyPayment:

    def test_accepted_payment(self, invoice):
        state = payment_ledger.apply_payment(
            invoice, PaymentRequest(amount="400", method="check", check_number="1042"), today=TODAY
        )
        assert state.ok
        assert state.paid_amount == Decimal("400")
        assert state.remaining == Decimal("600")
        assert state.payment.payment_date == TODAY
        assert state.payment.check_number == "1042"
        assert len(state.payments) == 1

    def test_explicit_payment_date_is_kept(self, invoice):
        state = payment_ledger.apply_payment(
            invoice, PaymentRequest(amount="10", payment_date=date(2025, 3, 1)), today=TODAY
        )
        assert state.payment.payment_date == date(2025, 3, 1)

    @pytest.mark.parametrize(
        "raw",
        ["0", "-5", "abc", "", "0.001", Decimal("-0.01"),
         "x5", "abc12", "5 dollars", "1e30", "1e999999", Decimal("1e13")],
    )
    def test_invalid_amount(self, invoice, raw):
        state = payment_ledger.apply_payment(invoice, PaymentRequest(amount=raw), today=TODAY)
        assert not state.ok
        assert isinstance(state.error, InvalidAmount)
        assert state.error.code == "INVALID_AMOUNT"

    def test_overpayment_by_one_cent(self, invoice):
        state = payment_ledger.apply_payment(invoice, PaymentRequest(amount="1000.01"), today=TODAY)
        assert isinstance(state.error, OverpaymentRejected)
        assert state.error.remaining == Decimal("1000")
        assert "$1,000.00" in str(state.error)

    def test_formatted_amount_is_accepted(self, invoice):
        state = payment_ledger.apply_payment(invoice, PaymentRequest(amount="$1,000.00"), today=TODAY)
        assert state.ok
        assert state.paid_amount == Decimal("1000")

    def test_exact_remaining_is_accepted(self, invoice):
        state = payment_ledger.apply_payment(invoice, PaymentRequest(amount="1000.00"), today=TODAY)
        assert state.ok
        assert state.remaining == Decimal("0")

    def test_cancelled_invoice_rejects_payment(self, invoice):
        cancelled = aggregate.set_manual_status(invoice, "cancelled").unwrap()
        state = payment_ledger.apply_payment(cancelled, PaymentRequest(amount="10"), today=TODAY)
        assert isinstance(state.error, InvoiceCancelled)

    def test_remaining_accounts_for_manual_adjustment(self, invoice):
        partial = aggregate.set_manual_status(invoice, "partial-paid", "700").unwrap()
        state = payment_ledger.apply_payment(partial, PaymentRequest(amount="300.01"), today=TODAY)
        assert isinstance(state.error, OverpaymentRejected)
        assert state.error.remaining == Decimal("300")


class TestVoidPayment:

    def test_void_restores_balance(self, invoice):
        paid = aggregate.record_payment(invoice, PaymentRequest(amount="250")).unwrap()
        original = paid.payments[0]
        state = payment_ledger.void_payment(paid, original.id, today=TODAY, reason="bounced check")
        assert state.ok
        assert state.paid_amount == Decimal("0")
        assert state.payment.kind == "void"
        assert state.payment.voids_payment_id == original.id
        assert state.payments[0] == original

    def test_unknown_payment(self, invoice):
        state = payment_ledger.void_payment(invoice, "missing", today=TODAY)
        assert isinstance(state.error, PaymentNotFound)

    def test_void_twice(self, invoice):
        paid = aggregate.record_payment(invoice, PaymentRequest(amount="250")).unwrap()
        voided = aggregate.void_payment(paid, paid.payments[0].id).unwrap()
        state = payment_ledger.void_payment(voided, paid.payments[0].id, today=TODAY)
        assert isinstance(state.error, PaymentAlreadyVoided)


class TestManualOverride:

    @pytest.mark.parametrize("raw", [None, "0", "1000", "1200", "oops"])
    def test_partial_requires_amount_strictly_inside(self, invoice, raw):
        state = payment_ledger.manual_override(invoice, "partial-paid", raw)
        assert isinstance(state.error, InvalidPartialAmount)

    def test_partial_sets_adjustment_without_payment(self, invoice):
        state = payment_ledger.manual_override(invoice, "partial-paid", "300")
        assert state.ok
        assert state.payments == ()
        assert state.manual_adjustment == Decimal("300")
        assert state.paid_amount == Decimal("300")

    def test_adjustment_is_relative_to_ledger(self, invoice):
        paid = aggregate.record_payment(invoice, PaymentRequest(amount="100")).unwrap()
        state = payment_ledger.manual_override(paid, "partial-paid", "450")
        assert state.manual_adjustment == Decimal("350")
        assert state.paid_amount == Decimal("450")

    def test_paid_defaults_to_total(self, invoice):
        state = payment_ledger.manual_override(invoice, "paid")
        assert state.paid_amount == Decimal("1000")

    def test_paid_above_total_rejected(self, invoice):
        state = payment_ledger.manual_override(invoice, "paid", "1000.01")
        assert isinstance(state.error, OverpaymentRejected)

    def test_paid_negative_rejected(self, invoice):
        state = payment_ledger.manual_override(invoice, "paid", "-1")
        assert isinstance(state.error, InvalidAmount)

    def test_cancel_keeps_paid_amount(self, invoice):
        partial = aggregate.set_manual_status(invoice, "partial-paid", "300").unwrap()
        state = payment_ledger.manual_override(partial, "cancelled")
        assert state.paid_amount == Decimal("300")


class TestDocuments:

    def test_attach_and_detach(self, invoice):
        paid = aggregate.record_payment(invoice, PaymentRequest(amount="100")).unwrap()
        pid = paid.payments[0].id

        state = payment_ledger.attach_document(paid, pid, "docs/receipt-1.pdf")
        assert state.payment.documents == ["docs/receipt-1.pdf"]
        assert state.paid_amount == Decimal("100")

        attached = paid.model_copy(update={"payments": list(state.payments)})
        again = payment_ledger.attach_document(attached, pid, "docs/receipt-1.pdf")
        assert again.payment.documents == ["docs/receipt-1.pdf"]

        removed = payment_ledger.detach_document(attached, pid, "docs/receipt-1.pdf")
        assert removed.payment.documents == []

    def test_attach_unknown_payment(self, invoice):
        state = payment_ledger.attach_document(invoice, "nope", "docs/x.pdf")
        assert isinstance(state.error, PaymentNotFound)
