# Overview: Pytest coverage for invoice issuing, payments and rollback behavior.

from decimal import Decimal

import pytest
from sqlalchemy.orm.exc import StaleDataError

from agency.models import (
    ActivityLog,
    AgentTransaction,
    DepositTransaction,
    Invoice,
    VendorTransaction,
)
from agency.services import invoice_service
from agency.services.balance_service import PartyNotFoundError
from agency.services.concurrency import ConcurrencyConflictError
from agency.services.invoice_service import (
    InvoiceNotFoundError,
    cancel_invoice,
    create_invoice,
    get_invoice,
    list_invoices,
    preview_invoice,
    record_invoice_payment,
)
from agency.validation import ValidationError


D = Decimal


def _issue(party, vendor, amount="1000", **kwargs):
    return create_invoice(
        customer_type=party.party_kind,
        customer_id=party.id,
        vendor_id=vendor.id,
        items=[{"sector": "DXB-LHR", "description": "Return economy", "amount": amount}],
        **kwargs,
    )


class TestCreateInvoice:
    def test_customer_deposit_is_debited(self, db_session, customer, vendor):
        invoice = _issue(customer, vendor, discount_percent=10, use_customer_deposit=True, issued_by="desk1")

        assert invoice.invoice_number == "INV-1001"
        assert invoice.subtotal == D("1000.00")
        assert invoice.discount_amount == D("100.00")
        assert invoice.deposit_used == D("500.00")
        assert invoice.total == D("400.00")
        assert invoice.status == "issued"
        assert customer.deposit_balance == D("0.00")

        row = db_session.query(DepositTransaction).filter_by(reference_id=invoice.id).one()
        assert row.type == "debit"
        assert row.amount == D("500.00")
        assert row.balance_after == D("0.00")
        assert row.reference_type == "invoice"
        assert row.description == "Invoice INV-1001 - Deposit used for payment"
        assert row.created_by == "desk1"

    def test_agent_deposit_then_credit(self, db_session, agent, vendor):
        invoice = _issue(agent, vendor, use_customer_deposit=True, use_agent_credit=True, payment_method="credit")

        assert invoice.deposit_used == D("300.00")
        assert invoice.agent_credit_used == D("700.00")
        assert invoice.total == D("0.00")
        assert agent.deposit_balance == D("0.00")
        assert agent.credit_balance == D("300.00")

        rows = (
            db_session.query(AgentTransaction)
            .filter_by(reference_id=invoice.id, reference_type="invoice")
            .order_by(AgentTransaction.id.asc())
            .all()
        )
        assert [(r.transaction_type, r.type, r.amount) for r in rows] == [
            ("deposit", "debit", D("300.00")),
            ("credit", "debit", D("700.00")),
        ]
        assert rows[1].payment_method == "credit"
        assert rows[1].balance_after == D("300.00")

    def test_vendor_credit_deduction(self, db_session, customer, vendor):
        invoice = _issue(customer, vendor, use_vendor_balance="credit", vendor_cost="400")

        assert invoice.vendor_balance_deducted == D("400.00")
        assert invoice.total == D("1000.00")
        assert vendor.credit_balance == D("600.00")
        assert vendor.deposit_balance == D("500.00")

        row = db_session.query(VendorTransaction).filter_by(reference_id=invoice.id).one()
        assert row.type == "debit"
        assert row.transaction_type == "credit"
        assert row.description == "Invoice INV-1001 - Credit used for vendor payment"

    def test_vendor_deposit_deduction_is_capped(self, db_session, customer, vendor):
        invoice = _issue(customer, vendor, use_vendor_balance="deposit", vendor_cost="800")
        assert invoice.vendor_balance_deducted == D("500.00")
        assert vendor.deposit_balance == D("0.00")

    def test_vendor_none_leaves_vendor_untouched(self, db_session, customer, vendor):
        _issue(customer, vendor, use_vendor_balance="none", vendor_cost="400")
        assert vendor.credit_balance == D("1000.00")
        assert db_session.query(VendorTransaction).filter(VendorTransaction.reference_type == "invoice").count() == 0

    def test_no_flags_writes_no_ledger_rows(self, db_session, customer, vendor):
        invoice = _issue(customer, vendor)
        assert invoice.total == D("1000.00")
        assert db_session.query(DepositTransaction).filter_by(reference_type="invoice").count() == 0

    def test_numbers_are_sequential(self, db_session, customer, vendor):
        numbers = [_issue(customer, vendor, amount="10").invoice_number for _ in range(3)]
        assert numbers == ["INV-1001", "INV-1002", "INV-1003"]

    def test_activity_is_recorded(self, db_session, customer, vendor):
        invoice = _issue(customer, vendor, issued_by="desk1")
        entry = db_session.query(ActivityLog).filter_by(entity="invoice", entity_id=invoice.id).one()
        assert entry.action == "create"
        assert entry.entity_name == invoice.invoice_number
        assert entry.actor == "desk1"

    def test_items_are_stored_normalized(self, db_session, customer, vendor):
        invoice = _issue(customer, vendor, amount=250.5)
        assert invoice.items == [{"sector": "DXB-LHR", "description": "Return economy", "amount": "250.50"}]


class TestCreateInvoiceRejections:
    def test_unknown_party(self, db_session, vendor):
        with pytest.raises(PartyNotFoundError):
            create_invoice(customer_type="customer", customer_id=999, vendor_id=vendor.id, items=[{"amount": 1}])

    def test_unknown_vendor(self, db_session, customer):
        with pytest.raises(PartyNotFoundError):
            create_invoice(customer_type="customer", customer_id=customer.id, vendor_id=999, items=[{"amount": 1}])

    def test_bad_party_type(self, db_session, customer, vendor):
        with pytest.raises(ValidationError):
            create_invoice(customer_type="vendor", customer_id=customer.id, vendor_id=vendor.id, items=[{"amount": 1}])

    def test_bad_payment_method(self, db_session, customer, vendor):
        with pytest.raises(ValidationError):
            _issue(customer, vendor, payment_method="bitcoin")

    def test_empty_items(self, db_session, customer, vendor):
        with pytest.raises(ValidationError):
            create_invoice(customer_type="customer", customer_id=customer.id, vendor_id=vendor.id, items=[])
        assert db_session.query(Invoice).count() == 0

    def test_failure_rolls_back_everything(self, db_session, customer, vendor, monkeypatch):
        def boom(**kwargs):
            raise RuntimeError("activity store offline")

        monkeypatch.setattr(invoice_service, "append_activity", boom)
        with pytest.raises(RuntimeError):
            _issue(customer, vendor, use_customer_deposit=True, use_vendor_balance="credit", vendor_cost="100")

        assert db_session.query(Invoice).count() == 0
        assert db_session.query(DepositTransaction).filter_by(reference_type="invoice").count() == 0
        assert db_session.query(VendorTransaction).filter_by(reference_type="invoice").count() == 0
        assert customer.deposit_balance == D("500.00")
        assert vendor.credit_balance == D("1000.00")

        monkeypatch.undo()
        assert _issue(customer, vendor).invoice_number == "INV-1001"

    def test_stale_write_becomes_conflict(self, db_session, customer, vendor, monkeypatch):
        def stale(document_type):
            raise StaleDataError("version mismatch")

        monkeypatch.setattr(invoice_service, "next_document_number", stale)
        with pytest.raises(ConcurrencyConflictError):
            _issue(customer, vendor, use_customer_deposit=True)
        assert customer.deposit_balance == D("500.00")


class TestInvoiceLifecycle:
    def test_partial_then_paid(self, db_session, customer, vendor):
        invoice = _issue(customer, vendor)

        invoice = record_invoice_payment(invoice.id, "400", received_by="cashier")
        assert invoice.status == "partial"
        assert invoice.paid_amount == D("400.00")
        assert invoice.balance_due == D("600.00")

        invoice = record_invoice_payment(invoice.id, "600")
        assert invoice.status == "paid"

    def test_overpayment_rejected(self, db_session, customer, vendor):
        invoice = _issue(customer, vendor, amount="100")
        with pytest.raises(ValidationError):
            record_invoice_payment(invoice.id, "100.01")
        assert get_invoice(invoice.id).paid_amount == D("0.00")

    def test_cannot_pay_cancelled(self, db_session, customer, vendor):
        invoice = _issue(customer, vendor)
        cancel_invoice(invoice.id, cancelled_by="manager", reason="duplicate")
        with pytest.raises(ValidationError):
            record_invoice_payment(invoice.id, "10")

    def test_cancel_keeps_balance_movements(self, db_session, customer, vendor):
        invoice = _issue(customer, vendor, use_customer_deposit=True)
        invoice = cancel_invoice(invoice.id)
        assert invoice.status == "cancelled"
        assert customer.deposit_balance == D("0.00")

    def test_fully_covered_invoice_is_issued_paid(self, db_session, customer, vendor):
        invoice = _issue(customer, vendor, amount="400", use_customer_deposit=True)

        assert invoice.total == D("0.00")
        assert invoice.status == "paid"
        assert invoice.balance_due == D("0.00")
        assert customer.deposit_balance == D("100.00")

        with pytest.raises(ValidationError):
            record_invoice_payment(invoice.id, "0.01")
        with pytest.raises(ValidationError):
            cancel_invoice(invoice.id)
        assert get_invoice(invoice.id).status == "paid"

    def test_agent_credit_cover_is_paid(self, db_session, agent, vendor):
        invoice = _issue(agent, vendor, amount="500", use_agent_credit=True)
        assert invoice.total == D("0.00")
        assert invoice.status == "paid"

    def test_preview_rejects_string_flags(self, db_session, customer, vendor):
        with pytest.raises(ValidationError):
            preview_invoice(
                customer_type="customer",
                customer_id=customer.id,
                vendor_id=vendor.id,
                items=[{"amount": "100"}],
                use_customer_deposit="false",
            )

    def test_cannot_cancel_paid(self, db_session, customer, vendor):
        invoice = _issue(customer, vendor, amount="50")
        record_invoice_payment(invoice.id, "50")
        with pytest.raises(ValidationError):
            cancel_invoice(invoice.id)

    def test_missing_invoice(self, db_session):
        with pytest.raises(InvoiceNotFoundError):
            get_invoice(12345)
        with pytest.raises(InvoiceNotFoundError):
            record_invoice_payment(12345, "1")


class TestQueries:
    def test_list_filters(self, db_session, customer, agent, vendor):
        _issue(customer, vendor)
        _issue(agent, vendor)
        cancelled = _issue(customer, vendor)
        cancel_invoice(cancelled.id)

        invoices, total = list_invoices(customer_type="customer", customer_id=customer.id)
        assert total == 2
        assert invoices[0].id == cancelled.id

        invoices, total = list_invoices(status="cancelled")
        assert total == 1

        with pytest.raises(ValidationError):
            list_invoices(status="archived")

    def test_preview_matches_create(self, db_session, customer, vendor):
        kwargs = dict(
            customer_type="customer",
            customer_id=customer.id,
            vendor_id=vendor.id,
            items=[{"amount": "1000"}],
            discount_percent=10,
            use_customer_deposit=True,
            use_vendor_balance="credit",
            vendor_cost="300",
        )
        preview = preview_invoice(**kwargs)
        invoice = create_invoice(**kwargs)
        assert preview.total == invoice.total
        assert preview.deposit_used == invoice.deposit_used
        assert preview.vendor_balance_deducted == invoice.vendor_balance_deducted
