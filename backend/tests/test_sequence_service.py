# Overview: Pytest coverage for invoice/ticket number allocation.

import pytest

from agency.extensions import db
from agency.models import DocumentSequence
from agency.services import sequence_service
from agency.services.invoice_service import create_invoice
from agency.services.sequence_service import (
    DOCUMENT_INVOICE,
    DOCUMENT_TICKET,
    DocumentSequenceError,
    format_number,
    highest_existing_number,
    next_document_number,
    next_number,
    parse_number,
    sync_sequence_from_existing,
)


def _invoice(customer, vendor):
    return create_invoice(
        customer_type="customer",
        customer_id=customer.id,
        vendor_id=vendor.id,
        items=[{"amount": "10"}],
    )


class TestFormatting:
    def test_format_and_parse(self):
        assert format_number(DOCUMENT_INVOICE, 1001) == "INV-1001"
        assert format_number(DOCUMENT_TICKET, 7) == "TKT-7"
        assert parse_number(DOCUMENT_INVOICE, "INV-1042") == 1042

    def test_parse_ignores_foreign_values(self):
        assert parse_number(DOCUMENT_INVOICE, "TKT-1042") is None
        assert parse_number(DOCUMENT_INVOICE, "INV-12a") is None
        assert parse_number(DOCUMENT_INVOICE, "") is None
        assert parse_number(DOCUMENT_INVOICE, None) is None

    def test_unknown_type(self):
        with pytest.raises(DocumentSequenceError):
            format_number("RECEIPT", 1)


class TestAllocation:
    def test_first_number_follows_start(self, db_session):
        assert next_document_number(DOCUMENT_INVOICE) == "INV-1001"
        assert next_document_number(DOCUMENT_INVOICE) == "INV-1002"
        assert next_document_number(DOCUMENT_TICKET) == "TKT-1001"
        db_session.commit()

    def test_configured_start(self, db_session, app, monkeypatch):
        monkeypatch.setitem(app.config, "TICKET_NUMBER_START", 5000)
        assert next_number(DOCUMENT_TICKET) == 5001
        db_session.commit()

    def test_rollback_returns_the_number(self, db_session):
        assert next_number(DOCUMENT_INVOICE) == 1001
        db.session.rollback()
        assert next_number(DOCUMENT_INVOICE) == 1001
        db_session.commit()

    def test_seeded_from_existing_documents(self, db_session, customer, vendor):
        invoice = _invoice(customer, vendor)
        invoice.invoice_number = "INV-2000"
        db_session.commit()
        db_session.query(DocumentSequence).delete()
        db_session.commit()

        assert highest_existing_number(DOCUMENT_INVOICE) == 2000
        assert _invoice(customer, vendor).invoice_number == "INV-2001"

    def test_sync_never_lowers(self, db_session):
        for _ in range(3):
            next_number(DOCUMENT_INVOICE)
        seq = sync_sequence_from_existing(DOCUMENT_INVOICE)
        assert seq.last_number == 1003
        db_session.commit()

    def test_list_sequences(self, db_session):
        next_number(DOCUMENT_TICKET)
        next_number(DOCUMENT_INVOICE)
        db_session.commit()
        assert [s.document_type for s in sequence_service.list_sequences()] == ["INVOICE", "TICKET"]
