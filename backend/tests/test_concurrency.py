# Overview: Pytest coverage for the unit-of-work boundary and optimistic version checks.

from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from agency.extensions import db
from agency.models import Customer
from agency.services.concurrency import ConcurrencyConflictError, is_write_conflict, unit_of_work
from agency.validation import ValidationError


class TestUnitOfWork:
    def test_commits_on_success(self, db_session, customer):
        with unit_of_work("rename"):
            customer.company = "Ali Holdings"
        db.session.expire_all()
        assert db.session.get(Customer, customer.id).company == "Ali Holdings"

    def test_validation_error_rolls_back_and_propagates(self, db_session, customer):
        with pytest.raises(ValidationError):
            with unit_of_work("rename"):
                customer.company = "Never saved"
                db.session.flush()
                raise ValidationError("bad input")
        assert customer.company == ""

    @pytest.mark.parametrize("exc", [
        StaleDataError("stale"),
        IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")),
        IntegrityError("INSERT", {}, Exception('duplicate key value violates unique constraint "uq_invoice_number"')),
        OperationalError("UPDATE", {}, Exception("database is locked")),
        OperationalError("UPDATE", {}, Exception("deadlock detected")),
    ])
    def test_write_conflicts_are_translated(self, db_session, customer, exc):
        with pytest.raises(ConcurrencyConflictError):
            with unit_of_work("conflict"):
                customer.company = "Never saved"
                raise exc
        assert customer.company == ""

    @pytest.mark.parametrize("exc", [
        IntegrityError("INSERT", {}, Exception("NOT NULL constraint failed: invoices.total")),
        OperationalError("SELECT", {}, Exception("no such table: invoices")),
    ])
    def test_other_database_errors_propagate(self, db_session, customer, exc):
        with pytest.raises(type(exc)):
            with unit_of_work("broken write"):
                customer.company = "Never saved"
                raise exc
        assert customer.company == ""

    def test_conflict_classifier(self):
        assert is_write_conflict(StaleDataError("stale"))
        assert is_write_conflict(IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed: document_sequences.document_type")))
        assert not is_write_conflict(IntegrityError("INSERT", {}, Exception("FOREIGN KEY constraint failed")))
        assert not is_write_conflict(OperationalError("SELECT", {}, Exception("no such column: total")))
        assert not is_write_conflict(ValueError("unique constraint"))

    def test_stale_version_is_detected(self, db_session, customer):
        loaded_version = customer.version_id
        assert loaded_version >= 1

        # Another writer bumps the row behind this session's back
        db.session.execute(
            Customer.__table__.update()
            .where(Customer.id == customer.id)
            .values(version_id=Customer.version_id + 1, deposit_balance=Decimal("1.00"))
        )

        with pytest.raises(ConcurrencyConflictError):
            with unit_of_work("stale write"):
                customer.deposit_balance = Decimal("0.00")

        assert db.session.get(Customer, customer.id).deposit_balance == Decimal("500.00")
