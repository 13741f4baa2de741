# Overview: Pytest coverage for the pure invoice and ticket calculators.

"""
Ledger Engine Tests

No database: every calculation takes snapshots and returns a value object.
"""

from decimal import Decimal
from itertools import product

import pytest

from agency.services.ledger_engine import (
    LedgerValidationError,
    PartySnapshot,
    VendorSnapshot,
    calculate_invoice_amounts,
    calculate_ticket_amounts,
    capped_deduction,
    normalize_items,
)
from agency.validation import ValidationError


D = Decimal


def customer_snapshot(deposit="0"):
    return PartySnapshot(kind="customer", id=1, deposit_balance=D(deposit))


def agent_snapshot(deposit="0", credit="0"):
    return PartySnapshot(kind="agent", id=2, deposit_balance=D(deposit), credit_balance=D(credit))


class TestInvoiceCalculation:
    def test_discount_only(self):
        amounts = calculate_invoice_amounts(items=[{"amount": 1000}], discount_percent=10)
        assert amounts.subtotal == D("1000.00")
        assert amounts.discount_amount == D("100.00")
        assert amounts.total == D("900.00")
        assert amounts.deposit_used == D("0")

    def test_deposit_smaller_than_total(self):
        amounts = calculate_invoice_amounts(
            items=[{"amount": 1000}],
            discount_percent=10,
            use_customer_deposit=True,
            party=customer_snapshot("500"),
        )
        assert amounts.deposit_used == D("500.00")
        assert amounts.total == D("400.00")

    def test_deposit_larger_than_total(self):
        amounts = calculate_invoice_amounts(
            items=[{"amount": 1000}],
            discount_percent=10,
            use_customer_deposit=True,
            party=customer_snapshot("1500"),
        )
        assert amounts.deposit_used == D("900.00")
        assert amounts.total == D("0.00")

    def test_deposit_flag_off_ignores_balance(self):
        amounts = calculate_invoice_amounts(
            items=[{"amount": 200}], party=customer_snapshot("1500")
        )
        assert amounts.deposit_used == D("0")
        assert amounts.total == D("200.00")

    def test_agent_credit_after_deposit(self):
        amounts = calculate_invoice_amounts(
            items=[{"amount": 1000}],
            use_customer_deposit=True,
            use_agent_credit=True,
            party=agent_snapshot(deposit="300", credit="1000"),
        )
        assert amounts.deposit_used == D("300.00")
        assert amounts.agent_credit_used == D("700.00")
        assert amounts.total == D("0.00")

    def test_agent_credit_ignored_for_customer(self):
        amounts = calculate_invoice_amounts(
            items=[{"amount": 1000}],
            use_agent_credit=True,
            party=customer_snapshot("0"),
        )
        assert amounts.agent_credit_used == D("0")
        assert amounts.total == D("1000.00")

    def test_zero_or_negative_pools_skip(self):
        for balance in ("0", "-50"):
            amounts = calculate_invoice_amounts(
                items=[{"amount": 100}],
                use_customer_deposit=True,
                use_agent_credit=True,
                party=agent_snapshot(deposit=balance, credit=balance),
            )
            assert amounts.deposit_used == D("0")
            assert amounts.agent_credit_used == D("0")
            assert amounts.total == D("100.00")

    def test_vendor_deduction_does_not_change_total(self):
        amounts = calculate_invoice_amounts(
            items=[{"amount": 1000}],
            use_vendor_balance="credit",
            vendor_cost=800,
            vendor=VendorSnapshot(id=1, credit_balance=D("500")),
        )
        assert amounts.vendor_balance_deducted == D("500")
        assert amounts.total == D("1000.00")

    def test_vendor_none_does_nothing(self):
        amounts = calculate_invoice_amounts(
            items=[{"amount": 1000}],
            use_vendor_balance="none",
            vendor_cost=800,
            vendor=VendorSnapshot(id=1, credit_balance=D("500")),
        )
        assert amounts.vendor_balance_deducted == D("0")

    def test_vendor_zero_cost_skips(self):
        amounts = calculate_invoice_amounts(
            items=[{"amount": 1000}],
            use_vendor_balance="deposit",
            vendor_cost=0,
            vendor=VendorSnapshot(id=1, deposit_balance=D("500")),
        )
        assert amounts.vendor_balance_deducted == D("0")

    def test_zero_amount_items_allowed(self):
        amounts = calculate_invoice_amounts(items=[{"amount": 0}, {"amount": "0.00"}])
        assert amounts.subtotal == D("0.00")
        assert amounts.total == D("0.00")

    def test_fractional_discount_rounds_half_up(self):
        amounts = calculate_invoice_amounts(items=[{"amount": "99.99"}], discount_percent="12.5")
        assert amounts.discount_amount == D("12.50")
        assert amounts.total == D("87.49")

    def test_invalid_inputs(self):
        with pytest.raises(LedgerValidationError):
            calculate_invoice_amounts(items=[])
        with pytest.raises(LedgerValidationError):
            calculate_invoice_amounts(items=[{"sector": "DXB-LHR"}])
        with pytest.raises(ValidationError):
            calculate_invoice_amounts(items=[{"amount": -1}])
        with pytest.raises(ValidationError):
            calculate_invoice_amounts(items=[{"amount": 100}], discount_percent=101)
        with pytest.raises(LedgerValidationError):
            calculate_invoice_amounts(items=[{"amount": 100}], use_vendor_balance="cash")

    @pytest.mark.parametrize("flag", ["use_customer_deposit", "use_agent_credit"])
    @pytest.mark.parametrize("value", ["false", "true", 1, None])
    def test_deduction_flags_must_be_booleans(self, flag, value):
        with pytest.raises(LedgerValidationError):
            calculate_invoice_amounts(
                items=[{"amount": 100}],
                party=agent_snapshot(deposit="100", credit="100"),
                **{flag: value},
            )

    def test_sub_cent_amounts_rejected(self):
        with pytest.raises(ValidationError):
            calculate_invoice_amounts(items=[{"amount": "0.005"}])
        with pytest.raises(ValidationError):
            calculate_invoice_amounts(items=[{"amount": 100}], vendor_cost="10.001")
        amounts = calculate_invoice_amounts(items=[{"amount": "10.100"}])
        assert amounts.subtotal == D("10.10")

    def test_same_inputs_same_result(self):
        kwargs = dict(
            items=[{"amount": "450.50"}, {"amount": "120.25"}],
            discount_percent="7.5",
            use_customer_deposit=True,
            use_agent_credit=True,
            use_vendor_balance="deposit",
            vendor_cost="300",
            party=agent_snapshot(deposit="100", credit="200"),
            vendor=VendorSnapshot(id=3, deposit_balance=D("250")),
        )
        assert calculate_invoice_amounts(**kwargs) == calculate_invoice_amounts(**kwargs)

    def test_deductions_are_bounded(self):
        subtotals = ("0", "50", "900", "1000.01")
        balances = ("-10", "0", "25.50", "900", "5000")
        for subtotal, deposit, credit in product(subtotals, balances, balances):
            amounts = calculate_invoice_amounts(
                items=[{"amount": subtotal}],
                use_customer_deposit=True,
                use_agent_credit=True,
                party=agent_snapshot(deposit=deposit, credit=credit),
            )
            assert D(0) <= amounts.deposit_used <= max(D(deposit), D(0))
            assert amounts.deposit_used <= amounts.after_discount
            assert D(0) <= amounts.agent_credit_used <= max(D(credit), D(0))
            assert amounts.total >= 0
            assert amounts.total == amounts.after_discount - amounts.deposit_used - amounts.agent_credit_used

    def test_discount_property(self):
        for subtotal, percent in product(("0", "100", "333.33", "1250"), ("0", "5", "33.33", "100")):
            amounts = calculate_invoice_amounts(items=[{"amount": subtotal}], discount_percent=percent)
            assert amounts.total == amounts.subtotal - amounts.discount_amount
            assert D(0) <= amounts.discount_amount <= amounts.subtotal


class TestTicketCalculation:
    def test_face_value_and_deposit(self):
        amounts = calculate_ticket_amounts(
            passenger_prices=[300, 300],
            mc_addition=50,
            deduct_from_deposit=True,
            party=customer_snapshot("200"),
        )
        assert amounts.face_value == D("650.00")
        assert amounts.deposit_deducted == D("200.00")
        assert amounts.amount_due == D("450.00")
        assert amounts.per_person == D("325.00")

    def test_markup_is_flat(self):
        amounts = calculate_ticket_amounts(passenger_prices=[100, 100, 100], mc_addition=30)
        assert amounts.face_value == D("330.00")

    def test_none_with_vendor_accrues_cost(self):
        amounts = calculate_ticket_amounts(
            passenger_prices=[500],
            vendor_cost=400,
            use_vendor_balance="none",
            vendor=VendorSnapshot(id=1, credit_balance=D("0")),
        )
        assert amounts.vendor_accrual == D("400.00")
        assert amounts.vendor_balance_deducted == D("0")

    def test_vendor_cost_defaults_to_source_cost(self):
        amounts = calculate_ticket_amounts(
            passenger_prices=[250, 150],
            mc_addition=100,
            vendor=VendorSnapshot(id=1),
        )
        assert amounts.vendor_cost == D("400.00")
        assert amounts.vendor_accrual == D("400.00")

    def test_vendor_pool_is_capped(self):
        amounts = calculate_ticket_amounts(
            passenger_prices=[1000],
            use_vendor_balance="deposit",
            vendor=VendorSnapshot(id=1, deposit_balance=D("600")),
        )
        assert amounts.vendor_balance_deducted == D("600")
        assert amounts.vendor_accrual == D("0")

    def test_direct_from_airline_has_no_vendor_effect(self):
        amounts = calculate_ticket_amounts(passenger_prices=[700])
        assert amounts.vendor_accrual == D("0")
        assert amounts.vendor_balance_deducted == D("0")

    def test_direct_from_airline_rejects_vendor_pool(self):
        with pytest.raises(LedgerValidationError):
            calculate_ticket_amounts(passenger_prices=[700], use_vendor_balance="credit")

    def test_requires_passengers(self):
        with pytest.raises(LedgerValidationError):
            calculate_ticket_amounts(passenger_prices=[])

    def test_deposit_flag_must_be_boolean(self):
        with pytest.raises(LedgerValidationError):
            calculate_ticket_amounts(
                passenger_prices=[300],
                deduct_from_deposit="false",
                party=customer_snapshot("500"),
            )

    def test_sub_cent_prices_rejected(self):
        with pytest.raises(ValidationError):
            calculate_ticket_amounts(passenger_prices=["300.005"])
        with pytest.raises(ValidationError):
            calculate_ticket_amounts(passenger_prices=[300], mc_addition=0.125)


class TestHelpers:
    def test_capped_deduction(self):
        assert capped_deduction(D("100"), D("40")) == D("40")
        assert capped_deduction(D("40"), D("100")) == D("40")
        assert capped_deduction(D("0"), D("100")) == D("0")
        assert capped_deduction(D("-5"), D("100")) == D("0")
        assert capped_deduction(D("100"), D("0")) == D("0")

    def test_normalize_items_keeps_labels(self):
        items = normalize_items([{"amount": "10.5", "sector": " DXB-LHR ", "description": "Economy"}])
        assert items[0].amount == D("10.50")
        assert items[0].sector == "DXB-LHR"
        assert items[0].to_dict() == {"sector": "DXB-LHR", "description": "Economy", "amount": "10.50"}

    def test_party_snapshot_from_model(self, db_session, customer, agent):
        snap = PartySnapshot.from_model(customer)
        assert snap.kind == "customer"
        assert snap.deposit_balance == D("500.00")
        assert snap.credit_balance == D("0")

        snap = PartySnapshot.from_model(agent)
        assert snap.is_agent
        assert snap.credit_balance == D("1000.00")
