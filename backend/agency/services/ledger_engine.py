# Overview: Pure amount calculation for invoices and tickets (no DB access).

"""
Ledger Engine

WHY: Invoice and ticket creation both draw money out of up to three pools
(party deposit, agent credit, vendor credit-or-deposit). The arithmetic
lives here as pure functions so the same inputs always give the same
figures, and nothing is written until the commit path in
invoice_service / ticket_service applies the result.

RULES:
- Every deduction is min(pool, residual amount owed), floored at zero.
  A zero or negative pool skips silently.
- Deductions run in a fixed order: discount, party deposit, agent credit.
- The vendor side is bookkeeping against what the house owes the vendor
  and never changes the customer-facing total.
- "none" on the vendor side means different things per flow:
    invoice -> nothing happens
    ticket  -> the vendor cost is accrued onto the vendor's credit balance
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Sequence

from ..money import ZERO, money_str, quantize
from ..validation import ValidationError, require_amount, require_choice, require_percent


PARTY_CUSTOMER = "customer"
PARTY_AGENT = "agent"
PARTY_TYPES = (PARTY_CUSTOMER, PARTY_AGENT)

VENDOR_BALANCE_NONE = "none"
VENDOR_BALANCE_CREDIT = "credit"
VENDOR_BALANCE_DEPOSIT = "deposit"
VENDOR_BALANCE_SOURCES = (VENDOR_BALANCE_NONE, VENDOR_BALANCE_CREDIT, VENDOR_BALANCE_DEPOSIT)


class LedgerValidationError(ValidationError):
    """Calculation inputs are malformed."""
    pass


# =============================================================================
# INPUT SNAPSHOTS
# =============================================================================

@dataclass(frozen=True)
class PartySnapshot:
    """
    Balances of the billed party at the instant of the request.

    kind tags the variant: a customer only has a deposit pool, an agent
    has a deposit pool and a credit line.
    """
    kind: str
    id: int | None = None
    deposit_balance: Decimal = ZERO
    credit_balance: Decimal = ZERO

    @property
    def is_agent(self) -> bool:
        return self.kind == PARTY_AGENT

    @classmethod
    def from_model(cls, party) -> "PartySnapshot":
        kind = party.party_kind
        return cls(
            kind=kind,
            id=party.id,
            deposit_balance=Decimal(party.deposit_balance or 0),
            credit_balance=Decimal(party.credit_balance or 0) if kind == PARTY_AGENT else ZERO,
        )


@dataclass(frozen=True)
class VendorSnapshot:
    id: int | None = None
    credit_balance: Decimal = ZERO
    deposit_balance: Decimal = ZERO

    def pool(self, source: str) -> Decimal:
        if source == VENDOR_BALANCE_CREDIT:
            return self.credit_balance
        if source == VENDOR_BALANCE_DEPOSIT:
            return self.deposit_balance
        return ZERO

    @classmethod
    def from_model(cls, vendor) -> "VendorSnapshot":
        return cls(
            id=vendor.id,
            credit_balance=Decimal(vendor.credit_balance or 0),
            deposit_balance=Decimal(vendor.deposit_balance or 0),
        )


@dataclass(frozen=True)
class InvoiceItem:
    amount: Decimal
    sector: str = ""
    description: str = ""

    def to_dict(self) -> dict:
        return {"sector": self.sector, "description": self.description, "amount": money_str(self.amount)}


# =============================================================================
# RESULTS
# =============================================================================

@dataclass(frozen=True)
class InvoiceAmounts:
    subtotal: Decimal
    discount_amount: Decimal
    after_discount: Decimal
    deposit_used: Decimal
    agent_credit_used: Decimal
    vendor_balance_deducted: Decimal
    total: Decimal

    def to_dict(self) -> dict:
        return {
            "subtotal": money_str(self.subtotal),
            "discount_amount": money_str(self.discount_amount),
            "deposit_used": money_str(self.deposit_used),
            "agent_credit_used": money_str(self.agent_credit_used),
            "vendor_balance_deducted": money_str(self.vendor_balance_deducted),
            "total": money_str(self.total),
        }


@dataclass(frozen=True)
class TicketAmounts:
    total_source_cost: Decimal
    face_value: Decimal
    per_person: Decimal
    deposit_deducted: Decimal
    amount_due: Decimal
    vendor_cost: Decimal
    vendor_balance_deducted: Decimal
    vendor_accrual: Decimal  # added to vendor credit when no pool is selected

    def to_dict(self) -> dict:
        return {
            "face_value": money_str(self.face_value),
            "deposit_deducted": money_str(self.deposit_deducted),
            "amount_due": money_str(self.amount_due),
            "vendor_balance_deducted": money_str(self.vendor_balance_deducted),
            "vendor_accrual": money_str(self.vendor_accrual),
            "per_person": money_str(self.per_person),
        }


# =============================================================================
# HELPERS
# =============================================================================

def capped_deduction(pool: Decimal, owed: Decimal) -> Decimal:
    """min(pool, owed), never below zero."""
    if pool <= 0 or owed <= 0:
        return ZERO
    return min(pool, owed)


def normalize_items(items: Iterable[Any] | None) -> list[InvoiceItem]:
    """
    Accept dicts ({"amount", "sector", "description"}) or InvoiceItem.
    At least one item; amounts must be >= 0 (zero is allowed).
    """
    if not items:
        raise LedgerValidationError("At least one item is required")
    normalized = []
    for index, item in enumerate(items, start=1):
        if isinstance(item, InvoiceItem):
            normalized.append(item)
            continue
        if not isinstance(item, dict):
            raise LedgerValidationError(f"Item {index} must be an object with an amount")
        if "amount" not in item:
            raise LedgerValidationError(f"Item {index} is missing an amount")
        amount = require_amount(item["amount"], field=f"items[{index}].amount")
        normalized.append(
            InvoiceItem(
                amount=amount,
                sector=str(item.get("sector") or "").strip(),
                description=str(item.get("description") or "").strip(),
            )
        )
    return normalized


def require_flag(value, *, field: str) -> bool:
    """Deduction switches must be real booleans; "false" is not False."""
    if not isinstance(value, bool):
        raise LedgerValidationError(f"{field} must be true or false")
    return value


def _require_vendor_source(value: str) -> str:
    try:
        return require_choice(value, VENDOR_BALANCE_SOURCES, field="use_vendor_balance")
    except ValidationError as exc:
        raise LedgerValidationError(str(exc))


# =============================================================================
# INVOICE
# =============================================================================

def calculate_invoice_amounts(
    *,
    items: Iterable[Any],
    discount_percent=0,
    use_customer_deposit: bool = False,
    use_agent_credit: bool = False,
    use_vendor_balance: str = VENDOR_BALANCE_NONE,
    vendor_cost=0,
    party: PartySnapshot | None = None,
    vendor: VendorSnapshot | None = None,
) -> InvoiceAmounts:
    """
    Compute invoice figures in strict order; each step feeds the next.

        subtotal        = sum(item.amount)
        discount_amount = subtotal * discount_percent / 100
        deposit_used    = min(party.deposit_balance, after_discount)   if use_customer_deposit
        agent_credit    = min(agent.credit_balance, after_deposit)     if use_agent_credit and agent
        vendor_deducted = min(vendor.<pool>, vendor_cost)              independent of total
        total           = after_agent_credit
    """
    require_flag(use_customer_deposit, field="use_customer_deposit")
    require_flag(use_agent_credit, field="use_agent_credit")
    lines = normalize_items(items)
    percent = require_percent(discount_percent, field="discount_percent")
    cost = require_amount(vendor_cost, field="vendor_cost")
    source = _require_vendor_source(use_vendor_balance)

    subtotal = sum((line.amount for line in lines), ZERO)
    discount_amount = quantize(subtotal * percent / Decimal(100))
    after_discount = subtotal - discount_amount

    deposit_used = ZERO
    if use_customer_deposit and party is not None:
        deposit_used = capped_deduction(party.deposit_balance, after_discount)
    after_deposit = after_discount - deposit_used

    agent_credit_used = ZERO
    if use_agent_credit and party is not None and party.is_agent and party.credit_balance > 0:
        agent_credit_used = capped_deduction(party.credit_balance, after_deposit)
    after_agent_credit = after_deposit - agent_credit_used

    vendor_balance_deducted = ZERO
    if source != VENDOR_BALANCE_NONE and cost > 0 and vendor is not None:
        vendor_balance_deducted = capped_deduction(vendor.pool(source), cost)

    return InvoiceAmounts(
        subtotal=subtotal,
        discount_amount=discount_amount,
        after_discount=after_discount,
        deposit_used=deposit_used,
        agent_credit_used=agent_credit_used,
        vendor_balance_deducted=vendor_balance_deducted,
        total=after_agent_credit,
    )


# =============================================================================
# TICKET
# =============================================================================

def calculate_ticket_amounts(
    *,
    passenger_prices: Sequence[Any],
    mc_addition=0,
    deduct_from_deposit: bool = False,
    party: PartySnapshot | None = None,
    vendor_cost=None,
    use_vendor_balance: str = VENDOR_BALANCE_NONE,
    vendor: VendorSnapshot | None = None,
) -> TicketAmounts:
    """
    Compute ticket figures.

        total_source_cost = sum(passenger_prices)
        face_value        = total_source_cost + mc_addition   (flat, not per passenger)
        deposit_deducted  = min(party.deposit_balance, face_value)   if deduct_from_deposit
        amount_due        = face_value - deposit_deducted

    vendor_cost defaults to total_source_cost. With a vendor pool selected
    the pool is drawn down by min(pool, vendor_cost); with "none" the whole
    vendor_cost is accrued as new credit owed to the vendor. Without a
    vendor (direct from airline) nothing happens on the vendor side.
    """
    require_flag(deduct_from_deposit, field="deduct_from_deposit")
    if not passenger_prices:
        raise LedgerValidationError("At least one passenger price is required")
    prices = [
        require_amount(price, field=f"passenger_prices[{index}]")
        for index, price in enumerate(passenger_prices, start=1)
    ]
    markup = require_amount(mc_addition, field="mc_addition")
    source = _require_vendor_source(use_vendor_balance)

    total_source_cost = sum(prices, ZERO)
    face_value = total_source_cost + markup
    per_person = quantize(face_value / Decimal(len(prices)))

    cost = total_source_cost if vendor_cost is None else require_amount(vendor_cost, field="vendor_cost")

    deposit_deducted = ZERO
    if deduct_from_deposit and party is not None:
        deposit_deducted = capped_deduction(party.deposit_balance, face_value)
    amount_due = face_value - deposit_deducted

    vendor_balance_deducted = ZERO
    vendor_accrual = ZERO
    if vendor is None:
        if source != VENDOR_BALANCE_NONE:
            raise LedgerValidationError("A vendor balance cannot be used on a direct-from-airline ticket")
    elif source == VENDOR_BALANCE_NONE:
        vendor_accrual = cost
    else:
        vendor_balance_deducted = capped_deduction(vendor.pool(source), cost)

    return TicketAmounts(
        total_source_cost=total_source_cost,
        face_value=face_value,
        per_person=per_person,
        deposit_deducted=deposit_deducted,
        amount_due=amount_due,
        vendor_cost=cost,
        vendor_balance_deducted=vendor_balance_deducted,
        vendor_accrual=vendor_accrual,
    )
