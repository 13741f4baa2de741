# Overview: Append-only transaction log for customer, agent and vendor balance pools.

"""
Balance Service

WHY: A party's balance is a denormalized running total. Every change to it
goes through record_*_transaction, which updates the pool and writes the
ledger row carrying balance_after in the same flush. Nothing else in the
codebase assigns to a balance column.

POOLS:
- Customer: deposit                -> DepositTransaction
- Agent:    credit | deposit       -> AgentTransaction(transaction_type=pool)
- Vendor:   credit | deposit       -> VendorTransaction(transaction_type=pool)

SIGN: type=credit adds to the pool, type=debit subtracts. Replaying a party's
rows in id order from zero reproduces every balance_after and the current
balance (see verify_ledger).

record_* functions flush but never commit; post_* functions are standalone
movements (top-ups, withdrawals, vendor payments) and commit their own unit
of work.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Customer, Agent, Vendor, DepositTransaction, AgentTransaction, VendorTransaction
from ..money import ZERO, money_str
from ..validation import NotFoundError, ValidationError, optional_text, require_amount, require_choice
from .activity_service import append_activity
from .concurrency import lock_for_update, unit_of_work


TX_CREDIT = "credit"
TX_DEBIT = "debit"
TX_TYPES = (TX_CREDIT, TX_DEBIT)

POOL_CREDIT = "credit"
POOL_DEPOSIT = "deposit"
POOLS = (POOL_CREDIT, POOL_DEPOSIT)

LEDGER_PAYMENT_METHODS = ("cash", "card", "cheque", "bank_transfer", "credit")

PARTY_KINDS = {
    "customer": Customer,
    "agent": Agent,
    "vendor": Vendor,
}


class PartyNotFoundError(NotFoundError):
    """Raised when a customer, agent or vendor id does not resolve."""
    pass


def _pool_field(pool: str) -> str:
    return "credit_balance" if pool == POOL_CREDIT else "deposit_balance"


def _apply(owner, balance_field: str, tx_type: str, amount: Decimal) -> Decimal:
    require_choice(tx_type, TX_TYPES, field="type")
    current = Decimal(getattr(owner, balance_field) or 0)
    new_balance = current + amount if tx_type == TX_CREDIT else current - amount
    setattr(owner, balance_field, new_balance)
    return new_balance


# =============================================================================
# IN-SESSION PRIMITIVES (no commit)
# =============================================================================

def record_deposit_transaction(
    *,
    customer: Customer,
    type: str,
    amount: Decimal,
    description: str,
    reference_id: int | None = None,
    reference_type: str | None = None,
    created_by: str | None = None,
) -> DepositTransaction:
    amount = require_amount(amount, field="amount", allow_zero=False)
    balance_after = _apply(customer, "deposit_balance", type, amount)
    row = DepositTransaction(
        customer_id=customer.id,
        type=type,
        amount=amount,
        description=description,
        balance_after=balance_after,
        reference_id=reference_id,
        reference_type=reference_type,
        created_by=created_by,
    )
    db.session.add(row)
    db.session.flush()
    return row


def record_agent_transaction(
    *,
    agent: Agent,
    type: str,
    transaction_type: str,
    amount: Decimal,
    description: str,
    payment_method: str = "cash",
    reference_id: int | None = None,
    reference_type: str | None = None,
    created_by: str | None = None,
) -> AgentTransaction:
    require_choice(transaction_type, POOLS, field="transaction_type")
    amount = require_amount(amount, field="amount", allow_zero=False)
    balance_after = _apply(agent, _pool_field(transaction_type), type, amount)
    row = AgentTransaction(
        agent_id=agent.id,
        type=type,
        transaction_type=transaction_type,
        amount=amount,
        description=description,
        payment_method=payment_method,
        balance_after=balance_after,
        reference_id=reference_id,
        reference_type=reference_type,
        created_by=created_by,
    )
    db.session.add(row)
    db.session.flush()
    return row


def record_vendor_transaction(
    *,
    vendor: Vendor,
    type: str,
    transaction_type: str,
    amount: Decimal,
    description: str,
    payment_method: str = "cash",
    reference_id: int | None = None,
    reference_type: str | None = None,
    created_by: str | None = None,
) -> VendorTransaction:
    require_choice(transaction_type, POOLS, field="transaction_type")
    amount = require_amount(amount, field="amount", allow_zero=False)
    balance_after = _apply(vendor, _pool_field(transaction_type), type, amount)
    row = VendorTransaction(
        vendor_id=vendor.id,
        type=type,
        transaction_type=transaction_type,
        amount=amount,
        description=description,
        payment_method=payment_method,
        balance_after=balance_after,
        reference_id=reference_id,
        reference_type=reference_type,
        created_by=created_by,
    )
    db.session.add(row)
    db.session.flush()
    return row


def record_party_deposit_debit(
    party,
    amount: Decimal,
    *,
    description: str,
    reference_id: int,
    reference_type: str,
    created_by: str | None = None,
):
    """Draw on a customer's or an agent's deposit pool, whichever the party is."""
    if party.party_kind == "agent":
        return record_agent_transaction(
            agent=party,
            type=TX_DEBIT,
            transaction_type=POOL_DEPOSIT,
            amount=amount,
            description=description,
            reference_id=reference_id,
            reference_type=reference_type,
            created_by=created_by,
        )
    return record_deposit_transaction(
        customer=party,
        type=TX_DEBIT,
        amount=amount,
        description=description,
        reference_id=reference_id,
        reference_type=reference_type,
        created_by=created_by,
    )


# =============================================================================
# LOOKUPS
# =============================================================================

def get_party(kind: str, party_id: int, *, lock: bool = False):
    model = PARTY_KINDS.get(kind)
    if model is None:
        raise ValidationError(f"party kind must be one of: {', '.join(PARTY_KINDS)}")
    query = db.session.query(model).filter_by(id=party_id)
    if lock:
        query = lock_for_update(query)
    party = query.first()
    if party is None:
        raise PartyNotFoundError(f"{kind.capitalize()} {party_id} not found")
    return party


def _ledger_query(kind: str, party_id: int, pool: str | None = None):
    if kind == "customer":
        return db.session.query(DepositTransaction).filter(DepositTransaction.customer_id == party_id)
    if kind == "agent":
        query = db.session.query(AgentTransaction).filter(AgentTransaction.agent_id == party_id)
        if pool:
            query = query.filter(AgentTransaction.transaction_type == pool)
        return query
    if kind == "vendor":
        query = db.session.query(VendorTransaction).filter(VendorTransaction.vendor_id == party_id)
        if pool:
            query = query.filter(VendorTransaction.transaction_type == pool)
        return query
    raise ValidationError(f"party kind must be one of: {', '.join(PARTY_KINDS)}")


def list_transactions(
    kind: str,
    party_id: int | None = None,
    *,
    pool: str | None = None,
    newest_first: bool = True,
    limit: int | None = None,
):
    """Ledger rows for one party (or all parties of a kind when party_id is None)."""
    if party_id is None:
        model = {"customer": DepositTransaction, "agent": AgentTransaction, "vendor": VendorTransaction}.get(kind)
        if model is None:
            raise ValidationError(f"party kind must be one of: {', '.join(PARTY_KINDS)}")
        query = db.session.query(model)
        if pool and kind != "customer":
            query = query.filter(model.transaction_type == pool)
    else:
        query = _ledger_query(kind, party_id, pool)
        model = query.column_descriptions[0]["entity"]
    query = query.order_by(model.id.desc() if newest_first else model.id.asc())
    if limit:
        query = query.limit(limit)
    return query.all()


# =============================================================================
# STANDALONE MOVEMENTS (commit)
# =============================================================================

def _standalone(kind: str, party_id: int, pool: str, type: str, amount, description, payment_method, created_by):
    require_choice(type, TX_TYPES, field="type")
    require_choice(pool, POOLS, field="transaction_type")
    require_choice(payment_method, LEDGER_PAYMENT_METHODS, field="payment_method")
    amount = require_amount(amount, field="amount", allow_zero=False)
    description = optional_text(description, field="description", max_length=1000)
    if not description:
        description = f"{'Top-up' if type == TX_CREDIT else 'Withdrawal'} ({pool})"

    with unit_of_work(f"{kind} {pool} {type}"):
        party = get_party(kind, party_id, lock=True)
        if kind == "customer" and pool != POOL_DEPOSIT:
            raise ValidationError("Customers only hold a deposit balance")
        available = Decimal(getattr(party, _pool_field(pool)) or 0)
        if type == TX_DEBIT and amount > available:
            raise ValidationError(
                f"Debit {money_str(amount)} exceeds the {pool} balance of {money_str(available)}"
            )

        if kind == "customer":
            row = record_deposit_transaction(
                customer=party, type=type, amount=amount,
                description=description, created_by=created_by,
            )
        elif kind == "agent":
            row = record_agent_transaction(
                agent=party, type=type, transaction_type=pool, amount=amount,
                description=description, payment_method=payment_method, created_by=created_by,
            )
        else:
            row = record_vendor_transaction(
                vendor=party, type=type, transaction_type=pool, amount=amount,
                description=description, payment_method=payment_method, created_by=created_by,
            )
        append_activity(
            action="deposit",
            entity=kind,
            entity_id=party.id,
            entity_name=party.name,
            details=f"{type} {money_str(amount)} {pool}: {description}",
            actor=created_by,
        )

    current_app.logger.info(
        "%s %s %s pool %s %s -> balance %s",
        kind, party_id, pool, type, money_str(amount), money_str(row.balance_after),
    )
    return row


def post_customer_deposit(
    customer_id: int,
    *,
    type: str,
    amount,
    description: str = "",
    payment_method: str = "cash",
    created_by: str | None = None,
) -> DepositTransaction:
    """Customer top-up (credit) or refund/withdrawal (debit)."""
    return _standalone("customer", customer_id, POOL_DEPOSIT, type, amount, description, payment_method, created_by)


def post_agent_transaction(
    agent_id: int,
    *,
    type: str,
    transaction_type: str,
    amount,
    description: str = "",
    payment_method: str = "cash",
    created_by: str | None = None,
) -> AgentTransaction:
    """Extend/settle agent credit or take/return an agent deposit."""
    return _standalone("agent", agent_id, transaction_type, type, amount, description, payment_method, created_by)


def post_vendor_transaction(
    vendor_id: int,
    *,
    type: str,
    transaction_type: str,
    amount,
    description: str = "",
    payment_method: str = "cash",
    created_by: str | None = None,
) -> VendorTransaction:
    """Record vendor credit received/settled, or a deposit paid to/used at the vendor."""
    return _standalone("vendor", vendor_id, transaction_type, type, amount, description, payment_method, created_by)


# =============================================================================
# RECONCILIATION
# =============================================================================

@dataclass
class LedgerCheck:
    kind: str
    party_id: int
    pool: str
    current_balance: Decimal
    replayed_balance: Decimal = ZERO
    row_count: int = 0
    mismatched_row_ids: list[int] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.mismatched_row_ids and self.replayed_balance == self.current_balance

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "party_id": self.party_id,
            "pool": self.pool,
            "current_balance": money_str(self.current_balance),
            "replayed_balance": money_str(self.replayed_balance),
            "row_count": self.row_count,
            "mismatched_row_ids": list(self.mismatched_row_ids),
            "is_consistent": self.is_consistent,
        }


def replay(rows, opening: Decimal = ZERO) -> tuple[Decimal, list[int]]:
    """
    Walk rows in creation order; return (final balance, ids whose recorded
    balance_after disagrees with opening + running signed sum).
    """
    running = Decimal(opening)
    mismatched = []
    for row in rows:
        running += row.signed_amount
        if Decimal(row.balance_after) != running:
            mismatched.append(row.id)
    return running, mismatched


def verify_ledger(kind: str, party_id: int) -> list[LedgerCheck]:
    """One LedgerCheck per pool the party holds."""
    party = get_party(kind, party_id)
    pools = [POOL_DEPOSIT] if kind == "customer" else [POOL_CREDIT, POOL_DEPOSIT]
    checks = []
    for pool in pools:
        rows = _ledger_query(kind, party_id, None if kind == "customer" else pool)
        model = rows.column_descriptions[0]["entity"]
        rows = rows.order_by(model.id.asc()).all()
        final, mismatched = replay(rows)
        checks.append(
            LedgerCheck(
                kind=kind,
                party_id=party_id,
                pool=pool,
                current_balance=Decimal(getattr(party, _pool_field(pool)) or 0),
                replayed_balance=final,
                row_count=len(rows),
                mismatched_row_ids=mismatched,
            )
        )
    return checks


def verify_all_ledgers(kind: str | None = None) -> list[LedgerCheck]:
    """Replay every party of every kind, or only parties of `kind`."""
    kinds = [require_choice(kind, tuple(PARTY_KINDS), field="kind")] if kind else list(PARTY_KINDS)
    checks = []
    for party_kind in kinds:
        model = PARTY_KINDS[party_kind]
        for (party_id,) in db.session.query(model.id).order_by(model.id.asc()).all():
            checks.extend(verify_ledger(party_kind, party_id))
    return checks
