# Overview: Service-layer operations for customers, agents and vendors.

"""
Party Service

WHY: Customers, agents and vendors are the parties the house holds money
with. They are created once (with optional opening balances) and their
contact details can change, but their balances only move through the
transaction log in balance_service.

DUPLICATES: A new party is rejected when another party of the same kind
has the same name (case-insensitive) or the same non-empty phone number.

OPENING BALANCES: Posted as ordinary "Opening balance" credit rows so that
replaying a party's transactions from zero reproduces its balance.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Customer, Agent, Vendor
from ..money import ZERO, money_str
from ..validation import (
    ConflictError,
    FieldPolicy,
    ValidationError,
    optional_text,
    require_amount,
    require_choice,
    require_id,
    require_text,
    validate_patch,
)
from .activity_service import append_activity
from .balance_service import (
    POOL_CREDIT,
    POOL_DEPOSIT,
    TX_CREDIT,
    PartyNotFoundError,  # noqa: F401  re-exported for callers
    get_party,
    record_agent_transaction,
    record_deposit_transaction,
    record_vendor_transaction,
)
from .concurrency import unit_of_work
from .ledger_engine import PARTY_TYPES


class DuplicatePartyError(ConflictError):
    """Raised when a party with the same name or phone already exists."""
    pass


OPENING_BALANCE = "Opening balance"

CONTACT_FIELDS = frozenset({"name", "phone", "email", "address", "is_active"})
BALANCE_FIELDS = frozenset({"deposit_balance", "credit_balance"})

CUSTOMER_POLICY = FieldPolicy(
    writable_fields=CONTACT_FIELDS | {"company"},
    protected_fields=BALANCE_FIELDS,
)
AGENT_POLICY = FieldPolicy(
    writable_fields=CONTACT_FIELDS | {"company"},
    protected_fields=BALANCE_FIELDS,
)
VENDOR_POLICY = FieldPolicy(
    writable_fields=CONTACT_FIELDS | {"airlines"},
    protected_fields=BALANCE_FIELDS,
)


# =============================================================================
# NORMALIZATION
# =============================================================================

def normalize_airlines(airlines) -> list[dict]:
    """[{"name": "Emirates", "code": "ek"}] -> [{"name": "Emirates", "code": "EK"}]"""
    if airlines is None:
        return []
    if not isinstance(airlines, (list, tuple)):
        raise ValidationError("airlines must be a list")
    normalized = []
    seen = set()
    for index, entry in enumerate(airlines, start=1):
        if isinstance(entry, str):
            entry = {"name": entry}
        if not isinstance(entry, dict):
            raise ValidationError(f"airlines[{index}] must be an object with a name")
        name = require_text(entry.get("name"), field=f"airlines[{index}].name", max_length=100)
        code = optional_text(entry.get("code"), field=f"airlines[{index}].code", max_length=3).upper()
        key = (name.lower(), code)
        if key in seen:
            continue
        seen.add(key)
        normalized.append({"name": name, "code": code})
    return normalized


def _contact_fields(values: dict) -> dict:
    cleaned = {}
    for key, value in values.items():
        if key == "name":
            cleaned[key] = require_text(value, field="name")
        elif key == "is_active":
            if not isinstance(value, bool):
                raise ValidationError("is_active must be true or false")
            cleaned[key] = value
        elif key == "airlines":
            cleaned[key] = normalize_airlines(value)
        elif key == "address":
            cleaned[key] = optional_text(value, field=key, max_length=2000)
        else:
            cleaned[key] = optional_text(value, field=key)
    return cleaned


# =============================================================================
# DUPLICATE CHECK
# =============================================================================

def find_duplicate(model, *, name: str, phone: str = "", exclude_id: int | None = None):
    """
    Existing party of this kind with the same name (case-insensitive) or phone.
    """
    conditions = [func.lower(model.name) == name.strip().lower()]
    if phone and phone.strip():
        conditions.append(model.phone == phone.strip())
    query = db.session.query(model).filter(db.or_(*conditions))
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    return query.order_by(model.id.asc()).first()


def _reject_duplicate(model, *, name: str, phone: str, exclude_id: int | None = None) -> None:
    existing = find_duplicate(model, name=name, phone=phone, exclude_id=exclude_id)
    if existing is None:
        return
    label = model.party_kind.capitalize()
    if existing.name.strip().lower() == name.strip().lower():
        raise DuplicatePartyError(f"{label} named '{existing.name}' already exists (id {existing.id})")
    raise DuplicatePartyError(f"{label} with phone '{existing.phone}' already exists (id {existing.id})")


# =============================================================================
# CREATE
# =============================================================================

def create_customer(
    *,
    name: str,
    phone: str = "",
    company: str = "",
    email: str = "",
    address: str = "",
    opening_deposit=0,
    created_by: str | None = None,
) -> Customer:
    """
    Create a customer, optionally with a pre-paid deposit.

    Raises:
        ValidationError: If a field is malformed
        DuplicatePartyError: If the name or phone is already registered
    """
    fields = _contact_fields(
        {"name": name, "phone": phone, "company": company, "email": email, "address": address}
    )
    opening_deposit = require_amount(opening_deposit, field="opening_deposit")

    with unit_of_work("create customer"):
        _reject_duplicate(Customer, name=fields["name"], phone=fields["phone"])
        customer = Customer(deposit_balance=ZERO, **fields)
        db.session.add(customer)
        db.session.flush()

        if opening_deposit > 0:
            record_deposit_transaction(
                customer=customer,
                type=TX_CREDIT,
                amount=opening_deposit,
                description=OPENING_BALANCE,
                created_by=created_by,
            )
        append_activity(
            action="create",
            entity="customer",
            entity_id=customer.id,
            entity_name=customer.name,
            details=f"Opening deposit {money_str(opening_deposit)}",
            actor=created_by,
        )

    current_app.logger.info("Created customer %s (%s)", customer.id, customer.name)
    return customer


def create_agent(
    *,
    name: str,
    phone: str = "",
    company: str = "",
    email: str = "",
    address: str = "",
    opening_credit=0,
    opening_deposit=0,
    created_by: str | None = None,
) -> Agent:
    """
    Create an agent with an optional credit line and pre-paid deposit.
    """
    fields = _contact_fields(
        {"name": name, "phone": phone, "company": company, "email": email, "address": address}
    )
    opening_credit = require_amount(opening_credit, field="opening_credit")
    opening_deposit = require_amount(opening_deposit, field="opening_deposit")

    with unit_of_work("create agent"):
        _reject_duplicate(Agent, name=fields["name"], phone=fields["phone"])
        agent = Agent(credit_balance=ZERO, deposit_balance=ZERO, **fields)
        db.session.add(agent)
        db.session.flush()

        for pool, amount in ((POOL_CREDIT, opening_credit), (POOL_DEPOSIT, opening_deposit)):
            if amount > 0:
                record_agent_transaction(
                    agent=agent,
                    type=TX_CREDIT,
                    transaction_type=pool,
                    amount=amount,
                    description=OPENING_BALANCE,
                    created_by=created_by,
                )
        append_activity(
            action="create",
            entity="agent",
            entity_id=agent.id,
            entity_name=agent.name,
            details=f"Opening credit {money_str(opening_credit)}, deposit {money_str(opening_deposit)}",
            actor=created_by,
        )

    current_app.logger.info("Created agent %s (%s)", agent.id, agent.name)
    return agent


def create_vendor(
    *,
    name: str,
    phone: str = "",
    email: str = "",
    address: str = "",
    airlines=None,
    opening_credit=0,
    opening_deposit=0,
    created_by: str | None = None,
) -> Vendor:
    """
    Create a vendor.

    opening_credit is what the house already owes the vendor; opening_deposit
    is what the house has already pre-paid.
    """
    fields = _contact_fields(
        {"name": name, "phone": phone, "email": email, "address": address, "airlines": airlines}
    )
    opening_credit = require_amount(opening_credit, field="opening_credit")
    opening_deposit = require_amount(opening_deposit, field="opening_deposit")

    with unit_of_work("create vendor"):
        _reject_duplicate(Vendor, name=fields["name"], phone=fields["phone"])
        vendor = Vendor(credit_balance=ZERO, deposit_balance=ZERO, **fields)
        db.session.add(vendor)
        db.session.flush()

        for pool, amount in ((POOL_CREDIT, opening_credit), (POOL_DEPOSIT, opening_deposit)):
            if amount > 0:
                record_vendor_transaction(
                    vendor=vendor,
                    type=TX_CREDIT,
                    transaction_type=pool,
                    amount=amount,
                    description=OPENING_BALANCE,
                    created_by=created_by,
                )
        append_activity(
            action="create",
            entity="vendor",
            entity_id=vendor.id,
            entity_name=vendor.name,
            details=f"{len(vendor.airlines)} airline(s)",
            actor=created_by,
        )

    current_app.logger.info("Created vendor %s (%s)", vendor.id, vendor.name)
    return vendor


# =============================================================================
# READ
# =============================================================================

def get_customer(customer_id: int) -> Customer:
    return get_party("customer", require_id(customer_id, field="customer_id"))


def get_agent(agent_id: int) -> Agent:
    return get_party("agent", require_id(agent_id, field="agent_id"))


def get_vendor(vendor_id: int) -> Vendor:
    return get_party("vendor", require_id(vendor_id, field="vendor_id"))


def resolve_party(customer_type: str, party_id, *, lock: bool = False):
    """
    Map an invoice/ticket party tag to its row.

    Args:
        customer_type: "customer" or "agent"
        party_id: Row id in the matching table
        lock: SELECT ... FOR UPDATE (used on the commit path)

    Raises:
        ValidationError: Unknown tag or malformed id
        PartyNotFoundError: No such row
    """
    require_choice(customer_type, PARTY_TYPES, field="customer_type")
    return get_party(customer_type, require_id(party_id, field="customer_id"), lock=lock)


def _list(model, *, search: str | None, include_inactive: bool, limit: int, offset: int):
    query = db.session.query(model)
    if not include_inactive:
        query = query.filter(model.is_active.is_(True))
    if search:
        search_term = f"%{search.strip()}%"
        columns = [model.name.ilike(search_term), model.phone.ilike(search_term)]
        if hasattr(model, "company"):
            columns.append(model.company.ilike(search_term))
        query = query.filter(db.or_(*columns))

    total = query.count()
    rows = query.order_by(model.name.asc(), model.id.asc()).offset(offset).limit(limit).all()
    return rows, total


def list_customers(*, search: str | None = None, include_inactive: bool = False, limit: int = 100, offset: int = 0):
    """Returns (customers, total count) ordered by name."""
    return _list(Customer, search=search, include_inactive=include_inactive, limit=limit, offset=offset)


def list_agents(*, search: str | None = None, include_inactive: bool = False, limit: int = 100, offset: int = 0):
    return _list(Agent, search=search, include_inactive=include_inactive, limit=limit, offset=offset)


def list_vendors(*, search: str | None = None, include_inactive: bool = False, limit: int = 100, offset: int = 0):
    return _list(Vendor, search=search, include_inactive=include_inactive, limit=limit, offset=offset)


# =============================================================================
# UPDATE
# =============================================================================

def _update(kind: str, model, policy: FieldPolicy, party_id, changes: dict, updated_by: str | None):
    party_id = require_id(party_id, field=f"{kind}_id")
    changes = _contact_fields(validate_patch(changes, policy))
    if not changes:
        raise ValidationError("No fields to update")

    with unit_of_work(f"update {kind}"):
        party = get_party(kind, party_id, lock=True)
        if "name" in changes or "phone" in changes:
            _reject_duplicate(
                model,
                name=changes.get("name", party.name),
                phone=changes.get("phone", ""),
                exclude_id=party.id,
            )
        for key, value in changes.items():
            setattr(party, key, value)
        db.session.flush()
        append_activity(
            action="update",
            entity=kind,
            entity_id=party.id,
            entity_name=party.name,
            details=", ".join(sorted(changes)),
            actor=updated_by,
        )

    current_app.logger.info("Updated %s %s: %s", kind, party_id, ", ".join(sorted(changes)))
    return party


def update_customer(customer_id: int, *, updated_by: str | None = None, **fields) -> Customer:
    """
    Update contact fields. Balance fields are refused; move money with
    balance_service.post_customer_deposit instead.
    """
    return _update("customer", Customer, CUSTOMER_POLICY, customer_id, fields, updated_by)


def update_agent(agent_id: int, *, updated_by: str | None = None, **fields) -> Agent:
    return _update("agent", Agent, AGENT_POLICY, agent_id, fields, updated_by)


def update_vendor(vendor_id: int, *, updated_by: str | None = None, **fields) -> Vendor:
    return _update("vendor", Vendor, VENDOR_POLICY, vendor_id, fields, updated_by)

