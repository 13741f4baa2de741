# Overview: Ticket issuing, status transitions and payment confirmation.

"""
Ticket Service

WHY: A ticket both bills a party and commits the house to a vendor. The
billing side works like an invoice deposit deduction. The vendor side
differs from invoices: when no vendor pool is selected the full vendor
cost is recorded as new credit owed to the vendor.

SIDE EFFECTS on create:
- deposit_deducted        -> DepositTransaction(debit) / AgentTransaction(debit, deposit)
- vendor pool selected    -> VendorTransaction(debit, pool) for min(pool, vendor_cost)
- "none" with a vendor    -> VendorTransaction(credit, credit) for vendor_cost
- no vendor               -> nothing (bought direct from the airline)

STATUS: issued -> used | cancelled | refunded. cancelled and refunded are
final. Status changes never move balances.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Ticket
from ..money import money_str
from ..time_utils import parse_iso_date, utcnow
from ..validation import (
    NotFoundError,
    ValidationError,
    optional_text,
    require_amount,
    require_choice,
    require_id,
    require_text,
)
from .activity_service import append_activity
from .balance_service import (
    POOL_CREDIT,
    TX_CREDIT,
    TX_DEBIT,
    get_party,
    record_party_deposit_debit,
    record_vendor_transaction,
)
from .concurrency import lock_for_update, unit_of_work
from .ledger_engine import (
    PARTY_TYPES,
    VENDOR_BALANCE_NONE,
    VENDOR_BALANCE_SOURCES,
    PartySnapshot,
    TicketAmounts,
    VendorSnapshot,
    calculate_ticket_amounts,
    require_flag,
)
from .party_service import resolve_party
from .sequence_service import DOCUMENT_TICKET, next_document_number


class TicketNotFoundError(NotFoundError):
    """Raised when a ticket is not found."""
    pass


STATUS_ISSUED = "issued"
STATUS_USED = "used"
STATUS_CANCELLED = "cancelled"
STATUS_REFUNDED = "refunded"
TICKET_STATUSES = (STATUS_ISSUED, STATUS_USED, STATUS_CANCELLED, STATUS_REFUNDED)
FINAL_STATUSES = (STATUS_CANCELLED, STATUS_REFUNDED)

# from -> allowed targets
STATUS_TRANSITIONS = {
    STATUS_ISSUED: (STATUS_USED, STATUS_CANCELLED, STATUS_REFUNDED),
    STATUS_USED: (STATUS_REFUNDED,),
    STATUS_CANCELLED: (),
    STATUS_REFUNDED: (),
}


def _optional_vendor_id(vendor_id):
    if vendor_id in (None, ""):
        return None
    return require_id(vendor_id, field="vendor_id")


def _travel_date(value):
    if value in (None, ""):
        return None
    try:
        return parse_iso_date(str(value)).isoformat()
    except ValueError:
        raise ValidationError("travel_date must be an ISO date (YYYY-MM-DD)")


def preview_ticket(
    *,
    customer_type: str,
    customer_id,
    passenger_prices,
    mc_addition=0,
    deduct_from_deposit: bool = False,
    vendor_id=None,
    vendor_cost=None,
    use_vendor_balance: str = VENDOR_BALANCE_NONE,
) -> TicketAmounts:
    """Figures a ticket would get against current balances; writes nothing."""
    require_choice(customer_type, PARTY_TYPES, field="customer_type")
    require_choice(use_vendor_balance, VENDOR_BALANCE_SOURCES, field="use_vendor_balance")
    party = resolve_party(customer_type, customer_id)
    vendor_id = _optional_vendor_id(vendor_id)
    vendor = get_party("vendor", vendor_id) if vendor_id else None
    return calculate_ticket_amounts(
        passenger_prices=passenger_prices,
        mc_addition=mc_addition,
        deduct_from_deposit=deduct_from_deposit,
        party=PartySnapshot.from_model(party),
        vendor_cost=vendor_cost,
        use_vendor_balance=use_vendor_balance,
        vendor=VendorSnapshot.from_model(vendor) if vendor else None,
    )


def create_ticket(
    *,
    customer_type: str,
    customer_id,
    passenger_name: str,
    passenger_prices,
    route: str = "",
    airlines: str = "",
    travel_date=None,
    mc_addition=0,
    deduct_from_deposit: bool = False,
    vendor_id=None,
    vendor_cost=None,
    use_vendor_balance: str = VENDOR_BALANCE_NONE,
    issued_by: str | None = None,
) -> Ticket:
    """
    Issue a ticket and apply its balance movements atomically.

    Args:
        customer_type: "customer" or "agent"
        customer_id: Party row id
        passenger_name: Lead passenger
        passenger_prices: Source price per passenger, at least one
        route / airlines / travel_date: Itinerary details
        mc_addition: Flat markup added once to the ticket
        deduct_from_deposit: Draw on the party's deposit
        vendor_id: Vendor supplying the ticket, or None for direct-from-airline
        vendor_cost: Defaults to the sum of passenger prices
        use_vendor_balance: none | credit | deposit
        issued_by: Operator name for the audit trail

    Raises:
        ValidationError: Malformed input, or a vendor pool without a vendor
        PartyNotFoundError: Party or vendor missing
        ConcurrencyConflictError: A balance changed underneath us
    """
    require_choice(customer_type, PARTY_TYPES, field="customer_type")
    require_choice(use_vendor_balance, VENDOR_BALANCE_SOURCES, field="use_vendor_balance")
    require_flag(deduct_from_deposit, field="deduct_from_deposit")
    customer_id = require_id(customer_id, field="customer_id")
    vendor_id = _optional_vendor_id(vendor_id)
    passenger_name = require_text(passenger_name, field="passenger_name")
    route = optional_text(route, field="route")
    airlines = optional_text(airlines, field="airlines")
    travel_date = _travel_date(travel_date)

    with unit_of_work("create ticket"):
        party = resolve_party(customer_type, customer_id, lock=True)
        vendor = get_party("vendor", vendor_id, lock=True) if vendor_id else None

        amounts = calculate_ticket_amounts(
            passenger_prices=passenger_prices,
            mc_addition=mc_addition,
            deduct_from_deposit=deduct_from_deposit,
            party=PartySnapshot.from_model(party),
            vendor_cost=vendor_cost,
            use_vendor_balance=use_vendor_balance,
            vendor=VendorSnapshot.from_model(vendor) if vendor else None,
        )

        ticket = Ticket(
            ticket_number=next_document_number(DOCUMENT_TICKET),
            customer_type=customer_type,
            customer_id=party.id,
            vendor_id=vendor.id if vendor else None,
            route=route,
            airlines=airlines,
            travel_date=travel_date,
            passenger_name=passenger_name,
            passenger_count=len(passenger_prices),
            passenger_prices=[money_str(require_amount(p, field="passenger_prices")) for p in passenger_prices],
            mc_addition=require_amount(mc_addition, field="mc_addition"),
            face_value=amounts.face_value,
            deduct_from_deposit=deduct_from_deposit,
            deposit_deducted=amounts.deposit_deducted,
            amount_due=amounts.amount_due,
            vendor_cost=amounts.vendor_cost,
            use_vendor_balance=use_vendor_balance,
            vendor_balance_deducted=amounts.vendor_balance_deducted,
            status=STATUS_ISSUED,
            is_paid=False,
            issued_by=issued_by,
        )
        db.session.add(ticket)
        db.session.flush()

        number = ticket.ticket_number
        if amounts.deposit_deducted > 0:
            record_party_deposit_debit(
                party,
                amounts.deposit_deducted,
                description=f"Ticket {number} - {passenger_name} - Deposit used",
                reference_id=ticket.id,
                reference_type="ticket",
                created_by=issued_by,
            )
        if amounts.vendor_balance_deducted > 0:
            record_vendor_transaction(
                vendor=vendor,
                type=TX_DEBIT,
                transaction_type=use_vendor_balance,
                amount=amounts.vendor_balance_deducted,
                description=f"Ticket {number} - {passenger_name} - {use_vendor_balance.capitalize()} used",
                reference_id=ticket.id,
                reference_type="ticket",
                created_by=issued_by,
            )
        if amounts.vendor_accrual > 0:
            record_vendor_transaction(
                vendor=vendor,
                type=TX_CREDIT,
                transaction_type=POOL_CREDIT,
                amount=amounts.vendor_accrual,
                description=f"Ticket {number} - {passenger_name} - Vendor cost (added to credit owed)",
                reference_id=ticket.id,
                reference_type="ticket",
                created_by=issued_by,
            )

        append_activity(
            action="create",
            entity="ticket",
            entity_id=ticket.id,
            entity_name=number,
            details=f"{passenger_name} {route}: face value {money_str(amounts.face_value)}",
            actor=issued_by,
        )

    current_app.logger.info(
        "Issued %s to %s %s: face value %s, deposit %s, due %s, vendor %s",
        ticket.ticket_number,
        customer_type,
        customer_id,
        money_str(amounts.face_value),
        money_str(amounts.deposit_deducted),
        money_str(amounts.amount_due),
        vendor.id if vendor else "direct",
    )
    return ticket


def get_ticket(ticket_id) -> Ticket:
    ticket = db.session.query(Ticket).filter_by(id=require_id(ticket_id, field="ticket_id")).first()
    if not ticket:
        raise TicketNotFoundError(f"Ticket {ticket_id} not found")
    return ticket


def list_tickets(
    *,
    customer_type: str | None = None,
    customer_id: int | None = None,
    vendor_id: int | None = None,
    status: str | None = None,
    is_paid: bool | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Ticket], int]:
    """Newest first; returns (tickets, total count)."""
    query = db.session.query(Ticket)
    if customer_type:
        query = query.filter(Ticket.customer_type == customer_type)
    if customer_id is not None:
        query = query.filter(Ticket.customer_id == customer_id)
    if vendor_id is not None:
        query = query.filter(Ticket.vendor_id == vendor_id)
    if status:
        require_choice(status, TICKET_STATUSES, field="status")
        query = query.filter(Ticket.status == status)
    if is_paid is not None:
        query = query.filter(Ticket.is_paid.is_(is_paid))

    total = query.count()
    query = query.order_by(Ticket.id.desc()).offset(offset).limit(limit)
    return query.all(), total


def _locked_ticket(ticket_id) -> Ticket:
    ticket = lock_for_update(
        db.session.query(Ticket).filter_by(id=require_id(ticket_id, field="ticket_id"))
    ).first()
    if not ticket:
        raise TicketNotFoundError(f"Ticket {ticket_id} not found")
    return ticket


def update_ticket_status(ticket_id, status: str, *, updated_by: str | None = None) -> Ticket:
    require_choice(status, TICKET_STATUSES, field="status")

    with unit_of_work("update ticket status"):
        ticket = _locked_ticket(ticket_id)
        previous = ticket.status
        if status not in STATUS_TRANSITIONS.get(previous, ()):
            raise ValidationError(f"Ticket {ticket.ticket_number} cannot move from {previous} to {status}")
        ticket.status = status
        db.session.flush()

        append_activity(
            action="status",
            entity="ticket",
            entity_id=ticket.id,
            entity_name=ticket.ticket_number,
            details=f"{previous} -> {status}",
            actor=updated_by,
        )

    current_app.logger.info("%s status %s -> %s", ticket.ticket_number, previous, status)
    return ticket


def mark_ticket_paid(ticket_id, *, paid_by: str) -> Ticket:
    """Confirm the customer paid amount_due. Stamps paid_at/paid_by once."""
    paid_by = require_text(paid_by, field="paid_by")

    with unit_of_work("mark ticket paid"):
        ticket = _locked_ticket(ticket_id)
        if ticket.is_paid:
            raise ValidationError(f"Ticket {ticket.ticket_number} is already marked paid")
        if ticket.status in FINAL_STATUSES:
            raise ValidationError(f"Ticket {ticket.ticket_number} is {ticket.status}")
        ticket.is_paid = True
        ticket.paid_at = utcnow()
        ticket.paid_by = paid_by
        db.session.flush()

        append_activity(
            action="payment",
            entity="ticket",
            entity_id=ticket.id,
            entity_name=ticket.ticket_number,
            details=f"Paid {money_str(ticket.amount_due)}",
            actor=paid_by,
        )

    current_app.logger.info("%s marked paid by %s", ticket.ticket_number, paid_by)
    return ticket
