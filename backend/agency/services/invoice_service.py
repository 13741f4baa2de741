# Overview: Invoice issuing, payment recording and status changes.

"""
Invoice Service

WHY: Issuing an invoice is the point where money moves between pools.
create_invoice reads the party and vendor under lock, computes the figures
with ledger_engine.calculate_invoice_amounts, and writes the invoice, every
balance change and every ledger row in one commit. A failure anywhere
leaves all of them untouched.

SIDE EFFECTS on create (each only when the deduction is > 0):
- deposit_used            -> DepositTransaction(debit) for a customer,
                             AgentTransaction(debit, deposit) for an agent
- agent_credit_used       -> AgentTransaction(debit, credit)
- vendor_balance_deducted -> VendorTransaction(debit, use_vendor_balance)
use_vendor_balance="none" leaves the vendor untouched.

LIFECYCLE: issued -> partial -> paid; issued/partial -> cancelled. An invoice
fully covered by deposit or agent credit is issued straight as paid.
Financial fields are fixed at creation; cancelling does not reverse any
balance movement.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Invoice
from ..money import ZERO, money_str
from ..validation import (
    NotFoundError,
    ValidationError,
    optional_text,
    require_amount,
    require_choice,
    require_id,
)
from .activity_service import append_activity
from .balance_service import (
    POOL_CREDIT,
    TX_DEBIT,
    get_party,
    record_agent_transaction,
    record_party_deposit_debit,
    record_vendor_transaction,
)
from .concurrency import lock_for_update, unit_of_work
from .ledger_engine import (
    PARTY_TYPES,
    VENDOR_BALANCE_NONE,
    VENDOR_BALANCE_SOURCES,
    InvoiceAmounts,
    PartySnapshot,
    VendorSnapshot,
    calculate_invoice_amounts,
    normalize_items,
    require_flag,
)
from .party_service import resolve_party
from .sequence_service import DOCUMENT_INVOICE, next_document_number


class InvoiceNotFoundError(NotFoundError):
    """Raised when an invoice is not found."""
    pass


PAYMENT_METHODS = ("cash", "card", "credit")

STATUS_ISSUED = "issued"
STATUS_PARTIAL = "partial"
STATUS_PAID = "paid"
STATUS_CANCELLED = "cancelled"
INVOICE_STATUSES = (STATUS_ISSUED, STATUS_PARTIAL, STATUS_PAID, STATUS_CANCELLED)
OPEN_STATUSES = (STATUS_ISSUED, STATUS_PARTIAL)


def _validated_flags(customer_type, use_customer_deposit, use_agent_credit, use_vendor_balance, payment_method):
    require_choice(customer_type, PARTY_TYPES, field="customer_type")
    require_choice(use_vendor_balance, VENDOR_BALANCE_SOURCES, field="use_vendor_balance")
    require_choice(payment_method, PAYMENT_METHODS, field="payment_method")
    require_flag(use_customer_deposit, field="use_customer_deposit")
    require_flag(use_agent_credit, field="use_agent_credit")


def preview_invoice(
    *,
    customer_type: str,
    customer_id,
    vendor_id,
    items,
    discount_percent=0,
    use_customer_deposit: bool = False,
    use_agent_credit: bool = False,
    use_vendor_balance: str = VENDOR_BALANCE_NONE,
    vendor_cost=0,
    payment_method: str = "cash",
) -> InvoiceAmounts:
    """
    Figures an invoice would get right now, without writing anything.

    The committed figures may differ if a balance moves before create_invoice.
    """
    _validated_flags(customer_type, use_customer_deposit, use_agent_credit, use_vendor_balance, payment_method)
    party = resolve_party(customer_type, customer_id)
    vendor = get_party("vendor", require_id(vendor_id, field="vendor_id"))
    return calculate_invoice_amounts(
        items=items,
        discount_percent=discount_percent,
        use_customer_deposit=use_customer_deposit,
        use_agent_credit=use_agent_credit,
        use_vendor_balance=use_vendor_balance,
        vendor_cost=vendor_cost,
        party=PartySnapshot.from_model(party),
        vendor=VendorSnapshot.from_model(vendor),
    )


def create_invoice(
    *,
    customer_type: str,
    customer_id,
    vendor_id,
    items,
    discount_percent=0,
    payment_method: str = "cash",
    use_customer_deposit: bool = False,
    use_agent_credit: bool = False,
    use_vendor_balance: str = VENDOR_BALANCE_NONE,
    vendor_cost=0,
    notes: str = "",
    issued_by: str | None = None,
) -> Invoice:
    """
    Issue an invoice and apply its balance movements atomically.

    Args:
        customer_type: "customer" or "agent"
        customer_id: Party row id
        vendor_id: Vendor the services were bought from (required)
        items: [{"sector", "description", "amount"}, ...], at least one
        discount_percent: 0-100
        payment_method: cash | card | credit
        use_customer_deposit: Draw on the party's deposit
        use_agent_credit: Draw on the agent's credit line (agents only)
        use_vendor_balance: none | credit | deposit
        vendor_cost: What the house pays the vendor for this invoice
        notes: Free text
        issued_by: Operator name for the audit trail

    Returns:
        The committed Invoice

    Raises:
        ValidationError: Malformed input (nothing written)
        PartyNotFoundError: Party or vendor missing (nothing written)
        ConcurrencyConflictError: A balance changed underneath us (nothing written)
    """
    _validated_flags(customer_type, use_customer_deposit, use_agent_credit, use_vendor_balance, payment_method)
    customer_id = require_id(customer_id, field="customer_id")
    vendor_id = require_id(vendor_id, field="vendor_id")
    lines = normalize_items(items)
    notes = optional_text(notes, field="notes", max_length=5000)

    with unit_of_work("create invoice"):
        party = resolve_party(customer_type, customer_id, lock=True)
        vendor = get_party("vendor", vendor_id, lock=True)

        amounts = calculate_invoice_amounts(
            items=lines,
            discount_percent=discount_percent,
            use_customer_deposit=use_customer_deposit,
            use_agent_credit=use_agent_credit,
            use_vendor_balance=use_vendor_balance,
            vendor_cost=vendor_cost,
            party=PartySnapshot.from_model(party),
            vendor=VendorSnapshot.from_model(vendor),
        )

        invoice = Invoice(
            invoice_number=next_document_number(DOCUMENT_INVOICE),
            customer_type=customer_type,
            customer_id=party.id,
            vendor_id=vendor.id,
            items=[line.to_dict() for line in lines],
            subtotal=amounts.subtotal,
            discount_percent=require_amount(discount_percent, field="discount_percent"),
            discount_amount=amounts.discount_amount,
            use_customer_deposit=use_customer_deposit,
            deposit_used=amounts.deposit_used,
            use_agent_credit=use_agent_credit,
            agent_credit_used=amounts.agent_credit_used,
            use_vendor_balance=use_vendor_balance,
            vendor_balance_deducted=amounts.vendor_balance_deducted,
            vendor_cost=require_amount(vendor_cost, field="vendor_cost"),
            total=amounts.total,
            payment_method=payment_method,
            status=STATUS_PAID if amounts.total == 0 else STATUS_ISSUED,
            paid_amount=ZERO,
            notes=notes,
            issued_by=issued_by,
        )
        db.session.add(invoice)
        db.session.flush()

        number = invoice.invoice_number
        if amounts.deposit_used > 0:
            record_party_deposit_debit(
                party,
                amounts.deposit_used,
                description=f"Invoice {number} - Deposit used for payment",
                reference_id=invoice.id,
                reference_type="invoice",
                created_by=issued_by,
            )
        if amounts.agent_credit_used > 0:
            record_agent_transaction(
                agent=party,
                type=TX_DEBIT,
                transaction_type=POOL_CREDIT,
                amount=amounts.agent_credit_used,
                description=f"Invoice {number} - Credit used for payment",
                payment_method=payment_method,
                reference_id=invoice.id,
                reference_type="invoice",
                created_by=issued_by,
            )
        if amounts.vendor_balance_deducted > 0:
            record_vendor_transaction(
                vendor=vendor,
                type=TX_DEBIT,
                transaction_type=use_vendor_balance,
                amount=amounts.vendor_balance_deducted,
                description=f"Invoice {number} - {use_vendor_balance.capitalize()} used for vendor payment",
                reference_id=invoice.id,
                reference_type="invoice",
                created_by=issued_by,
            )

        append_activity(
            action="create",
            entity="invoice",
            entity_id=invoice.id,
            entity_name=number,
            details=f"{party.name}: total {money_str(amounts.total)}",
            actor=issued_by,
        )

    current_app.logger.info(
        "Issued %s to %s %s: subtotal %s, deposit %s, agent credit %s, vendor %s %s, total %s",
        invoice.invoice_number,
        customer_type,
        customer_id,
        money_str(amounts.subtotal),
        money_str(amounts.deposit_used),
        money_str(amounts.agent_credit_used),
        use_vendor_balance,
        money_str(amounts.vendor_balance_deducted),
        money_str(amounts.total),
    )
    return invoice


def get_invoice(invoice_id) -> Invoice:
    invoice = db.session.query(Invoice).filter_by(id=require_id(invoice_id, field="invoice_id")).first()
    if not invoice:
        raise InvoiceNotFoundError(f"Invoice {invoice_id} not found")
    return invoice


def get_invoice_by_number(invoice_number: str) -> Invoice:
    invoice = db.session.query(Invoice).filter_by(invoice_number=invoice_number).first()
    if not invoice:
        raise InvoiceNotFoundError(f"Invoice {invoice_number} not found")
    return invoice


def list_invoices(
    *,
    customer_type: str | None = None,
    customer_id: int | None = None,
    vendor_id: int | None = None,
    status: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Invoice], int]:
    """
    List invoices newest first.

    Returns:
        Tuple of (list of Invoice objects, total count)
    """
    query = db.session.query(Invoice)
    if customer_type:
        query = query.filter(Invoice.customer_type == customer_type)
    if customer_id is not None:
        query = query.filter(Invoice.customer_id == customer_id)
    if vendor_id is not None:
        query = query.filter(Invoice.vendor_id == vendor_id)
    if status:
        require_choice(status, INVOICE_STATUSES, field="status")
        query = query.filter(Invoice.status == status)

    total = query.count()
    query = query.order_by(Invoice.id.desc()).offset(offset).limit(limit)
    return query.all(), total


def record_invoice_payment(invoice_id, amount, *, received_by: str | None = None) -> Invoice:
    """
    Record money received against an open invoice.

    Moves status to partial or paid. Overpayment is refused.
    """
    amount = require_amount(amount, field="amount", allow_zero=False)

    with unit_of_work("record invoice payment"):
        invoice = lock_for_update(
            db.session.query(Invoice).filter_by(id=require_id(invoice_id, field="invoice_id"))
        ).first()
        if not invoice:
            raise InvoiceNotFoundError(f"Invoice {invoice_id} not found")
        if invoice.status not in OPEN_STATUSES:
            raise ValidationError(f"Invoice {invoice.invoice_number} is {invoice.status}; payments are closed")

        outstanding = Decimal(invoice.total) - Decimal(invoice.paid_amount)
        if amount > outstanding:
            raise ValidationError(
                f"Payment {money_str(amount)} exceeds the outstanding {money_str(outstanding)}"
            )

        invoice.paid_amount = Decimal(invoice.paid_amount) + amount
        invoice.status = STATUS_PAID if amount == outstanding else STATUS_PARTIAL
        db.session.flush()

        append_activity(
            action="payment",
            entity="invoice",
            entity_id=invoice.id,
            entity_name=invoice.invoice_number,
            details=f"Received {money_str(amount)}; status {invoice.status}",
            actor=received_by,
        )

    current_app.logger.info(
        "Payment %s on %s, status %s", money_str(amount), invoice.invoice_number, invoice.status
    )
    return invoice


def cancel_invoice(invoice_id, *, cancelled_by: str | None = None, reason: str = "") -> Invoice:
    """
    Mark an unpaid invoice cancelled. Balance movements made at issue time stay
    in the ledger; reverse them with explicit balance_service postings if needed.
    """
    reason = optional_text(reason, field="reason", max_length=1000)

    with unit_of_work("cancel invoice"):
        invoice = lock_for_update(
            db.session.query(Invoice).filter_by(id=require_id(invoice_id, field="invoice_id"))
        ).first()
        if not invoice:
            raise InvoiceNotFoundError(f"Invoice {invoice_id} not found")
        if invoice.status == STATUS_CANCELLED:
            raise ValidationError(f"Invoice {invoice.invoice_number} is already cancelled")
        if invoice.status == STATUS_PAID:
            raise ValidationError(f"Invoice {invoice.invoice_number} is paid and cannot be cancelled")

        invoice.status = STATUS_CANCELLED
        db.session.flush()

        append_activity(
            action="status",
            entity="invoice",
            entity_id=invoice.id,
            entity_name=invoice.invoice_number,
            details=f"cancelled{': ' + reason if reason else ''}",
            actor=cancelled_by,
        )

    current_app.logger.info("Cancelled %s", invoice.invoice_number)
    return invoice
