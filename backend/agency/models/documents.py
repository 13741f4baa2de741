from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z


class Invoice(db.Model):
    """
    Invoice issued to a customer or an agent.

    IMMUTABLE FINANCIALS: subtotal through total are computed once at
    creation (services/ledger_engine.py) and never updated. Only status,
    paid_amount and notes move afterwards.

    customer_type tags which party table customer_id points into.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.Index("ix_invoices_party", "customer_type", "customer_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(50), nullable=False, unique=True)

    customer_type = db.Column(db.String(20), nullable=False, default="customer")
    customer_id = db.Column(db.Integer, nullable=False)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=False, index=True)

    # [{"sector": "DXB-LHR", "description": "...", "amount": "1000.00"}]
    items = db.Column(db.JSON, nullable=False, default=list)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    discount_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    use_customer_deposit = db.Column(db.Boolean, nullable=False, default=False)
    deposit_used = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    use_agent_credit = db.Column(db.Boolean, nullable=False, default=False)
    agent_credit_used = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    use_vendor_balance = db.Column(db.String(20), nullable=False, default="none")
    vendor_balance_deducted = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    vendor_cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    total = db.Column(db.Numeric(12, 2), nullable=False)
    payment_method = db.Column(db.String(20), nullable=False)

    status = db.Column(db.String(20), nullable=False, default="issued", index=True)
    paid_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    notes = db.Column(db.Text, nullable=False, default="")
    issued_by = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    vendor = db.relationship("Vendor", backref=db.backref("invoices", lazy=True))

    @property
    def balance_due(self):
        return self.total - self.paid_amount

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "customer_type": self.customer_type,
            "customer_id": self.customer_id,
            "vendor_id": self.vendor_id,
            "items": list(self.items or []),
            "subtotal": money_str(self.subtotal),
            "discount_percent": money_str(self.discount_percent),
            "discount_amount": money_str(self.discount_amount),
            "use_customer_deposit": self.use_customer_deposit,
            "deposit_used": money_str(self.deposit_used),
            "use_agent_credit": self.use_agent_credit,
            "agent_credit_used": money_str(self.agent_credit_used),
            "use_vendor_balance": self.use_vendor_balance,
            "vendor_balance_deducted": money_str(self.vendor_balance_deducted),
            "vendor_cost": money_str(self.vendor_cost),
            "total": money_str(self.total),
            "payment_method": self.payment_method,
            "status": self.status,
            "paid_amount": money_str(self.paid_amount),
            "balance_due": money_str(self.balance_due),
            "notes": self.notes,
            "issued_by": self.issued_by,
            "created_at": to_utc_z(self.created_at),
        }


class Ticket(db.Model):
    """
    Air ticket booking.

    vendor_id NULL means the ticket was bought direct from the airline,
    so no vendor balance is touched.

    face_value = sum(passenger_prices) + mc_addition (flat markup, not per head).
    """
    __tablename__ = "tickets"
    __table_args__ = (
        db.Index("ix_tickets_party", "customer_type", "customer_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    ticket_number = db.Column(db.String(50), nullable=False, unique=True)

    customer_type = db.Column(db.String(20), nullable=False, default="customer")
    customer_id = db.Column(db.Integer, nullable=False)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=True, index=True)

    route = db.Column(db.String(255), nullable=False, default="")
    airlines = db.Column(db.String(255), nullable=False, default="")
    travel_date = db.Column(db.String(20), nullable=True)
    passenger_name = db.Column(db.String(255), nullable=False, default="")
    passenger_count = db.Column(db.Integer, nullable=False, default=1)
    passenger_prices = db.Column(db.JSON, nullable=False, default=list)

    mc_addition = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    face_value = db.Column(db.Numeric(12, 2), nullable=False)

    deduct_from_deposit = db.Column(db.Boolean, nullable=False, default=False)
    deposit_deducted = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    amount_due = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    vendor_cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    use_vendor_balance = db.Column(db.String(20), nullable=False, default="none")
    vendor_balance_deducted = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    status = db.Column(db.String(20), nullable=False, default="issued", index=True)
    is_paid = db.Column(db.Boolean, nullable=False, default=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_by = db.Column(db.String(255), nullable=True)

    issued_by = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    vendor = db.relationship("Vendor", backref=db.backref("tickets", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ticket_number": self.ticket_number,
            "customer_type": self.customer_type,
            "customer_id": self.customer_id,
            "vendor_id": self.vendor_id,
            "route": self.route,
            "airlines": self.airlines,
            "travel_date": self.travel_date,
            "passenger_name": self.passenger_name,
            "passenger_count": self.passenger_count,
            "passenger_prices": list(self.passenger_prices or []),
            "mc_addition": money_str(self.mc_addition),
            "face_value": money_str(self.face_value),
            "deduct_from_deposit": self.deduct_from_deposit,
            "deposit_deducted": money_str(self.deposit_deducted),
            "amount_due": money_str(self.amount_due),
            "vendor_cost": money_str(self.vendor_cost),
            "use_vendor_balance": self.use_vendor_balance,
            "vendor_balance_deducted": money_str(self.vendor_balance_deducted),
            "status": self.status,
            "is_paid": self.is_paid,
            "paid_at": to_utc_z(self.paid_at),
            "paid_by": self.paid_by,
            "issued_by": self.issued_by,
            "created_at": to_utc_z(self.created_at),
        }


class DocumentSequence(db.Model):
    """
    Atomic per-type document counters (INVOICE, TICKET).

    WHY: In-process counters collide once more than one worker issues
    numbers. last_number is bumped with a single UPDATE inside the same
    transaction that inserts the document.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", name="uq_doc_sequences_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False)
    last_number = db.Column(db.Integer, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "last_number": self.last_number,
            "updated_at": to_utc_z(self.updated_at),
        }
