from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z


class LedgerRowMixin:
    """
    Append-only balance movement.

    IMMUTABLE: Rows are never updated or deleted. balance_after is the
    materialized running total of the pool right after this row, written
    once in the same DB transaction as the balance change.

    type: credit (pool grows) | debit (pool shrinks)
    reference_type/reference_id: the invoice or ticket that caused it, if any.
    """
    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(20), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    description = db.Column(db.Text, nullable=False)
    balance_after = db.Column(db.Numeric(12, 2), nullable=False)
    reference_id = db.Column(db.Integer, nullable=True)
    reference_type = db.Column(db.String(50), nullable=True)
    created_by = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def signed_amount(self):
        return self.amount if self.type == "credit" else -self.amount

    def _base_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "amount": money_str(self.amount),
            "description": self.description,
            "balance_after": money_str(self.balance_after),
            "reference_id": self.reference_id,
            "reference_type": self.reference_type,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


class DepositTransaction(LedgerRowMixin, db.Model):
    """Customer deposit pool movements."""
    __tablename__ = "deposit_transactions"
    __table_args__ = (
        db.Index("ix_deposit_txns_customer_id_id", "customer_id", "id"),
        {"sqlite_autoincrement": True},
    )

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    customer = db.relationship("Customer", backref=db.backref("deposit_transactions", lazy=True))

    def to_dict(self) -> dict:
        data = self._base_dict()
        data["customer_id"] = self.customer_id
        return data


class AgentTransaction(LedgerRowMixin, db.Model):
    """
    Agent pool movements.

    transaction_type selects the pool: credit (house credit line) or deposit.
    """
    __tablename__ = "agent_transactions"
    __table_args__ = (
        db.Index("ix_agent_txns_agent_pool_id", "agent_id", "transaction_type", "id"),
        {"sqlite_autoincrement": True},
    )

    agent_id = db.Column(db.Integer, db.ForeignKey("agents.id"), nullable=False, index=True)
    transaction_type = db.Column(db.String(20), nullable=False)
    payment_method = db.Column(db.String(20), nullable=False, default="cash")

    agent = db.relationship("Agent", backref=db.backref("transactions", lazy=True))

    def to_dict(self) -> dict:
        data = self._base_dict()
        data.update({
            "agent_id": self.agent_id,
            "transaction_type": self.transaction_type,
            "payment_method": self.payment_method,
        })
        return data


class VendorTransaction(LedgerRowMixin, db.Model):
    """
    Vendor pool movements.

    transaction_type selects the pool: credit (what the house owes the
    vendor) or deposit (what the house pre-paid the vendor).
    """
    __tablename__ = "vendor_transactions"
    __table_args__ = (
        db.Index("ix_vendor_txns_vendor_pool_id", "vendor_id", "transaction_type", "id"),
        {"sqlite_autoincrement": True},
    )

    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=False, index=True)
    transaction_type = db.Column(db.String(20), nullable=False)
    payment_method = db.Column(db.String(20), nullable=False, default="cash")

    vendor = db.relationship("Vendor", backref=db.backref("transactions", lazy=True))

    def to_dict(self) -> dict:
        data = self._base_dict()
        data.update({
            "vendor_id": self.vendor_id,
            "transaction_type": self.transaction_type,
            "payment_method": self.payment_method,
        })
        return data
