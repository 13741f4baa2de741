from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z


class PartyMixin:
    """
    Columns shared by every party that holds balances with the house.

    Balances are denormalized running totals. They change only through
    the transaction log (services/balance_service.py), which writes the
    matching balance_after row in the same DB transaction.
    """
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    phone = db.Column(db.String(50), nullable=False, default="")
    email = db.Column(db.String(255), nullable=False, default="")
    address = db.Column(db.Text, nullable=False, default="")

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def _base_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class Customer(PartyMixin, db.Model):
    """
    Walk-in / individual traveller.

    deposit_balance: money the customer pre-paid; drawn down by invoices
    and tickets.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_phone", "phone"),
        {"sqlite_autoincrement": True},
    )

    company = db.Column(db.String(255), nullable=False, default="")
    deposit_balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    party_kind = "customer"

    def to_dict(self) -> dict:
        data = self._base_dict()
        data.update({
            "party_kind": self.party_kind,
            "company": self.company,
            "deposit_balance": money_str(self.deposit_balance),
        })
        return data


class Agent(PartyMixin, db.Model):
    """
    Bulk ticket buyer (sub-agency).

    credit_balance: credit the house extends to the agent; decremented as used.
    deposit_balance: funds the agent pre-paid; same semantics as a customer deposit.
    """
    __tablename__ = "agents"
    __table_args__ = (
        db.Index("ix_agents_phone", "phone"),
        {"sqlite_autoincrement": True},
    )

    company = db.Column(db.String(255), nullable=False, default="")
    credit_balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    deposit_balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    party_kind = "agent"

    def to_dict(self) -> dict:
        data = self._base_dict()
        data.update({
            "party_kind": self.party_kind,
            "company": self.company,
            "credit_balance": money_str(self.credit_balance),
            "deposit_balance": money_str(self.deposit_balance),
        })
        return data


class Vendor(PartyMixin, db.Model):
    """
    Consolidator / supplier the house buys tickets from.

    credit_balance: credit the vendor extends to the house (what we owe).
    deposit_balance: funds the house pre-paid to the vendor.
    airlines: [{"name": "Emirates", "code": "EK"}, ...] registered with this vendor.
    """
    __tablename__ = "vendors"
    __table_args__ = (
        db.Index("ix_vendors_phone", "phone"),
        {"sqlite_autoincrement": True},
    )

    credit_balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    deposit_balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    airlines = db.Column(db.JSON, nullable=False, default=list)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    party_kind = "vendor"

    def to_dict(self) -> dict:
        data = self._base_dict()
        data.update({
            "party_kind": self.party_kind,
            "credit_balance": money_str(self.credit_balance),
            "deposit_balance": money_str(self.deposit_balance),
            "airlines": list(self.airlines or []),
        })
        return data
