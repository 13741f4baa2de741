"""Initial schema: parties, invoices, tickets, ledgers, sequences, activity

Revision ID: a001_ledger
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "a001_ledger"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    ]


def _party_columns():
    return [
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=50), nullable=False, server_default=""),
        sa.Column("email", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("address", sa.Text(), nullable=False, server_default=""),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
    ]


def _ledger_columns():
    return [
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("balance_after", sa.Numeric(12, 2), nullable=False),
        sa.Column("reference_id", sa.Integer(), nullable=True),
        sa.Column("reference_type", sa.String(length=50), nullable=True),
        sa.Column("created_by", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    ]


def upgrade():
    # Parties
    op.create_table(
        "customers",
        *_party_columns(),
        sa.Column("company", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("deposit_balance", sa.Numeric(12, 2), nullable=False, server_default="0"),
        *_timestamps(),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_customers_name", "customers", ["name"], unique=False)
    op.create_index("ix_customers_is_active", "customers", ["is_active"], unique=False)
    op.create_index("ix_customers_phone", "customers", ["phone"], unique=False)

    op.create_table(
        "agents",
        *_party_columns(),
        sa.Column("company", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("credit_balance", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("deposit_balance", sa.Numeric(12, 2), nullable=False, server_default="0"),
        *_timestamps(),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_agents_name", "agents", ["name"], unique=False)
    op.create_index("ix_agents_is_active", "agents", ["is_active"], unique=False)
    op.create_index("ix_agents_phone", "agents", ["phone"], unique=False)

    op.create_table(
        "vendors",
        *_party_columns(),
        sa.Column("credit_balance", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("deposit_balance", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("airlines", sa.JSON(), nullable=False),
        *_timestamps(),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_vendors_name", "vendors", ["name"], unique=False)
    op.create_index("ix_vendors_is_active", "vendors", ["is_active"], unique=False)
    op.create_index("ix_vendors_phone", "vendors", ["phone"], unique=False)

    # Documents
    op.create_table(
        "invoices",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("invoice_number", sa.String(length=50), nullable=False),
        sa.Column("customer_type", sa.String(length=20), nullable=False, server_default="customer"),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("vendor_id", sa.Integer(), nullable=False),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("subtotal", sa.Numeric(12, 2), nullable=False),
        sa.Column("discount_percent", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("discount_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("use_customer_deposit", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deposit_used", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("use_agent_credit", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("agent_credit_used", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("use_vendor_balance", sa.String(length=20), nullable=False, server_default="none"),
        sa.Column("vendor_balance_deducted", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("vendor_cost", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total", sa.Numeric(12, 2), nullable=False),
        sa.Column("payment_method", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="issued"),
        sa.Column("paid_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=False, server_default=""),
        sa.Column("issued_by", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["vendor_id"], ["vendors.id"], name="fk_invoices_vendor_id_vendors"),
        sa.UniqueConstraint("invoice_number", name="uq_invoices_invoice_number"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_invoices_party", "invoices", ["customer_type", "customer_id"], unique=False)
    op.create_index("ix_invoices_vendor_id", "invoices", ["vendor_id"], unique=False)
    op.create_index("ix_invoices_status", "invoices", ["status"], unique=False)
    op.create_index("ix_invoices_created_at", "invoices", ["created_at"], unique=False)

    op.create_table(
        "tickets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("ticket_number", sa.String(length=50), nullable=False),
        sa.Column("customer_type", sa.String(length=20), nullable=False, server_default="customer"),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("vendor_id", sa.Integer(), nullable=True),
        sa.Column("route", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("airlines", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("travel_date", sa.String(length=20), nullable=True),
        sa.Column("passenger_name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("passenger_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("passenger_prices", sa.JSON(), nullable=False),
        sa.Column("mc_addition", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("face_value", sa.Numeric(12, 2), nullable=False),
        sa.Column("deduct_from_deposit", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deposit_deducted", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("amount_due", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("vendor_cost", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("use_vendor_balance", sa.String(length=20), nullable=False, server_default="none"),
        sa.Column("vendor_balance_deducted", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="issued"),
        sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_by", sa.String(length=255), nullable=True),
        sa.Column("issued_by", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["vendor_id"], ["vendors.id"], name="fk_tickets_vendor_id_vendors"),
        sa.UniqueConstraint("ticket_number", name="uq_tickets_ticket_number"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_tickets_party", "tickets", ["customer_type", "customer_id"], unique=False)
    op.create_index("ix_tickets_vendor_id", "tickets", ["vendor_id"], unique=False)
    op.create_index("ix_tickets_status", "tickets", ["status"], unique=False)
    op.create_index("ix_tickets_created_at", "tickets", ["created_at"], unique=False)

    # Document sequences
    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("document_type", sa.String(length=32), nullable=False),
        sa.Column("last_number", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.UniqueConstraint("document_type", name="uq_doc_sequences_type"),
        sqlite_autoincrement=True,
    )

    # Ledgers
    op.create_table(
        "deposit_transactions",
        *_ledger_columns(),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], name="fk_deposit_transactions_customer_id_customers"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_deposit_transactions_customer_id", "deposit_transactions", ["customer_id"], unique=False)
    op.create_index("ix_deposit_txns_customer_id_id", "deposit_transactions", ["customer_id", "id"], unique=False)

    op.create_table(
        "agent_transactions",
        *_ledger_columns(),
        sa.Column("agent_id", sa.Integer(), nullable=False),
        sa.Column("transaction_type", sa.String(length=20), nullable=False),
        sa.Column("payment_method", sa.String(length=20), nullable=False, server_default="cash"),
        sa.ForeignKeyConstraint(["agent_id"], ["agents.id"], name="fk_agent_transactions_agent_id_agents"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_agent_transactions_agent_id", "agent_transactions", ["agent_id"], unique=False)
    op.create_index("ix_agent_txns_agent_pool_id", "agent_transactions", ["agent_id", "transaction_type", "id"], unique=False)

    op.create_table(
        "vendor_transactions",
        *_ledger_columns(),
        sa.Column("vendor_id", sa.Integer(), nullable=False),
        sa.Column("transaction_type", sa.String(length=20), nullable=False),
        sa.Column("payment_method", sa.String(length=20), nullable=False, server_default="cash"),
        sa.ForeignKeyConstraint(["vendor_id"], ["vendors.id"], name="fk_vendor_transactions_vendor_id_vendors"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_vendor_transactions_vendor_id", "vendor_transactions", ["vendor_id"], unique=False)
    op.create_index("ix_vendor_txns_vendor_pool_id", "vendor_transactions", ["vendor_id", "transaction_type", "id"], unique=False)

    # Activity trail
    op.create_table(
        "activity_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("entity", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("entity_name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("details", sa.Text(), nullable=False, server_default=""),
        sa.Column("actor", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_activity_logs_action", "activity_logs", ["action"], unique=False)
    op.create_index("ix_activity_logs_entity", "activity_logs", ["entity", "entity_id"], unique=False)
    op.create_index("ix_activity_logs_created_at", "activity_logs", ["created_at"], unique=False)


def downgrade():
    op.drop_table("activity_logs")
    op.drop_table("vendor_transactions")
    op.drop_table("agent_transactions")
    op.drop_table("deposit_transactions")
    op.drop_table("document_sequences")
    op.drop_table("tickets")
    op.drop_table("invoices")
    op.drop_table("vendors")
    op.drop_table("agents")
    op.drop_table("customers")
