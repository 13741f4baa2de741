# Overview: Service-layer read models for the dashboard, party statements and sales reports.

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import func

from ..extensions import db
from ..models import Customer, Agent, Vendor, Invoice, Ticket
from ..money import ZERO, money_str, to_money
from ..time_utils import parse_iso_date, start_of_day, to_utc_z
from .balance_service import get_party, list_transactions, verify_ledger


class ReportError(Exception):
    """Raised when report generation fails."""
    pass


INVOICE_OPEN_STATUSES = ("issued", "partial")
INVOICE_EXCLUDED_STATUSES = ("cancelled",)
TICKET_EXCLUDED_STATUSES = ("cancelled", "refunded")


def _parse_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    """Calendar days, both inclusive; returns [start midnight, day-after-end midnight)."""
    try:
        start_day = parse_iso_date(start) if start else None
        end_day = parse_iso_date(end) if end else None
    except ValueError:
        raise ReportError("start and end must be ISO dates (YYYY-MM-DD)")
    if start_day and end_day and end_day < start_day:
        raise ReportError("end must not be before start")
    start_dt = start_of_day(start_day) if start_day else None
    end_dt = start_of_day(end_day + timedelta(days=1)) if end_day else None
    return start_dt, end_dt


def _in_range(query, column, start_dt, end_dt):
    if start_dt:
        query = query.filter(column >= start_dt)
    if end_dt:
        query = query.filter(column < end_dt)
    return query


def _sum(query) -> str:
    return money_str(to_money(query.scalar() or 0))


def get_dashboard_metrics(*, recent: int = 5) -> dict:
    """
    Headline figures for the back-office dashboard.

    total_revenue excludes cancelled invoices; pending_payments is what is still
    owed on issued and partially paid invoices.
    """
    revenue = db.session.query(func.coalesce(func.sum(Invoice.total), 0)).filter(
        Invoice.status.notin_(INVOICE_EXCLUDED_STATUSES)
    )
    pending = db.session.query(
        func.coalesce(func.sum(Invoice.total - Invoice.paid_amount), 0)
    ).filter(Invoice.status.in_(INVOICE_OPEN_STATUSES))
    unpaid_tickets = db.session.query(func.coalesce(func.sum(Ticket.amount_due), 0)).filter(
        Ticket.is_paid.is_(False),
        Ticket.status.notin_(TICKET_EXCLUDED_STATUSES),
    )

    recent_invoices = db.session.query(Invoice).order_by(Invoice.id.desc()).limit(recent).all()
    recent_tickets = db.session.query(Ticket).order_by(Ticket.id.desc()).limit(recent).all()

    return {
        "total_customers": db.session.query(Customer).count(),
        "total_agents": db.session.query(Agent).count(),
        "total_vendors": db.session.query(Vendor).count(),
        "total_invoices": db.session.query(Invoice).count(),
        "total_tickets": db.session.query(Ticket).count(),
        "total_revenue": _sum(revenue),
        "pending_payments": _sum(pending),
        "unpaid_tickets": _sum(unpaid_tickets),
        "customer_deposits_total": _sum(db.session.query(func.coalesce(func.sum(Customer.deposit_balance), 0))),
        "agent_credit_total": _sum(db.session.query(func.coalesce(func.sum(Agent.credit_balance), 0))),
        "agent_deposits_total": _sum(db.session.query(func.coalesce(func.sum(Agent.deposit_balance), 0))),
        "vendor_credits_total": _sum(db.session.query(func.coalesce(func.sum(Vendor.credit_balance), 0))),
        "vendor_deposits_total": _sum(db.session.query(func.coalesce(func.sum(Vendor.deposit_balance), 0))),
        "recent_invoices": [invoice.to_dict() for invoice in recent_invoices],
        "recent_tickets": [ticket.to_dict() for ticket in recent_tickets],
    }


def get_party_statement(kind: str, party_id: int, *, limit: int = 500) -> dict:
    """
    Balances, ledger rows (oldest first) and documents for one party, plus a
    replay check of every pool it holds.
    """
    party = get_party(kind, party_id)
    rows = list_transactions(kind, party_id, newest_first=False, limit=limit)

    if kind == "vendor":
        invoices = db.session.query(Invoice).filter(Invoice.vendor_id == party_id)
        tickets = db.session.query(Ticket).filter(Ticket.vendor_id == party_id)
    else:
        invoices = db.session.query(Invoice).filter(
            Invoice.customer_type == kind, Invoice.customer_id == party_id
        )
        tickets = db.session.query(Ticket).filter(
            Ticket.customer_type == kind, Ticket.customer_id == party_id
        )

    checks = verify_ledger(kind, party_id)
    return {
        "party": party.to_dict(),
        "transactions": [row.to_dict() for row in rows],
        "invoices": [invoice.to_dict() for invoice in invoices.order_by(Invoice.id.asc()).all()],
        "tickets": [ticket.to_dict() for ticket in tickets.order_by(Ticket.id.asc()).all()],
        "reconciliation": [check.to_dict() for check in checks],
        "is_consistent": all(check.is_consistent for check in checks),
    }


def vendor_profit_summary(*, start: str | None = None, end: str | None = None) -> dict:
    """
    Per-vendor revenue against vendor cost.

    Invoice revenue is the post-discount amount (total plus what deposits and
    agent credit covered); ticket revenue is face value.
    """
    start_dt, end_dt = _parse_range(start, end)

    invoice_query = db.session.query(
        Invoice.vendor_id.label("vendor_id"),
        func.count(Invoice.id).label("documents"),
        func.coalesce(
            func.sum(Invoice.total + Invoice.deposit_used + Invoice.agent_credit_used), 0
        ).label("revenue"),
        func.coalesce(func.sum(Invoice.vendor_cost), 0).label("cost"),
    ).filter(Invoice.status.notin_(INVOICE_EXCLUDED_STATUSES))
    invoice_query = _in_range(invoice_query, Invoice.created_at, start_dt, end_dt)

    ticket_query = db.session.query(
        Ticket.vendor_id.label("vendor_id"),
        func.count(Ticket.id).label("documents"),
        func.coalesce(func.sum(Ticket.face_value), 0).label("revenue"),
        func.coalesce(func.sum(Ticket.vendor_cost), 0).label("cost"),
    ).filter(Ticket.vendor_id.isnot(None), Ticket.status.notin_(TICKET_EXCLUDED_STATUSES))
    ticket_query = _in_range(ticket_query, Ticket.created_at, start_dt, end_dt)

    totals: dict[int, dict] = {}
    for query in (invoice_query, ticket_query):
        for row in query.group_by("vendor_id").all():
            entry = totals.setdefault(row.vendor_id, {"documents": 0, "revenue": ZERO, "cost": ZERO})
            entry["documents"] += int(row.documents or 0)
            entry["revenue"] += to_money(row.revenue or 0)
            entry["cost"] += to_money(row.cost or 0)

    names = dict(db.session.query(Vendor.id, Vendor.name).all())
    rows = []
    for vendor_id in sorted(totals, key=lambda v: (names.get(v) or "", v)):
        entry = totals[vendor_id]
        rows.append(
            {
                "vendor_id": vendor_id,
                "vendor_name": names.get(vendor_id, ""),
                "documents": entry["documents"],
                "revenue": money_str(entry["revenue"]),
                "vendor_cost": money_str(entry["cost"]),
                "profit": money_str(entry["revenue"] - entry["cost"]),
            }
        )

    return {
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
        "rows": rows,
    }


def daily_sales_report(*, start: str | None = None, end: str | None = None) -> dict:
    """Invoices and tickets issued per calendar day (UTC), cancelled documents excluded."""
    start_dt, end_dt = _parse_range(start, end)

    invoice_day = func.date(Invoice.created_at)
    invoice_query = db.session.query(
        invoice_day.label("period"),
        func.count(Invoice.id).label("count"),
        func.coalesce(func.sum(Invoice.total), 0).label("amount"),
    ).filter(Invoice.status.notin_(INVOICE_EXCLUDED_STATUSES))
    invoice_query = _in_range(invoice_query, Invoice.created_at, start_dt, end_dt)

    ticket_day = func.date(Ticket.created_at)
    ticket_query = db.session.query(
        ticket_day.label("period"),
        func.count(Ticket.id).label("count"),
        func.coalesce(func.sum(Ticket.face_value), 0).label("amount"),
    ).filter(Ticket.status.notin_(TICKET_EXCLUDED_STATUSES))
    ticket_query = _in_range(ticket_query, Ticket.created_at, start_dt, end_dt)

    periods: dict[str, dict] = {}

    def _entry(period) -> dict:
        return periods.setdefault(
            str(period),
            {"invoices": 0, "invoice_total": ZERO, "tickets": 0, "ticket_face_value": ZERO},
        )

    for row in invoice_query.group_by("period").all():
        entry = _entry(row.period)
        entry["invoices"] = int(row.count or 0)
        entry["invoice_total"] = to_money(row.amount or 0)
    for row in ticket_query.group_by("period").all():
        entry = _entry(row.period)
        entry["tickets"] = int(row.count or 0)
        entry["ticket_face_value"] = to_money(row.amount or 0)

    return {
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
        "rows": [
            {
                "period": period,
                "invoices": entry["invoices"],
                "invoice_total": money_str(entry["invoice_total"]),
                "tickets": entry["tickets"],
                "ticket_face_value": money_str(entry["ticket_face_value"]),
            }
            for period, entry in sorted(periods.items())
        ],
    }
