# Overview: Append-only activity trail for back-office actions.

"""
Activity Log Invariants

- Append-only: no update or delete path exists.
- No business logic; callers describe what they just did.
- Written inside the same DB transaction as the change it records
  (flush only, the caller's unit of work commits).
"""

from __future__ import annotations

from ..extensions import db
from ..models import ActivityLog


ACTIVITY_ACTIONS = ("create", "update", "payment", "status", "deposit")
ACTIVITY_ENTITIES = ("invoice", "ticket", "customer", "agent", "vendor", "deposit")


def append_activity(
    *,
    action: str,
    entity: str,
    entity_id: int,
    entity_name: str = "",
    details: str = "",
    actor: str | None = None,
) -> ActivityLog:
    if action not in ACTIVITY_ACTIONS:
        raise ValueError(f"Unknown activity action {action!r}")
    if entity not in ACTIVITY_ENTITIES:
        raise ValueError(f"Unknown activity entity {entity!r}")

    row = ActivityLog(
        action=action,
        entity=entity,
        entity_id=entity_id,
        entity_name=entity_name or "",
        details=details or "",
        actor=actor,
    )
    db.session.add(row)
    db.session.flush()  # ensures row.id is assigned without committing
    return row


def list_activity(
    *,
    entity: str | None = None,
    entity_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[ActivityLog]:
    """Newest first."""
    query = db.session.query(ActivityLog)
    if entity:
        query = query.filter(ActivityLog.entity == entity)
    if entity_id is not None:
        query = query.filter(ActivityLog.entity_id == entity_id)
    return query.order_by(ActivityLog.id.desc()).offset(offset).limit(limit).all()
