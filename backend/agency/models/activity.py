from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class ActivityLog(db.Model):
    """
    Append-only audit trail of back-office actions.

    Written inside the same DB transaction as the change it describes,
    so a rolled-back invoice leaves no activity row behind.
    """
    __tablename__ = "activity_logs"
    __table_args__ = (
        db.Index("ix_activity_logs_entity", "entity", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(50), nullable=False, index=True)  # create, update, payment, status
    entity = db.Column(db.String(50), nullable=False)  # invoice, ticket, customer, agent, vendor, deposit
    entity_id = db.Column(db.Integer, nullable=False)
    entity_name = db.Column(db.String(255), nullable=False, default="")
    details = db.Column(db.Text, nullable=False, default="")
    actor = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "action": self.action,
            "entity": self.entity,
            "entity_id": self.entity_id,
            "entity_name": self.entity_name,
            "details": self.details,
            "actor": self.actor,
            "created_at": to_utc_z(self.created_at),
        }
