from __future__ import annotations

from ..extensions import db
from fuelcash.time_utils import to_utc_z


class AuditLogEntry(db.Model):
    """
    Append-only compliance log of custody state transitions.

    - One row per transition (handover created/confirmed/disputed/resolved,
      settlement recorded).
    - Never updated or deleted by application code.
    - occurred_at is business time; created_at is system time (DB default).
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_entity", "entity_type", "entity_id"),
        db.Index("ix_audit_events_station_occurred", "station_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_type = db.Column(db.String(64), nullable=False, index=True)
    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)
    station_id = db.Column(db.Integer, nullable=True, index=True)
    actor_user_id = db.Column(db.Integer, nullable=True, index=True)

    amount_before_cents = db.Column(db.Integer, nullable=True)
    amount_after_cents = db.Column(db.Integer, nullable=True)
    note = db.Column(db.Text, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "station_id": self.station_id,
            "actor_user_id": self.actor_user_id,
            "amount_before_cents": self.amount_before_cents,
            "amount_after_cents": self.amount_after_cents,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
        }
