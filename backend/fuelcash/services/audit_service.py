# Overview: Audit sink for custody state transitions; fire-and-forget compliance log.

"""
Audit Invariants

- Exactly one event per state transition (HandoverCreated, HandoverConfirmed,
  HandoverDisputed, HandoverResolved, SettlementRecorded).
- Events are emitted after the owning transaction has committed, so a
  rolled back transition never produces an event.
- A failing sink never blocks or undoes the transition: the failure is
  logged and dropped.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import datetime

from flask import Flask, current_app
from sqlalchemy.exc import SQLAlchemyError

from fuelcash.extensions import db
from fuelcash.models import AuditLogEntry
from fuelcash.time_utils import utcnow


EVENT_HANDOVER_CREATED = "HandoverCreated"
EVENT_HANDOVER_CONFIRMED = "HandoverConfirmed"
EVENT_HANDOVER_DISPUTED = "HandoverDisputed"
EVENT_HANDOVER_RESOLVED = "HandoverResolved"
EVENT_SETTLEMENT_RECORDED = "SettlementRecorded"

_EXTENSION_KEY = "fuelcash.audit_sink"


@dataclass(frozen=True)
class AuditEvent:
    event_type: str
    entity_type: str
    entity_id: int
    station_id: int | None
    actor_user_id: int | None
    amount_before_cents: int | None = None
    amount_after_cents: int | None = None
    note: str | None = None
    occurred_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return asdict(self)


class AuditSink:
    """Receives one event per state transition."""

    def record(self, event: AuditEvent) -> None:
        raise NotImplementedError


class DatabaseAuditSink(AuditSink):
    """Persists events into the append-only audit_events table."""

    def record(self, event: AuditEvent) -> None:
        entry = AuditLogEntry(
            event_type=event.event_type,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            station_id=event.station_id,
            actor_user_id=event.actor_user_id,
            amount_before_cents=event.amount_before_cents,
            amount_after_cents=event.amount_after_cents,
            note=event.note,
            occurred_at=event.occurred_at,
        )
        db.session.add(entry)
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise


class LoggingAuditSink(AuditSink):
    """Writes events to the application log only."""

    def record(self, event: AuditEvent) -> None:
        current_app.logger.info(
            "audit %s %s=%s station=%s actor=%s before=%s after=%s",
            event.event_type,
            event.entity_type,
            event.entity_id,
            event.station_id,
            event.actor_user_id,
            event.amount_before_cents,
            event.amount_after_cents,
        )


SINKS = {
    "database": DatabaseAuditSink,
    "logging": LoggingAuditSink,
}


def init_audit_sink(app: Flask, sink: AuditSink | None = None) -> AuditSink:
    """Install the configured sink (or an explicit one) on the app."""
    if sink is None:
        name = app.config.get("AUDIT_SINK", "database")
        if name not in SINKS:
            raise ValueError(f"Unknown AUDIT_SINK: {name}")
        sink = SINKS[name]()
    app.extensions[_EXTENSION_KEY] = sink
    return sink


def get_audit_sink() -> AuditSink:
    sink = current_app.extensions.get(_EXTENSION_KEY)
    if sink is None:
        sink = init_audit_sink(current_app._get_current_object())
    return sink


def record_event(event: AuditEvent) -> None:
    """Hand an event to the sink. Never raises."""
    try:
        get_audit_sink().record(event)
    except Exception:
        current_app.logger.exception("Audit sink failed for %s %s=%s", event.event_type, event.entity_type, event.entity_id)


def list_events(entity_type: str | None = None, entity_id: int | None = None, station_id: int | None = None) -> list[AuditLogEntry]:
    query = db.session.query(AuditLogEntry)
    if entity_type is not None:
        query = query.filter_by(entity_type=entity_type)
    if entity_id is not None:
        query = query.filter_by(entity_id=entity_id)
    if station_id is not None:
        query = query.filter_by(station_id=station_id)
    return query.order_by(AuditLogEntry.id.asc()).all()
