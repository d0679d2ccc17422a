# backend/fuelcash/services/settlement_service.py
"""
Daily settlement service.

WHY: Each station-day, the cash physically counted is reconciled against
the cash that the meter readings say was collected. The readings that
feed a settlement are linked to it so they can never be counted twice.

INVARIANTS:
- At most one settlement per (station, date); the unique index is the
  final arbiter when two requests race
- expected_cash is recomputed from the linked readings, never taken from
  the caller
- A reading is linked to at most one settlement; linking is a conditional
  UPDATE (only rows still unlinked) checked against the expected row count
- Settlement insert and reading links commit together or not at all

variance = expected_cash - actual_cash (positive = cash short)
"""
from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from fuelcash.extensions import db
from fuelcash.models import NozzleReading, Settlement
from fuelcash.models.settlements import SETTLEMENT_STATUS_RECORDED, SETTLEMENT_STATUS_UNDER_REVIEW
from fuelcash.services.audit_service import AuditEvent, record_event, EVENT_SETTLEMENT_RECORDED
from fuelcash.services.concurrency import atomic, lock_for_update
from fuelcash.services.errors import DuplicateSettlement, InvalidReadingSet, NotFound
from fuelcash.services.station_service import get_variance_thresholds, require_station
from fuelcash.services.variance_service import CONTEXT_SETTLEMENT, classify, format_cents


ENTITY_TYPE = "settlement"


def _existing_settlement(station_id: int, settlement_date: date) -> Settlement | None:
    return db.session.query(Settlement).filter_by(
        station_id=station_id,
        settlement_date=settlement_date,
    ).first()


def _normalize_reading_ids(reading_ids) -> list[int]:
    """Ordered, de-duplicated list of integer ids."""
    ids: list[int] = []
    seen: set[int] = set()
    for raw in reading_ids:
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise InvalidReadingSet(f"Reading id {raw!r} is not an integer", [])
        if raw not in seen:
            seen.add(raw)
            ids.append(raw)
    return ids


def _select_readings(station_id: int, settlement_date: date, reading_ids) -> list[NozzleReading]:
    """
    Lock and validate the readings a settlement will consume.

    reading_ids=None takes every unlinked reading of the station/day.
    Any unknown, foreign (other station/date), already linked or
    internally inconsistent reading rejects the whole set.
    """
    if reading_ids is None:
        readings = lock_for_update(
            db.session.query(NozzleReading).filter_by(
                station_id=station_id,
                reading_date=settlement_date,
                settlement_id=None,
            ).order_by(NozzleReading.id.asc())
        ).all()
        if not readings:
            raise InvalidReadingSet(
                f"No unlinked readings for station {station_id} on {settlement_date.isoformat()}", []
            )
    else:
        ids = _normalize_reading_ids(reading_ids)
        if not ids:
            raise InvalidReadingSet("No readings selected for settlement", [])

        found = {
            r.id: r
            for r in lock_for_update(
                db.session.query(NozzleReading).filter(NozzleReading.id.in_(ids))
            ).all()
        }

        unknown = [rid for rid in ids if rid not in found]
        if unknown:
            raise InvalidReadingSet(f"Unknown readings: {unknown}", unknown)

        foreign = [
            rid for rid in ids
            if found[rid].station_id != station_id or found[rid].reading_date != settlement_date
        ]
        if foreign:
            raise InvalidReadingSet(
                f"Readings {foreign} do not belong to station {station_id} on {settlement_date.isoformat()}",
                foreign,
            )

        linked = [rid for rid in ids if found[rid].settlement_id is not None]
        if linked:
            raise InvalidReadingSet(f"Readings {linked} are already linked to a settlement", linked)

        readings = [found[rid] for rid in ids]

    inconsistent = [r.id for r in readings if not r.payment_breakdown_is_consistent()]
    if inconsistent:
        raise InvalidReadingSet(
            f"Readings {inconsistent} have a payment breakdown that does not match their total",
            inconsistent,
        )
    return readings


@atomic
def record_settlement(
    station_id: int,
    settlement_date: date,
    actual_cash_cents: int,
    reading_ids=None,
    *,
    recorded_by_user_id: int | None = None,
    notes: str | None = None,
) -> Settlement:
    """
    Reconcile a station-day and link the readings it consumed.

    Args:
        station_id: Station being settled
        settlement_date: Business date
        actual_cash_cents: Physically counted cash
        reading_ids: Readings to settle; None means every unlinked reading of the day

    Raises:
        DuplicateSettlement: Station/date already settled (including a lost race)
        InvalidReadingSet: Empty, unknown, foreign, already linked or inconsistent readings
    """
    if isinstance(actual_cash_cents, bool) or not isinstance(actual_cash_cents, int):
        raise ValueError("actual_cash_cents must be an integer amount in cents")
    if actual_cash_cents < 0:
        raise ValueError("actual_cash_cents cannot be negative")

    require_station(station_id)

    if _existing_settlement(station_id, settlement_date):
        raise DuplicateSettlement(
            f"Settlement already recorded for station {station_id} on {settlement_date.isoformat()}"
        )

    readings = _select_readings(station_id, settlement_date, reading_ids)
    ids = [r.id for r in readings]

    expected_cash = sum(r.cash_cents or 0 for r in readings)
    online = sum(r.online_cents or 0 for r in readings)
    credit = sum(r.credit_cents or 0 for r in readings)

    thresholds = get_variance_thresholds(station_id, CONTEXT_SETTLEMENT)
    result = classify(expected_cash, actual_cash_cents, thresholds)

    settlement = Settlement(
        station_id=station_id,
        settlement_date=settlement_date,
        expected_cash_cents=expected_cash,
        actual_cash_cents=actual_cash_cents,
        variance_cents=expected_cash - actual_cash_cents,
        online_cents=online,
        credit_cents=credit,
        status=SETTLEMENT_STATUS_UNDER_REVIEW if result.is_dispute else SETTLEMENT_STATUS_RECORDED,
        notes=notes,
        recorded_by_user_id=recorded_by_user_id,
    )
    db.session.add(settlement)
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise DuplicateSettlement(
            f"Settlement already recorded for station {station_id} on {settlement_date.isoformat()}"
        ) from exc

    # Verify-and-set: only rows that are still unlinked get the link
    linked = db.session.execute(
        update(NozzleReading)
        .where(NozzleReading.id.in_(ids), NozzleReading.settlement_id.is_(None))
        .values(settlement_id=settlement.id)
        .execution_options(synchronize_session=False)
    )
    if linked.rowcount != len(ids):
        raise InvalidReadingSet("Some readings were linked to another settlement concurrently", ids)

    db.session.commit()

    current_app.logger.info(
        "Settlement %s recorded for station %s on %s: expected %s, counted %s, %d readings",
        settlement.id,
        station_id,
        settlement_date.isoformat(),
        format_cents(expected_cash),
        format_cents(actual_cash_cents),
        len(ids),
    )

    record_event(AuditEvent(
        event_type=EVENT_SETTLEMENT_RECORDED,
        entity_type=ENTITY_TYPE,
        entity_id=settlement.id,
        station_id=station_id,
        actor_user_id=recorded_by_user_id,
        amount_before_cents=expected_cash,
        amount_after_cents=actual_cash_cents,
        note=f"Variance {format_cents(settlement.variance_cents)} ({result.percentage}%), status {settlement.status}",
    ))
    return settlement


def get_settlement(settlement_id: int) -> Settlement | None:
    return db.session.get(Settlement, settlement_id)


def require_settlement(settlement_id: int) -> Settlement:
    settlement = get_settlement(settlement_id)
    if not settlement:
        raise NotFound(f"Settlement {settlement_id} not found")
    return settlement


def get_settlement_history(station_id: int, limit: int | None = None) -> list[Settlement]:
    """Settlements for a station, most recent date first."""
    if limit is None:
        limit = current_app.config.get("DEFAULT_HISTORY_LIMIT", 30)
    if limit <= 0:
        raise ValueError("limit must be positive")

    return db.session.query(Settlement).filter_by(
        station_id=station_id,
    ).order_by(
        Settlement.settlement_date.desc(),
        Settlement.id.desc(),
    ).limit(limit).all()
