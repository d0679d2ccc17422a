# Overview: Read-side of meter readings as consumed by daily settlements.

"""
Readings are owned by the readings subsystem. This module exposes the
narrow view settlements need: which readings exist for a station/day,
their payment breakdown, and whether they are already linked.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from fuelcash.extensions import db
from fuelcash.models import NozzleReading


class ReadingError(Exception):
    """Raised when a reading cannot be recorded."""
    pass


@dataclass(frozen=True)
class ReadingTotals:
    reading_id: int
    cash_cents: int
    online_cents: int
    credit_cents: int
    linked: bool

    def to_dict(self) -> dict:
        return {
            "reading_id": self.reading_id,
            "cash_cents": self.cash_cents,
            "online_cents": self.online_cents,
            "credit_cents": self.credit_cents,
            "linked": self.linked,
        }


@dataclass
class TenderTotals:
    cash_cents: int = 0
    online_cents: int = 0
    credit_cents: int = 0
    count: int = 0
    reading_ids: list[int] = field(default_factory=list)

    def add(self, reading: NozzleReading) -> None:
        self.cash_cents += reading.cash_cents or 0
        self.online_cents += reading.online_cents or 0
        self.credit_cents += reading.credit_cents or 0
        self.count += 1
        self.reading_ids.append(reading.id)

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "reading_ids": list(self.reading_ids),
            "cash_cents": self.cash_cents,
            "online_cents": self.online_cents,
            "credit_cents": self.credit_cents,
        }


def record_reading(
    station_id: int,
    reading_date: date,
    *,
    cash_cents: int = 0,
    online_cents: int = 0,
    credit_cents: int = 0,
    total_amount_cents: int | None = None,
    nozzle_number: int | None = None,
    litres_sold_ml: int = 0,
    entered_by_user_id: int | None = None,
) -> NozzleReading:
    """
    Record a reading with its payment breakdown.

    total_amount_cents defaults to the sum of the breakdown.
    """
    if min(cash_cents, online_cents, credit_cents) < 0:
        raise ReadingError("Payment amounts cannot be negative")

    if total_amount_cents is None:
        total_amount_cents = cash_cents + online_cents + credit_cents

    reading = NozzleReading(
        station_id=station_id,
        reading_date=reading_date,
        nozzle_number=nozzle_number,
        litres_sold_ml=litres_sold_ml,
        total_amount_cents=total_amount_cents,
        cash_cents=cash_cents,
        online_cents=online_cents,
        credit_cents=credit_cents,
        entered_by_user_id=entered_by_user_id,
    )
    db.session.add(reading)
    db.session.commit()
    return reading


def get_readings_for_settlement(station_id: int, reading_date: date) -> list[ReadingTotals]:
    """Payment breakdown of every reading for the station/day, oldest first."""
    rows = db.session.query(NozzleReading).filter_by(
        station_id=station_id,
        reading_date=reading_date,
    ).order_by(NozzleReading.id.asc()).all()

    return [
        ReadingTotals(
            reading_id=r.id,
            cash_cents=r.cash_cents or 0,
            online_cents=r.online_cents or 0,
            credit_cents=r.credit_cents or 0,
            linked=r.is_linked,
        )
        for r in rows
    ]


def get_settlement_candidates_summary(station_id: int, reading_date: date) -> dict:
    """
    Split the day's readings into linked and unlinked, with tender totals.

    Used by the settlement screen to show what is still open for the day.
    """
    rows = db.session.query(NozzleReading).filter_by(
        station_id=station_id,
        reading_date=reading_date,
    ).order_by(NozzleReading.id.asc()).all()

    linked = TenderTotals()
    unlinked = TenderTotals()
    for reading in rows:
        (linked if reading.is_linked else unlinked).add(reading)

    return {
        "station_id": station_id,
        "date": reading_date.isoformat(),
        "linked": linked.to_dict(),
        "unlinked": unlinked.to_dict(),
        "readings": [r.to_dict() for r in rows],
    }
