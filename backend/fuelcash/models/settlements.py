from __future__ import annotations

from ..extensions import db
from fuelcash.time_utils import to_utc_z, to_iso_date


SETTLEMENT_STATUS_RECORDED = "RECORDED"
SETTLEMENT_STATUS_UNDER_REVIEW = "UNDER_REVIEW"


class Settlement(db.Model):
    """
    Daily cash reconciliation for a station.

    WHY: Compares the cash the meter readings say was taken against the
    cash physically counted. One per (station, date), enforced by a
    unique index so concurrent attempts cannot both commit.

    variance = expected_cash - actual_cash (positive means cash is short).
    """
    __tablename__ = "settlements"
    __table_args__ = (
        db.UniqueConstraint("station_id", "settlement_date", name="uq_settlements_station_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False, index=True)
    settlement_date = db.Column(db.Date, nullable=False, index=True)

    expected_cash_cents = db.Column(db.Integer, nullable=False)
    actual_cash_cents = db.Column(db.Integer, nullable=False)
    variance_cents = db.Column(db.Integer, nullable=False)

    # Non-cash tenders aggregated from the same readings, for reference
    online_cents = db.Column(db.Integer, nullable=False, default=0)
    credit_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=SETTLEMENT_STATUS_RECORDED, index=True)

    notes = db.Column(db.Text, nullable=True)
    recorded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    recorded_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    station = db.relationship("Station", backref=db.backref("settlements", lazy=True))
    recorded_by = db.relationship("User", foreign_keys=[recorded_by_user_id])

    @property
    def linked_reading_ids(self) -> list[int]:
        return [r.id for r in self.readings]

    def __repr__(self) -> str:
        return f"<Settlement id={self.id} station_id={self.station_id} date={self.settlement_date}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_id": self.station_id,
            "date": to_iso_date(self.settlement_date),
            "expected_cash_cents": self.expected_cash_cents,
            "actual_cash_cents": self.actual_cash_cents,
            "variance_cents": self.variance_cents,
            "online_cents": self.online_cents,
            "credit_cents": self.credit_cents,
            "status": self.status,
            "notes": self.notes,
            "recorded_by_user_id": self.recorded_by_user_id,
            "recorded_at": to_utc_z(self.recorded_at),
            "linked_reading_ids": self.linked_reading_ids,
        }
