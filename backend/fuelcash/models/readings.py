from __future__ import annotations

from ..extensions import db
from fuelcash.time_utils import to_utc_z, to_iso_date


class NozzleReading(db.Model):
    """
    Meter reading for one nozzle on one business day.

    The readings subsystem owns these rows. The settlement engine only
    reads the payment breakdown and writes the settlement_id link column,
    which makes each reading count towards at most one settlement.
    """
    __tablename__ = "nozzle_readings"
    __table_args__ = (
        db.Index("ix_nozzle_readings_station_date", "station_id", "reading_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False, index=True)
    reading_date = db.Column(db.Date, nullable=False, index=True)
    nozzle_number = db.Column(db.Integer, nullable=True)
    entered_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    litres_sold_ml = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    # Payment breakdown; cash + online + credit must equal total_amount_cents
    cash_cents = db.Column(db.Integer, nullable=False, default=0)
    online_cents = db.Column(db.Integer, nullable=False, default=0)
    credit_cents = db.Column(db.Integer, nullable=False, default=0)

    settlement_id = db.Column(
        db.Integer,
        db.ForeignKey("settlements.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    station = db.relationship("Station", backref=db.backref("readings", lazy=True))
    settlement = db.relationship("Settlement", backref=db.backref("readings", lazy=True, order_by="NozzleReading.id"))

    @property
    def is_linked(self) -> bool:
        return self.settlement_id is not None

    def payment_breakdown_is_consistent(self) -> bool:
        parts = (self.cash_cents or 0, self.online_cents or 0, self.credit_cents or 0)
        if any(p < 0 for p in parts):
            return False
        return sum(parts) == (self.total_amount_cents or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_id": self.station_id,
            "reading_date": to_iso_date(self.reading_date),
            "nozzle_number": self.nozzle_number,
            "entered_by_user_id": self.entered_by_user_id,
            "litres_sold_ml": self.litres_sold_ml,
            "total_amount_cents": self.total_amount_cents,
            "cash_cents": self.cash_cents,
            "online_cents": self.online_cents,
            "credit_cents": self.credit_cents,
            "settlement_id": self.settlement_id,
            "created_at": to_utc_z(self.created_at),
        }
