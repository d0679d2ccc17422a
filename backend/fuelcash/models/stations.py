from __future__ import annotations

from ..extensions import db
from fuelcash.time_utils import to_utc_z


class Station(db.Model):
    """
    Fuel station.

    Cash custody is scoped per station: every handover and settlement
    belongs to exactly one station. The assigned manager and owner are
    the default recipients of the manager-level and owner-level handovers.
    """
    __tablename__ = "stations"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_stations_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=True, index=True)

    manager_user_id = db.Column(db.Integer, db.ForeignKey("users.id", use_alter=True), nullable=True, index=True)
    owner_user_id = db.Column(db.Integer, db.ForeignKey("users.id", use_alter=True), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    manager = db.relationship("User", foreign_keys=[manager_user_id])
    owner = db.relationship("User", foreign_keys=[owner_user_id])

    def __repr__(self) -> str:
        return f"<Station id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "manager_user_id": self.manager_user_id,
            "owner_user_id": self.owner_user_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class StationConfig(db.Model):
    """Per-station key/value overrides (variance thresholds, etc.)."""
    __tablename__ = "station_configs"
    __table_args__ = (
        db.UniqueConstraint("station_id", "key", name="uq_station_configs_station_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False, index=True)
    key = db.Column(db.String(128), nullable=False)
    value = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    station = db.relationship("Station", backref=db.backref("configs", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_id": self.station_id,
            "key": self.key,
            "value": self.value,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
