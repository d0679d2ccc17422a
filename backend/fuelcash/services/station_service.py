from __future__ import annotations

from fuelcash.extensions import db
from fuelcash.models import Station, StationConfig
from fuelcash.services.concurrency import lock_for_update
from fuelcash.services.errors import CashCustodyError, NotFound
from fuelcash.services.variance_service import (
    CONTEXT_HANDOVER,
    CONTEXT_SETTLEMENT,
    VarianceThresholds,
    default_thresholds,
)


# Station config keys for per-station tolerance overrides
THRESHOLD_CONFIG_KEYS = {
    CONTEXT_HANDOVER: ("handover.variance_abs_threshold_cents", "handover.variance_pct_threshold_bps"),
    CONTEXT_SETTLEMENT: ("settlement.variance_abs_threshold_cents", "settlement.variance_pct_threshold_bps"),
}


class StationError(CashCustodyError):
    """Raised when station operations fail."""
    pass


_THRESHOLD_KEYS = {key for keys in THRESHOLD_CONFIG_KEYS.values() for key in keys}


def _require_non_negative_int(key: str, value: str) -> int:
    try:
        parsed = int(value)
    except ValueError:
        raise StationError(f"Station config {key} must be an integer, got {value!r}")
    if parsed < 0:
        raise StationError(f"Station config {key} must not be negative, got {value!r}")
    return parsed


def create_station(
    name: str,
    code: str | None = None,
    manager_user_id: int | None = None,
    owner_user_id: int | None = None,
) -> Station:
    if not name:
        raise StationError("Station name is required")

    station = Station(
        name=name,
        code=code,
        manager_user_id=manager_user_id,
        owner_user_id=owner_user_id,
    )
    db.session.add(station)
    db.session.commit()
    return station


def assign_staff(station_id: int, *, manager_user_id: int | None = None, owner_user_id: int | None = None) -> Station:
    station = lock_for_update(db.session.query(Station).filter_by(id=station_id)).first()
    if not station:
        raise NotFound(f"Station {station_id} not found")

    if manager_user_id is not None:
        station.manager_user_id = manager_user_id
    if owner_user_id is not None:
        station.owner_user_id = owner_user_id

    db.session.commit()
    return station


def get_station(station_id: int) -> Station | None:
    return db.session.get(Station, station_id)


def require_station(station_id: int) -> Station:
    station = get_station(station_id)
    if not station:
        raise NotFound(f"Station {station_id} not found")
    return station


def list_stations() -> list[Station]:
    return db.session.query(Station).order_by(Station.name.asc()).all()


def set_station_config(station_id: int, key: str, value: str | None) -> StationConfig:
    if not key:
        raise StationError("Config key is required")

    if key in _THRESHOLD_KEYS and value is not None and value.strip():
        _require_non_negative_int(key, value)

    require_station(station_id)

    config = lock_for_update(
        db.session.query(StationConfig).filter_by(station_id=station_id, key=key)
    ).first()
    if config:
        config.value = value
    else:
        config = StationConfig(station_id=station_id, key=key, value=value)
        db.session.add(config)

    db.session.commit()
    return config


def get_station_config(station_id: int, key: str) -> StationConfig | None:
    return db.session.query(StationConfig).filter_by(station_id=station_id, key=key).first()


def _config_int(station_id: int, key: str, fallback: int) -> int:
    config = get_station_config(station_id, key)
    if not config or config.value is None or not config.value.strip():
        return fallback
    return _require_non_negative_int(key, config.value)


def get_variance_thresholds(station_id: int, context: str) -> VarianceThresholds:
    """
    Resolve tolerance for a station: station config first, then app config.
    """
    base = default_thresholds(context)
    abs_key, pct_key = THRESHOLD_CONFIG_KEYS[context]
    return VarianceThresholds(
        abs_threshold_cents=_config_int(station_id, abs_key, base.abs_threshold_cents),
        pct_threshold_bps=_config_int(station_id, pct_key, base.pct_threshold_bps),
    )
