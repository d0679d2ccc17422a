# backend/fuelcash/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/fuelcash.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///fuelcash.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Handover dispute tolerance (either threshold alone triggers a dispute)
    HANDOVER_VARIANCE_ABS_THRESHOLD_CENTS = _env_int("HANDOVER_VARIANCE_ABS_THRESHOLD_CENTS", 10_000)
    HANDOVER_VARIANCE_PCT_THRESHOLD_BPS = _env_int("HANDOVER_VARIANCE_PCT_THRESHOLD_BPS", 200)

    # Settlement review tolerance (same evaluator, separate knobs)
    SETTLEMENT_VARIANCE_ABS_THRESHOLD_CENTS = _env_int("SETTLEMENT_VARIANCE_ABS_THRESHOLD_CENTS", 10_000)
    SETTLEMENT_VARIANCE_PCT_THRESHOLD_BPS = _env_int("SETTLEMENT_VARIANCE_PCT_THRESHOLD_BPS", 200)

    # "database" persists audit events, "logging" only writes them to the app log
    AUDIT_SINK = os.environ.get("AUDIT_SINK", "database")

    DEFAULT_HISTORY_LIMIT = 30
