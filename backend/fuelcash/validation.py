from __future__ import annotations

from datetime import date
from typing import Any

from fuelcash.time_utils import parse_iso_date


# Maximum amount: 99,999,999.99 (9,999,999,999 cents)
MAX_AMOUNT_CENTS = 9_999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


def require_payload(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def coerce_int(key: str, value: Any) -> int:
    """
    Strict integer coercion: rejects floats, bools, decimals and scientific notation.
    """
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def get_int(payload: dict, key: str, *, required: bool = False, default: int | None = None) -> int | None:
    if key not in payload or payload[key] is None:
        if required:
            raise ValidationError(f"{key} is required")
        return default
    return coerce_int(key, payload[key])


def get_amount_cents(payload: dict, key: str, *, required: bool = True) -> int | None:
    value = get_int(payload, key, required=required)
    if value is None:
        return None
    if value < 0:
        raise ValidationError(f"{key} must be >= 0")
    if value > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT_CENTS} ({MAX_AMOUNT_CENTS / 100:,.2f})")
    return value


def get_date(payload: dict, key: str, *, required: bool = False) -> date | None:
    raw = payload.get(key)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        if required:
            raise ValidationError(f"{key} is required")
        return None
    if not isinstance(raw, str):
        raise ValidationError(f"{key} must be an ISO-8601 date")
    try:
        return parse_iso_date(raw)
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 date (YYYY-MM-DD)")


def get_str(payload: dict, key: str, *, max_length: int | None = None) -> str | None:
    raw = payload.get(key)
    if raw is None:
        return None
    value = str(raw).strip()
    if not value:
        return None
    if max_length and len(value) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return value


def get_bool(payload: dict, key: str, default: bool = False) -> bool:
    raw = payload.get(key, default)
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        return raw.strip().lower() in ("1", "true", "yes")
    return bool(raw)


def get_int_list(payload: dict, key: str) -> list[int] | None:
    raw = payload.get(key)
    if raw is None:
        return None
    if not isinstance(raw, list):
        raise ValidationError(f"{key} must be a list of integers")
    return [coerce_int(key, v) for v in raw]
