# Overview: Pure variance classification used by handover confirmation and settlements.

"""
Variance evaluation.

A discrepancy is a dispute when EITHER threshold is exceeded:
- |variance| > absolute threshold (cents)
- |variance| / expected * 100 > percentage threshold

Thresholds are strict: a variance exactly at a threshold is tolerated.
Amounts are integer cents. The threshold check uses the exact percentage;
the reported percentage is Decimal rounded to 2 places.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app, has_app_context


DEFAULT_ABS_THRESHOLD_CENTS = 10_000
DEFAULT_PCT_THRESHOLD_BPS = 200

CONTEXT_HANDOVER = "handover"
CONTEXT_SETTLEMENT = "settlement"

_CONFIG_KEYS = {
    CONTEXT_HANDOVER: ("HANDOVER_VARIANCE_ABS_THRESHOLD_CENTS", "HANDOVER_VARIANCE_PCT_THRESHOLD_BPS"),
    CONTEXT_SETTLEMENT: ("SETTLEMENT_VARIANCE_ABS_THRESHOLD_CENTS", "SETTLEMENT_VARIANCE_PCT_THRESHOLD_BPS"),
}

_TWO_PLACES = Decimal("0.01")


@dataclass(frozen=True)
class VarianceThresholds:
    abs_threshold_cents: int = DEFAULT_ABS_THRESHOLD_CENTS
    pct_threshold_bps: int = DEFAULT_PCT_THRESHOLD_BPS

    @property
    def pct_threshold(self) -> Decimal:
        return Decimal(self.pct_threshold_bps) / Decimal(100)


@dataclass(frozen=True)
class VarianceResult:
    variance_cents: int
    percentage: Decimal
    is_dispute: bool

    @property
    def abs_variance_cents(self) -> int:
        return abs(self.variance_cents)


def classify(expected_cents: int, actual_cents: int, thresholds: VarianceThresholds | None = None) -> VarianceResult:
    """Classify actual against expected; variance = actual - expected."""
    thresholds = thresholds or VarianceThresholds()

    variance = actual_cents - expected_cents
    if expected_cents == 0:
        exact = Decimal(0)
    else:
        exact = Decimal(abs(variance)) * 100 / Decimal(expected_cents)
    percentage = exact.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)

    # Compare before rounding; 2.004% must not round down to 2.00 and pass
    is_dispute = abs(variance) > thresholds.abs_threshold_cents or exact > thresholds.pct_threshold
    return VarianceResult(variance_cents=variance, percentage=percentage, is_dispute=is_dispute)


def default_thresholds(context: str) -> VarianceThresholds:
    """App-level thresholds for a context, falling back to built-in defaults."""
    if context not in _CONFIG_KEYS:
        raise ValueError(f"Unknown variance context: {context}")
    if not has_app_context():
        return VarianceThresholds()
    abs_key, pct_key = _CONFIG_KEYS[context]
    return VarianceThresholds(
        abs_threshold_cents=int(current_app.config.get(abs_key, DEFAULT_ABS_THRESHOLD_CENTS)),
        pct_threshold_bps=int(current_app.config.get(pct_key, DEFAULT_PCT_THRESHOLD_BPS)),
    )


def format_cents(cents: int) -> str:
    return f"{cents / 100:,.2f}"
