"""
Tests for variance classification.

Either threshold alone triggers a dispute; a variance sitting exactly on a
threshold is tolerated.
"""

from decimal import Decimal

import pytest

from fuelcash.services.variance_service import (
    CONTEXT_HANDOVER,
    CONTEXT_SETTLEMENT,
    VarianceThresholds,
    classify,
    default_thresholds,
    format_cents,
)


class TestClassify:
    def test_exact_match_is_not_a_dispute(self):
        result = classify(100_000, 100_000)

        assert result.variance_cents == 0
        assert result.percentage == Decimal("0.00")
        assert result.is_dispute is False

    def test_absolute_threshold_triggers_even_when_percentage_is_high(self):
        # 1000.00 expected, 1150.00 counted: 150.00 over, 15%
        result = classify(100_000, 115_000)

        assert result.variance_cents == 15_000
        assert result.percentage == Decimal("15.00")
        assert result.is_dispute is True

    def test_absolute_threshold_alone_triggers(self):
        # 10000.00 expected, 9850.00 counted: 1.5% is within tolerance, 150.00 is not
        result = classify(1_000_000, 985_000)

        assert result.variance_cents == -15_000
        assert result.percentage == Decimal("1.50")
        assert result.is_dispute is True

    def test_percentage_threshold_alone_triggers(self):
        # 20.00 expected, 19.00 counted: only 1.00 short but 5%
        result = classify(2_000, 1_900)

        assert result.abs_variance_cents == 100
        assert result.percentage == Decimal("5.00")
        assert result.is_dispute is True

    def test_variance_exactly_on_thresholds_is_tolerated(self):
        # 500000 expected, 10000 short: exactly 100.00 and exactly 2%
        result = classify(500_000, 490_000)

        assert result.variance_cents == -10_000
        assert result.percentage == Decimal("2.00")
        assert result.is_dispute is False

    def test_percentage_compared_before_rounding(self):
        # 4000.00 expected, 80.19 short: 2.00475% reports as 2.00 but exceeds 2%
        result = classify(400_000, 391_981)

        assert result.variance_cents == -8_019
        assert result.percentage == Decimal("2.00")
        assert result.is_dispute is True

    def test_zero_expected_uses_zero_percentage(self):
        result = classify(0, 5_000)

        assert result.percentage == Decimal("0.00")
        assert result.is_dispute is False

        result = classify(0, 10_001)
        assert result.is_dispute is True

    def test_percentage_rounds_half_up(self):
        # 1/3 of a percent -> 0.33
        result = classify(300_000, 301_000)
        assert result.percentage == Decimal("0.33")

    def test_custom_thresholds(self):
        strict = VarianceThresholds(abs_threshold_cents=500, pct_threshold_bps=50)

        assert classify(100_000, 100_400, strict).is_dispute is False
        assert classify(100_000, 100_600, strict).is_dispute is True

    def test_pct_threshold_from_basis_points(self):
        assert VarianceThresholds(pct_threshold_bps=150).pct_threshold == Decimal("1.5")


class TestDefaultThresholds:
    def test_reads_app_config(self, app):
        with app.app_context():
            app.config["SETTLEMENT_VARIANCE_ABS_THRESHOLD_CENTS"] = 2_500
            try:
                thresholds = default_thresholds(CONTEXT_SETTLEMENT)
            finally:
                app.config["SETTLEMENT_VARIANCE_ABS_THRESHOLD_CENTS"] = 10_000

        assert thresholds.abs_threshold_cents == 2_500
        assert thresholds.pct_threshold_bps == 200

    def test_outside_app_context_uses_builtin_defaults(self):
        thresholds = default_thresholds(CONTEXT_HANDOVER)

        assert thresholds == VarianceThresholds()

    def test_unknown_context_rejected(self):
        with pytest.raises(ValueError):
            default_thresholds("payroll")


def test_format_cents():
    assert format_cents(123_456) == "1,234.56"
    assert format_cents(-5_000) == "-50.00"
