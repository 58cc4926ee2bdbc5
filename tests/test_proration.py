"""Unit tests for calendar-day proration."""

from datetime import date
from decimal import Decimal

import pytest

from gross_to_net.calculators.proration import apply_proration, calculate_proration_factor
from gross_to_net.calculators.types import ProrationMethod

JUNE_START = date(2025, 6, 1)
JUNE_END = date(2025, 6, 30)


class TestProrationFactor:
    """Test the share of a period covered by an effective window."""

    def test_open_window_is_full_period(self):
        """No start or end date covers the whole period."""
        result = calculate_proration_factor(JUNE_START, JUNE_END, None, None)

        assert result.factor == Decimal("1")
        assert result.is_prorated is False
        assert result.days_worked == 30
        assert result.total_days == 30

    def test_mid_period_start(self):
        """Starting on day 16 of a 30-day period works 15 days."""
        result = calculate_proration_factor(JUNE_START, JUNE_END, date(2025, 6, 16), None)

        assert result.days_worked == 15
        assert result.factor == Decimal("0.5")
        assert result.is_prorated is True

    def test_mid_period_end(self):
        """Ending on day 10 works days 1-10 inclusive."""
        result = calculate_proration_factor(JUNE_START, JUNE_END, None, date(2025, 6, 10))

        assert result.days_worked == 10
        assert result.factor == Decimal(10) / Decimal(30)

    def test_window_inside_period(self):
        result = calculate_proration_factor(
            JUNE_START, JUNE_END, date(2025, 6, 11), date(2025, 6, 20)
        )

        assert result.days_worked == 10

    def test_single_day_overlap(self):
        """Both ends are inclusive, so a one-day window counts one day."""
        result = calculate_proration_factor(JUNE_START, JUNE_END, JUNE_END, JUNE_END)

        assert result.days_worked == 1
        assert result.factor == Decimal(1) / Decimal(30)

    def test_window_covering_period_is_not_prorated(self):
        result = calculate_proration_factor(
            JUNE_START, JUNE_END, date(2024, 1, 1), date(2026, 12, 31)
        )

        assert result.factor == Decimal("1")
        assert result.is_prorated is False

    def test_window_after_period_gives_zero(self):
        """No overlap yields factor zero, flagged as prorated."""
        result = calculate_proration_factor(JUNE_START, JUNE_END, date(2025, 7, 1), None)

        assert result.factor == Decimal("0")
        assert result.is_prorated is True
        assert result.days_worked == 0

    def test_window_before_period_gives_zero(self):
        result = calculate_proration_factor(JUNE_START, JUNE_END, None, date(2025, 5, 31))

        assert result.factor == Decimal("0")

    def test_factor_stays_in_unit_interval(self):
        for start_day in range(1, 31):
            result = calculate_proration_factor(
                JUNE_START, JUNE_END, date(2025, 6, start_day), None
            )
            assert Decimal("0") <= result.factor <= Decimal("1")

    def test_inverted_period_raises(self):
        with pytest.raises(ValueError):
            calculate_proration_factor(JUNE_END, JUNE_START, None, None)


class TestProrationMethod:
    """Test method selection."""

    def test_none_method_ignores_window(self):
        result = calculate_proration_factor(
            JUNE_START, JUNE_END, date(2025, 6, 16), None, ProrationMethod.NONE
        )

        assert result.factor == Decimal("1")
        assert result.is_prorated is False
        assert result.method == ProrationMethod.NONE

    def test_method_accepts_stored_code(self):
        result = calculate_proration_factor(
            JUNE_START, JUNE_END, date(2025, 6, 16), None, "calendar_days"
        )

        assert result.method == ProrationMethod.CALENDAR_DAYS
        assert result.factor == Decimal("0.5")

    def test_unknown_code_means_no_proration(self):
        assert ProrationMethod.from_code("WORKING_DAYS") == ProrationMethod.NONE
        assert ProrationMethod.from_code(None) == ProrationMethod.NONE


class TestApplyProration:
    def test_full_factor_returns_amount_unchanged(self):
        result = calculate_proration_factor(JUNE_START, JUNE_END, None, None)

        assert apply_proration(Decimal("5000.00"), result) == Decimal("5000.00")

    def test_half_factor(self):
        result = calculate_proration_factor(JUNE_START, JUNE_END, date(2025, 6, 16), None)

        assert apply_proration(Decimal("5000.00"), result) == Decimal("2500.00")

    def test_zero_factor(self):
        result = calculate_proration_factor(JUNE_START, JUNE_END, date(2025, 8, 1), None)

        assert apply_proration(Decimal("5000.00"), result) == Decimal("0")
