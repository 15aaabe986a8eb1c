"""
Tests for backoffice_engines.scheduling.

Proration by elapsed days, expiry classification, renewal windows,
renewal dates with the fallback, calendar month arithmetic and late-fee
month counting.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from backoffice_engines.scheduling import (
    ExpiryStatus,
    PeriodUnit,
    SchedulingPolicy,
    TemporalScheduler,
    add_months,
    add_period,
)
from backoffice_kernel.exceptions import ValidationError

AS_OF = date(2024, 6, 3)


@pytest.fixture
def scheduler():
    return TemporalScheduler(SchedulingPolicy())


class TestProration:
    """prorate_by_elapsed."""

    def test_mid_year(self, scheduler):
        result = scheduler.prorate_by_elapsed(
            Decimal("2000000"), date(2024, 1, 1), date(2024, 12, 31), date(2024, 7, 1)
        )
        assert result.total_days == 365
        assert result.elapsed_days == 182
        assert result.percentage == Decimal("49.86")
        assert result.amount == Decimal("997260.27")
        assert result.remaining_amount == Decimal("1002739.73")

    def test_before_start_is_zero(self, scheduler):
        result = scheduler.prorate_by_elapsed(
            Decimal("100"), date(2024, 1, 1), date(2024, 12, 31), date(2023, 12, 1)
        )
        assert result.percentage == Decimal("0.00")
        assert result.amount == Decimal("0.00")

    def test_on_start_is_zero(self, scheduler):
        result = scheduler.prorate_by_elapsed(
            Decimal("100"), date(2024, 1, 1), date(2024, 12, 31), date(2024, 1, 1)
        )
        assert result.elapsed_days == 0

    def test_after_end_is_full(self, scheduler):
        result = scheduler.prorate_by_elapsed(
            Decimal("100"), date(2024, 1, 1), date(2024, 12, 31), date(2025, 3, 1)
        )
        assert result.percentage == Decimal("100.00")
        assert result.amount == Decimal("100.00")

    @pytest.mark.parametrize("end", [date(2024, 1, 1), date(2023, 6, 1)])
    def test_degenerate_period_is_zero(self, scheduler, end):
        result = scheduler.prorate_by_elapsed(Decimal("100"), date(2024, 1, 1), end, AS_OF)
        assert result.percentage == Decimal("0")
        assert result.amount == Decimal("0.00")
        assert result.total_days == 0


class TestExpiryClassification:
    """classify_expiry with the default 7 / 14 day thresholds."""

    @pytest.mark.parametrize(
        "days_left,expected",
        [
            (-1, ExpiryStatus.OVERDUE),
            (0, ExpiryStatus.URGENT),
            (7, ExpiryStatus.URGENT),
            (8, ExpiryStatus.DUE_SOON),
            (14, ExpiryStatus.DUE_SOON),
            (15, ExpiryStatus.ON_TRACK),
        ],
    )
    def test_default_horizon(self, scheduler, days_left, expected):
        assert scheduler.classify_expiry(AS_OF + timedelta(days=days_left), AS_OF) == expected

    def test_wider_horizon(self, scheduler):
        end = AS_OF + timedelta(days=20)
        assert scheduler.classify_expiry(end, AS_OF, horizon_days=30) == ExpiryStatus.DUE_SOON

    def test_missing_end_is_on_track(self, scheduler):
        assert scheduler.classify_expiry(None, AS_OF) == ExpiryStatus.ON_TRACK

    @pytest.mark.parametrize("days_left,expected", [(-1, False), (0, True), (30, True), (31, False)])
    def test_renewal_window(self, scheduler, days_left, expected):
        assert scheduler.within_renewal_window(AS_OF + timedelta(days=days_left), AS_OF) is expected


class TestRenewalDate:
    """next_renewal_date and the fallback."""

    def test_adds_period(self, scheduler):
        assert scheduler.next_renewal_date(date(2024, 12, 31), 1, "years", AS_OF) == date(2025, 12, 31)

    def test_months(self, scheduler):
        assert scheduler.next_renewal_date(date(2024, 6, 30), 6, PeriodUnit.MONTHS, AS_OF) == date(2024, 12, 30)

    def test_fallback_when_candidate_not_after_as_of(self, scheduler, captured_logs):
        result = scheduler.next_renewal_date(date(2023, 1, 1), 1, "years", AS_OF)
        assert result == date(2025, 6, 3)
        assert any(r["message"] == "renewal_date_fallback_applied" for r in captured_logs())

    def test_candidate_equal_to_as_of_falls_back(self, scheduler):
        assert scheduler.next_renewal_date(date(2024, 5, 27), 1, "weeks", AS_OF) == date(2025, 6, 3)

    def test_fallback_years_from_policy(self):
        scheduler = TemporalScheduler(SchedulingPolicy(fallback_years=2))
        assert scheduler.next_renewal_date(date(2020, 1, 1), 1, "days", AS_OF) == date(2026, 6, 3)


class TestPeriodArithmetic:
    def test_month_end_clamped(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)

    def test_year_rollover(self):
        assert add_months(date(2024, 11, 15), 3) == date(2025, 2, 15)

    def test_leap_day_plus_year(self):
        assert add_period(date(2024, 2, 29), 1, "years") == date(2025, 2, 28)

    def test_days_and_weeks(self):
        assert add_period(date(2024, 6, 3), 10, "days") == date(2024, 6, 13)
        assert add_period(date(2024, 6, 3), 2, "weeks") == date(2024, 6, 17)

    def test_unknown_unit(self):
        with pytest.raises(ValidationError):
            add_period(AS_OF, 1, "fortnights")

    def test_negative_period(self):
        with pytest.raises(ValidationError):
            add_period(AS_OF, -1, "days")


class TestLateFeeMonths:
    """30-day grace, then one chargeable month per started 30 days beyond the first."""

    @pytest.mark.parametrize(
        "days_late,months",
        [(-5, 0), (0, 0), (30, 0), (31, 1), (45, 1), (60, 1), (61, 2), (90, 2), (91, 3)],
    )
    def test_boundaries(self, days_late, months):
        due = AS_OF - timedelta(days=days_late)
        assert TemporalScheduler.late_fee_months(due, AS_OF, grace_days=30) == months

    def test_no_due_date(self):
        assert TemporalScheduler.late_fee_months(None, AS_OF, grace_days=30) == 0


class TestPolicyValidation:
    def test_urgent_after_due_soon(self):
        with pytest.raises(ValidationError):
            SchedulingPolicy(urgent_days=20, due_soon_days=14)

    def test_window_shorter_than_urgent(self):
        with pytest.raises(ValidationError):
            SchedulingPolicy(urgent_days=7, due_soon_days=14, renewal_window_days=5)

    def test_fallback_years_at_least_one(self):
        with pytest.raises(ValidationError):
            SchedulingPolicy(fallback_years=0)
