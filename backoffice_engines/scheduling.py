"""
backoffice_engines.scheduling -- Date arithmetic for lifecycle records.

Responsibility:
    Proration of a period by elapsed days, renewal-date computation,
    expiry classification (on_track / due_soon / urgent / overdue) and
    late-fee month counting.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    ``as_of`` is always an explicit parameter; callers read it from the
    injected Clock.

Invariants enforced:
    - Degenerate periods (end on or before start) prorate to 0 without
      raising.
    - Proration percentage is clamped to [0, 100] and quantized to 0.01.
    - Month arithmetic is calendar-aware: Jan 31 + 1 month is Feb 28/29.
    - ``next_renewal_date`` always returns a date strictly after ``as_of``.

Failure modes:
    - ValidationError for an unknown period unit or a negative period.

Audit relevance:
    Proration and renewal computations are traced via ``@traced_engine``.
"""

from __future__ import annotations

import calendar
import math
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from backoffice_kernel.domain.entity import HUNDRED, ZERO, round_money
from backoffice_kernel.exceptions import ValidationError
from backoffice_kernel.logging_config import get_logger
from backoffice_engines.tracer import traced_engine

logger = get_logger("engines.scheduling")

_PCT_QUANT = Decimal("0.01")
DAYS_PER_BILLING_MONTH = 30


class ExpiryStatus(str, Enum):
    ON_TRACK = "on_track"
    DUE_SOON = "due_soon"
    URGENT = "urgent"
    OVERDUE = "overdue"


class PeriodUnit(str, Enum):
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"
    YEARS = "years"


@dataclass(frozen=True)
class SchedulingPolicy:
    """Thresholds, in days.  Loaded from configuration by the caller."""

    urgent_days: int = 7
    due_soon_days: int = 14
    renewal_window_days: int = 30
    fallback_years: int = 1

    def __post_init__(self) -> None:
        if not 0 <= self.urgent_days <= self.due_soon_days:
            raise ValidationError("urgent_days", "must be between 0 and due_soon_days", self.urgent_days)
        if self.renewal_window_days < self.urgent_days:
            raise ValidationError(
                "renewal_window_days", "must not be shorter than urgent_days", self.renewal_window_days
            )
        if self.fallback_years < 1:
            raise ValidationError("fallback_years", "must be at least 1", self.fallback_years)


@dataclass(frozen=True)
class ProrationResult:
    """Share of a period elapsed as of a date, and that share of ``total``."""

    percentage: Decimal
    elapsed_days: int
    total_days: int
    amount: Decimal
    amount_total: Decimal = ZERO

    @property
    def remaining_amount(self) -> Decimal:
        return self.amount_total - self.amount


def add_months(start: date, months: int) -> date:
    """Calendar month addition with the day clamped to the target month's end."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def add_period(start: date, period: int, unit: PeriodUnit | str) -> date:
    try:
        unit = PeriodUnit(unit)
    except ValueError:
        raise ValidationError("unit", "must be days, weeks, months or years", unit) from None
    if period < 0:
        raise ValidationError("period", "cannot be negative", period)
    if unit == PeriodUnit.DAYS:
        return start + timedelta(days=period)
    if unit == PeriodUnit.WEEKS:
        return start + timedelta(weeks=period)
    if unit == PeriodUnit.MONTHS:
        return add_months(start, period)
    return add_months(start, period * 12)


class TemporalScheduler:
    """
    Pure date engine.

    Contract:
        No clock access; every method takes ``as_of`` explicitly.
    Guarantees:
        - Results depend only on arguments and the injected policy.
    Non-goals:
        - Business-day calendars and time zones; all arithmetic is on
          calendar dates.
    """

    def __init__(self, policy: SchedulingPolicy | None = None):
        self.policy = policy or SchedulingPolicy()

    @staticmethod
    def days_between(start: date, end: date) -> int:
        """Signed day count; negative when ``end`` precedes ``start``."""
        return (end - start).days

    @traced_engine("scheduling.proration", "1.0", fingerprint_fields=("total", "start", "end", "as_of"))
    def prorate_by_elapsed(
        self,
        total: Decimal,
        start: date,
        end: date,
        as_of: date,
    ) -> ProrationResult:
        """
        Percentage of ``start..end`` elapsed at ``as_of``, applied to ``total``.

        Before ``start`` the result is 0; after ``end`` it is 100; a period
        of zero or negative length is 0.
        """
        total_days = self.days_between(start, end)
        if total_days <= 0 or as_of <= start:
            elapsed = 0
        elif as_of >= end:
            elapsed = total_days
        else:
            elapsed = self.days_between(start, as_of)

        if total_days <= 0:
            ratio = ZERO
        else:
            ratio = Decimal(elapsed) / Decimal(total_days)

        percentage = (ratio * HUNDRED).quantize(_PCT_QUANT, rounding=ROUND_HALF_UP)
        percentage = min(max(percentage, ZERO), HUNDRED)
        return ProrationResult(
            percentage=percentage,
            elapsed_days=max(elapsed, 0),
            total_days=max(total_days, 0),
            amount=round_money(total * ratio),
            amount_total=round_money(total),
        )

    def classify_expiry(
        self,
        end: date | None,
        as_of: date,
        horizon_days: int | None = None,
    ) -> ExpiryStatus:
        """
        Classify how close ``end`` is.

        ``horizon_days`` defaults to the policy's due-soon threshold;
        renewal windows pass ``policy.renewal_window_days``.  A missing end
        date is on track.
        """
        if end is None:
            return ExpiryStatus.ON_TRACK
        horizon = self.policy.due_soon_days if horizon_days is None else horizon_days
        remaining = self.days_between(as_of, end)
        if remaining < 0:
            return ExpiryStatus.OVERDUE
        if remaining <= self.policy.urgent_days:
            return ExpiryStatus.URGENT
        if remaining <= horizon:
            return ExpiryStatus.DUE_SOON
        return ExpiryStatus.ON_TRACK

    def within_renewal_window(self, end: date | None, as_of: date) -> bool:
        return self.classify_expiry(
            end, as_of, self.policy.renewal_window_days
        ) in (ExpiryStatus.URGENT, ExpiryStatus.DUE_SOON)

    @traced_engine("scheduling.renewal", "1.0", fingerprint_fields=("current", "period", "unit", "as_of"))
    def next_renewal_date(
        self,
        current: date,
        period: int,
        unit: PeriodUnit | str,
        as_of: date,
    ) -> date:
        """
        ``current`` plus ``period`` units.  When that is not strictly after
        ``as_of`` the fallback applies: ``as_of`` plus ``fallback_years``.
        """
        candidate = add_period(current, period, unit)
        if candidate > as_of:
            return candidate
        fallback = add_months(as_of, 12 * self.policy.fallback_years)
        logger.info(
            "renewal_date_fallback_applied",
            extra={
                "current": current.isoformat(),
                "candidate": candidate.isoformat(),
                "fallback": fallback.isoformat(),
            },
        )
        return fallback

    @staticmethod
    def late_fee_months(due_date: date | None, as_of: date, grace_days: int) -> int:
        """
        Chargeable months for a late fee.

        Nothing is charged until more than ``grace_days`` have passed.  Past
        the grace window each started 30-day month beyond the first counts
        once: 31-60 days late is one month, 61-90 is two.
        """
        if due_date is None:
            return 0
        days_late = (as_of - due_date).days
        if days_late <= grace_days or days_late <= 0:
            return 0
        return max(0, math.ceil(days_late / DAYS_PER_BILLING_MONTH) - 1)
