"""
Module: backoffice_engines.contract_metrics
Responsibility:
    Derive reporting metrics for a provider contract: value including
    commission and bonus, commission amount, days remaining and elapsed,
    completion percentage, renewal probability, performance score and
    financial impact (net, monthly, daily, ROI).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Uses ``TemporalScheduler`` for day counts and completion.

Invariants enforced:
    - Scores and probabilities are clamped to [0, 100].
    - Monetary outputs are rounded once to 2 places, ROUND_HALF_UP.
    - Missing inputs resolve to zero, never to an error.

Usage:
    calc = ContractMetricsCalculator()
    metrics = calc.calculate(ContractTerms(...), as_of=date(2024, 6, 1))
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from backoffice_kernel.domain.entity import HUNDRED, ZERO, round_money
from backoffice_kernel.logging_config import get_logger
from backoffice_engines.scheduling import TemporalScheduler
from backoffice_engines.tracer import traced_engine

logger = get_logger("engines.contract_metrics")

_SCORE_QUANT = Decimal("0.01")
_BASE_SCORE = Decimal("50")

# Status adjustments to the base renewal probability
_STATUS_RENEWAL_ADJUSTMENT: dict[str, Decimal] = {
    "active": Decimal("20"),
    "pending_renewal": Decimal("20"),
    "suspended": Decimal("-30"),
    "expired": Decimal("-20"),
}
_AUTO_RENEWAL_BONUS = Decimal("25")


def _clamp_score(value: Decimal) -> Decimal:
    value = min(max(value, ZERO), HUNDRED)
    return value.quantize(_SCORE_QUANT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class ContractTerms:
    """Inputs to the metrics calculation, read off a contract entity."""

    status: str
    contract_value: Decimal = ZERO
    commission_rate: Decimal = ZERO
    bonus: Decimal = ZERO
    start_date: date | None = None
    end_date: date | None = None
    auto_renewal: bool = False
    performance_score: Decimal | None = None
    actual_value: Decimal | None = None
    investment_amount: Decimal | None = None


@dataclass(frozen=True)
class FinancialImpact:
    total_value: Decimal
    commission_amount: Decimal
    net_value: Decimal
    monthly_value: Decimal
    daily_value: Decimal
    roi_percentage: Decimal


@dataclass(frozen=True)
class ContractMetrics:
    contract_value: Decimal
    commission_amount: Decimal
    days_remaining: int
    days_elapsed: int
    completion_percentage: Decimal
    renewal_probability: Decimal
    performance_score: Decimal
    financial_impact: FinancialImpact


class ContractMetricsCalculator:
    """
    Pure calculator for contract metrics.

    Contract:
        No I/O; ``as_of`` is explicit.
    Guarantees:
        - Terminated and cancelled contracts have zero renewal probability.
        - ``contract_value`` = base value + commission + bonus.
    """

    def __init__(self, scheduler: TemporalScheduler | None = None):
        self._scheduler = scheduler or TemporalScheduler()

    @traced_engine("contract_metrics", "1.0", fingerprint_fields=("terms", "as_of"))
    def calculate(self, terms: ContractTerms, as_of: date) -> ContractMetrics:
        commission = self.commission_amount(terms)
        total_value = terms.contract_value + commission + terms.bonus
        days_remaining = self.days_remaining(terms, as_of)
        days_elapsed = self.days_elapsed(terms, as_of)
        completion = self.completion_percentage(terms, as_of)

        metrics = ContractMetrics(
            contract_value=round_money(total_value),
            commission_amount=round_money(commission),
            days_remaining=days_remaining,
            days_elapsed=days_elapsed,
            completion_percentage=completion,
            renewal_probability=self.renewal_probability(terms),
            performance_score=self.performance_score(
                terms, completion, days_remaining, days_elapsed
            ),
            financial_impact=self.financial_impact(terms, total_value, commission),
        )
        logger.info(
            "contract_metrics_calculated",
            extra={
                "contract_value": str(metrics.contract_value),
                "completion_percentage": str(metrics.completion_percentage),
                "renewal_probability": str(metrics.renewal_probability),
            },
        )
        return metrics

    @staticmethod
    def commission_amount(terms: ContractTerms) -> Decimal:
        if not terms.commission_rate or not terms.contract_value:
            return ZERO
        return terms.contract_value * terms.commission_rate / HUNDRED

    def days_remaining(self, terms: ContractTerms, as_of: date) -> int:
        if terms.end_date is None or terms.end_date < as_of:
            return 0
        return self._scheduler.days_between(as_of, terms.end_date)

    def days_elapsed(self, terms: ContractTerms, as_of: date) -> int:
        if terms.start_date is None or terms.start_date > as_of:
            return 0
        return self._scheduler.days_between(terms.start_date, as_of)

    def completion_percentage(self, terms: ContractTerms, as_of: date) -> Decimal:
        if terms.start_date is None or terms.end_date is None:
            return ZERO
        return self._scheduler.prorate_by_elapsed(
            total=ZERO, start=terms.start_date, end=terms.end_date, as_of=as_of
        ).percentage

    @staticmethod
    def renewal_probability(terms: ContractTerms) -> Decimal:
        if terms.status in ("terminated", "cancelled"):
            return ZERO
        probability = _BASE_SCORE + _STATUS_RENEWAL_ADJUSTMENT.get(terms.status, ZERO)
        if terms.auto_renewal:
            probability += _AUTO_RENEWAL_BONUS
        if terms.performance_score is not None:
            probability += (terms.performance_score - _BASE_SCORE) * Decimal("0.5")
        return _clamp_score(probability)

    @staticmethod
    def performance_score(
        terms: ContractTerms,
        completion: Decimal,
        days_remaining: int,
        days_elapsed: int,
    ) -> Decimal:
        score = _BASE_SCORE + (completion - _BASE_SCORE) * Decimal("0.3")

        if days_elapsed > 0:
            time_ratio = Decimal(days_remaining) / Decimal(days_elapsed)
            if time_ratio > 1:
                score += Decimal("10")
            elif time_ratio < Decimal("0.8"):
                score -= Decimal("15")

        if terms.contract_value and terms.actual_value is not None:
            value_ratio = terms.actual_value / terms.contract_value
            if value_ratio > 1:
                score += Decimal("15")
            elif value_ratio < Decimal("0.8"):
                score -= Decimal("10")

        return _clamp_score(score)

    @staticmethod
    def financial_impact(
        terms: ContractTerms,
        total_value: Decimal,
        commission: Decimal,
    ) -> FinancialImpact:
        roi = ZERO
        if terms.contract_value and terms.investment_amount:
            profit = terms.contract_value - terms.investment_amount
            roi = (profit / terms.investment_amount * HUNDRED).quantize(
                _SCORE_QUANT, rounding=ROUND_HALF_UP
            )
        return FinancialImpact(
            total_value=round_money(total_value),
            commission_amount=round_money(commission),
            net_value=round_money(total_value - commission),
            monthly_value=round_money(total_value / Decimal("12")),
            daily_value=round_money(total_value / Decimal("365")),
            roi_percentage=roi,
        )
