"""
backoffice_engines.valuation -- Multi-stage monetary valuation pipeline.

Responsibility:
    Turn a base amount into a final cost/contribution breakdown through a
    fixed sequence of stages:

        base -> multipliers -> contribution split -> discounts / fees -> rounding

    Used for benefit premiums (network, benefit-type and coverage-level
    factors; employee/employer split; tenure and volume discounts),
    contract commissions (split by commission rate) and late fees on
    invoices and payments.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Factors and percentages are looked up by the caller from configuration
    and passed in; this module never reads configuration itself.

Invariants enforced:
    - Decimal-only arithmetic; percentages are 0-100 values converted to a
      0-1 factor at the point of multiplication.
    - Multipliers apply in the order given; reordering them is a breaking
      change.
    - Discounts are summed once and clamped to [0, 100]; the total is
      never negative.
    - Fees are added to the total only; shares are untouched by fees.
    - Rounding happens once, at the end, to 2 places ROUND_HALF_UP.
    - A computed split satisfies employee + employer == net to the cent,
      where net is the total before fees.

Failure modes:
    - ValidationError for a negative base amount, a negative factor, a
      negative deduction percentage, or an employee percentage outside
      0-100.  Zero bases are not errors: they produce zero outputs.

Audit relevance:
    ``compute`` is traced via ``@traced_engine`` with a fingerprint of the
    whole request, so identical requests are provably identical.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from backoffice_kernel.domain.entity import HUNDRED, ZERO, round_money, to_decimal
from backoffice_kernel.exceptions import ValidationError
from backoffice_kernel.logging_config import get_logger
from backoffice_engines.tracer import traced_engine

logger = get_logger("engines.valuation")


class DeductionKind(str, Enum):
    """Discounts reduce every amount; fees increase the total only."""

    DISCOUNT = "discount"
    FEE = "fee"


@dataclass(frozen=True)
class Multiplier:
    """A named factor applied to the running amount (e.g. network_type 0.85)."""

    name: str
    factor: Decimal

    def __post_init__(self) -> None:
        if self.factor < 0:
            raise ValidationError(self.name, "multiplier factor cannot be negative", self.factor)


@dataclass(frozen=True)
class SplitPolicy:
    """
    How the total divides between employee and employer.

    An explicit override wins when either override amount is non-zero; a
    missing side of the override counts as zero.  Otherwise
    ``employee_percent`` of the total goes to the employee and the
    remainder to the employer.
    """

    employee_percent: Decimal = ZERO
    employee_override: Decimal | None = None
    employer_override: Decimal | None = None

    def __post_init__(self) -> None:
        if not ZERO <= self.employee_percent <= HUNDRED:
            raise ValidationError(
                "employee_percent", "must be between 0 and 100", self.employee_percent
            )
        for name, value in (
            ("employee_override", self.employee_override),
            ("employer_override", self.employer_override),
        ):
            if value is not None and value < 0:
                raise ValidationError(name, "cannot be negative", value)

    @property
    def has_override(self) -> bool:
        return bool(self.employee_override) or bool(self.employer_override)


@dataclass(frozen=True)
class Deduction:
    """A percentage adjustment.  ``percent`` is 0-100 for discounts."""

    name: str
    percent: Decimal
    kind: DeductionKind = DeductionKind.DISCOUNT

    def __post_init__(self) -> None:
        if self.percent < 0:
            raise ValidationError(self.name, "deduction percent cannot be negative", self.percent)


@dataclass(frozen=True)
class ValuationRequest:
    """Transient input to ``ValuationPipeline.compute``.  Never persisted."""

    base_amount: Decimal
    multipliers: tuple[Multiplier, ...] = ()
    split_policy: SplitPolicy | None = None
    deductions: tuple[Deduction, ...] = ()

    def __post_init__(self) -> None:
        if self.base_amount < 0:
            raise ValidationError("base_amount", "cannot be negative", self.base_amount)


@dataclass(frozen=True)
class ValuationResult:
    """
    Rounded outputs of the pipeline.

    ``subtotal`` is the amount after multipliers; ``net`` after discounts;
    ``total`` after fees.  ``discounts_applied`` and ``fees_applied`` are
    the money amounts the deduction stage removed and added.
    """

    subtotal: Decimal
    net: Decimal
    total: Decimal
    employee_share: Decimal
    employer_share: Decimal
    discount_percent: Decimal
    discounts_applied: Decimal
    fee_percent: Decimal
    fees_applied: Decimal
    split_overridden: bool = False

    def to_amounts(self, total_name: str = "total") -> dict[str, Decimal]:
        """Named amounts ready to merge into ``LifecycleEntity.amounts``."""
        return {
            "subtotal": self.subtotal,
            total_name: self.total,
            "employee_share": self.employee_share,
            "employer_share": self.employer_share,
            "discount_amount": self.discounts_applied,
            "fee_amount": self.fees_applied,
        }


class ValuationPipeline:
    """
    Pure valuation pipeline.

    Contract:
        No I/O, no database access, fully deterministic.
    Guarantees:
        - Same request, same result.
        - Feeding ``result.total`` back in as the base with no new inputs
          returns the same total (rounded amounts are fixed points).
    Non-goals:
        - No currency handling; every amount is in one implied currency.
        - No tax calculation.
    """

    @traced_engine("valuation", "1.0", fingerprint_fields=("request",))
    def compute(self, request: ValuationRequest) -> ValuationResult:
        # Stage 1: base
        amount = request.base_amount

        # Stage 2: multipliers, in order
        for multiplier in request.multipliers:
            amount = amount * multiplier.factor
        subtotal = amount

        # Stage 3: split
        policy = request.split_policy
        overridden = policy is not None and policy.has_override
        if policy is None:
            employee = employer = ZERO
        elif overridden:
            employee = policy.employee_override or ZERO
            employer = policy.employer_override or ZERO
        else:
            employee = subtotal * policy.employee_percent / HUNDRED
            employer = subtotal - employee

        # Stage 4: deductions
        discount_pct = sum(
            (d.percent for d in request.deductions if d.kind == DeductionKind.DISCOUNT),
            ZERO,
        )
        discount_pct = min(max(discount_pct, ZERO), HUNDRED)
        fee_pct = sum(
            (d.percent for d in request.deductions if d.kind == DeductionKind.FEE),
            ZERO,
        )
        keep = (HUNDRED - discount_pct) / HUNDRED
        net = subtotal * keep
        employee = employee * keep
        employer = employer * keep
        total = net + net * fee_pct / HUNDRED

        # Stage 5: rounding, once
        subtotal_r = round_money(subtotal)
        net_r = round_money(net)
        total_r = round_money(total)
        employee_r = round_money(employee)
        if policy is not None and not overridden:
            employer_r = net_r - employee_r
        else:
            employer_r = round_money(employer)

        result = ValuationResult(
            subtotal=subtotal_r,
            net=net_r,
            total=total_r,
            employee_share=employee_r,
            employer_share=employer_r,
            discount_percent=discount_pct,
            discounts_applied=subtotal_r - net_r,
            fee_percent=fee_pct,
            fees_applied=total_r - net_r,
            split_overridden=overridden,
        )
        logger.debug(
            "valuation_computed",
            extra={
                "base_amount": str(request.base_amount),
                "subtotal": str(result.subtotal),
                "total": str(result.total),
                "discount_percent": str(discount_pct),
                "fee_percent": str(fee_pct),
            },
        )
        return result


# ---------------------------------------------------------------------------
# Request builders
# ---------------------------------------------------------------------------


def discount_percent_for(
    tiers: Sequence[tuple[Decimal | int, Decimal]],
    value: Decimal | int,
) -> Decimal:
    """
    Percentage of the highest tier whose threshold ``value`` reaches.

    ``tiers`` is a sequence of ``(threshold, percent)``; order does not
    matter.  Below the lowest threshold the discount is zero.
    """
    best_threshold: Decimal | None = None
    best = ZERO
    for threshold, percent in tiers:
        t = to_decimal(threshold, "threshold")
        if to_decimal(value, "value") >= t and (best_threshold is None or t > best_threshold):
            best_threshold = t
            best = to_decimal(percent, "percent")
    return best


def benefit_premium_request(
    base_premium: Decimal,
    network_factor: Decimal,
    benefit_type_factor: Decimal,
    coverage_factor: Decimal,
    employee_percent: Decimal,
    tenure_discount: Decimal = ZERO,
    volume_discount: Decimal = ZERO,
    employee_override: Decimal | None = None,
    employer_override: Decimal | None = None,
) -> ValuationRequest:
    """Premium request in the canonical factor order: network, benefit type, coverage."""
    deductions = []
    if tenure_discount:
        deductions.append(Deduction("tenure_discount", tenure_discount))
    if volume_discount:
        deductions.append(Deduction("volume_discount", volume_discount))
    return ValuationRequest(
        base_amount=base_premium,
        multipliers=(
            Multiplier("network_type", network_factor),
            Multiplier("benefit_type", benefit_type_factor),
            Multiplier("coverage_level", coverage_factor),
        ),
        split_policy=SplitPolicy(
            employee_percent=employee_percent,
            employee_override=employee_override,
            employer_override=employer_override,
        ),
        deductions=tuple(deductions),
    )


def contract_commission_request(
    contract_value: Decimal,
    commission_rate: Decimal,
    volume_discount: Decimal = ZERO,
) -> ValuationRequest:
    """Split a contract value into commission (employee side) and net (employer side)."""
    deductions = (Deduction("volume_discount", volume_discount),) if volume_discount else ()
    return ValuationRequest(
        base_amount=contract_value,
        split_policy=SplitPolicy(employee_percent=commission_rate),
        deductions=deductions,
    )


def late_fee_request(amount: Decimal, fee_percent: Decimal) -> ValuationRequest:
    """Owed amount plus a percentage late fee.  No split."""
    deductions = (Deduction("late_fee", fee_percent, DeductionKind.FEE),) if fee_percent else ()
    return ValuationRequest(base_amount=amount, deductions=deductions)
