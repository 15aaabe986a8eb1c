"""
EngineConfiguration schema.

The typed, frozen form of ``defaults/engine.yaml``: multiplier tables,
contribution splits, discount tiers, late-fee policy, scheduling
thresholds, renewal defaults, eligibility rules, invoice terms, training
rules and event delivery settings.  The loader parses YAML into these
types; nothing downstream ever sees raw YAML.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from backoffice_kernel.exceptions import ValidationError

_HUNDRED = Decimal("100")


# ---------------------------------------------------------------------------
# Valuation tables
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ContributionSplit:
    """Employee/employer percentage pair for one coverage level."""

    employee_percent: Decimal
    employer_percent: Decimal

    def __post_init__(self) -> None:
        if self.employee_percent + self.employer_percent != _HUNDRED:
            raise ValueError(
                f"Contribution split must sum to 100, got "
                f"{self.employee_percent} + {self.employer_percent}"
            )


@dataclass(frozen=True)
class DiscountTier:
    """Discount ``percent`` applies once the measured value reaches ``threshold``."""

    threshold: Decimal
    percent: Decimal

    def __post_init__(self) -> None:
        if self.threshold < 0 or not Decimal("0") <= self.percent <= _HUNDRED:
            raise ValueError(f"Invalid discount tier {self.threshold}:{self.percent}")


def _lookup(table: dict[str, Decimal], key: str, field_name: str) -> Decimal:
    try:
        return table[key]
    except KeyError:
        raise ValidationError(
            field_name, f"must be one of {', '.join(sorted(table))}", key
        ) from None


@dataclass(frozen=True)
class ValuationTables:
    network_multipliers: dict[str, Decimal]
    benefit_type_multipliers: dict[str, Decimal]
    coverage_multipliers: dict[str, Decimal]
    contribution_splits: dict[str, ContributionSplit]
    tenure_discounts: tuple[DiscountTier, ...] = ()
    volume_discounts: tuple[DiscountTier, ...] = ()

    def __post_init__(self) -> None:
        missing = set(self.coverage_multipliers) - set(self.contribution_splits)
        if missing:
            raise ValueError(
                f"Coverage levels without a contribution split: {', '.join(sorted(missing))}"
            )

    def network_factor(self, network_type: str) -> Decimal:
        return _lookup(self.network_multipliers, network_type, "network_type")

    def benefit_type_factor(self, benefit_type: str) -> Decimal:
        return _lookup(self.benefit_type_multipliers, benefit_type, "benefit_type")

    def coverage_factor(self, coverage_level: str) -> Decimal:
        return _lookup(self.coverage_multipliers, coverage_level, "coverage_level")

    def split_for(self, coverage_level: str) -> ContributionSplit:
        try:
            return self.contribution_splits[coverage_level]
        except KeyError:
            raise ValidationError(
                "coverage_level",
                f"must be one of {', '.join(sorted(self.contribution_splits))}",
                coverage_level,
            ) from None

    @staticmethod
    def tiers_as_pairs(tiers: tuple[DiscountTier, ...]) -> tuple[tuple[Decimal, Decimal], ...]:
        return tuple((t.threshold, t.percent) for t in tiers)


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LateFeePolicy:
    percent_per_month: Decimal = Decimal("5")
    grace_days: int = 30


@dataclass(frozen=True)
class SchedulingThresholds:
    urgent_days: int = 7
    due_soon_days: int = 14
    renewal_window_days: int = 30

    def __post_init__(self) -> None:
        if not 0 <= self.urgent_days <= self.due_soon_days:
            raise ValueError(
                f"urgent_days ({self.urgent_days}) must lie between 0 and"
                f" due_soon_days ({self.due_soon_days})"
            )


@dataclass(frozen=True)
class RenewalDefaults:
    period: int = 1
    unit: str = "years"
    fallback_years: int = 1


@dataclass(frozen=True)
class EligibilityRules:
    min_service_days: int = 90
    eligible_employment_types: tuple[str, ...] = ("full_time", "part_time")


@dataclass(frozen=True)
class InvoiceTerms:
    payment_terms_days: int = 30


@dataclass(frozen=True)
class TrainingRules:
    certification_validity: int = 1
    certification_validity_unit: str = "years"
    min_score: Decimal = Decimal("0")
    max_score: Decimal = Decimal("100")
    min_rating: Decimal = Decimal("1.0")
    max_rating: Decimal = Decimal("5.0")


@dataclass(frozen=True)
class EventDelivery:
    max_workers: int = 4
    max_attempts: int = 3
    backoff_seconds: float = 0.5


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineConfiguration:
    """
    Root configuration object.

    Contract:
        Frozen; produced only by ``backoffice_config.loader``.
    Guarantees:
        - ``checksum`` is the SHA-256 of the canonical source document.
    """

    config_id: str
    version: int
    effective_from: date
    valuation: ValuationTables
    late_fees: LateFeePolicy = field(default_factory=LateFeePolicy)
    scheduling: SchedulingThresholds = field(default_factory=SchedulingThresholds)
    renewal: RenewalDefaults = field(default_factory=RenewalDefaults)
    eligibility: EligibilityRules = field(default_factory=EligibilityRules)
    invoicing: InvoiceTerms = field(default_factory=InvoiceTerms)
    training: TrainingRules = field(default_factory=TrainingRules)
    delivery: EventDelivery = field(default_factory=EventDelivery)
    checksum: str = ""
