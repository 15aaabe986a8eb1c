"""
Module: backoffice_engines
Responsibility:
    Package entrypoint re-exporting the pure engines: state machine,
    valuation pipeline, temporal scheduler and contract metrics.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import backoffice_kernel domain objects, exceptions and logging.
    MUST NOT import backoffice_config, backoffice_services or
    backoffice_modules.

Invariants enforced:
    - Purity: engines never call ``datetime.now()`` or ``date.today()``;
      dates arrive as explicit parameters.
    - Decimal-only arithmetic for money.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Engine entry points are wrapped with ``@traced_engine`` and emit
    BACKOFFICE_ENGINE_TRACE records.
"""

from backoffice_engines.contract_metrics import (
    ContractMetrics,
    ContractMetricsCalculator,
    ContractTerms,
    FinancialImpact,
)
from backoffice_engines.scheduling import (
    ExpiryStatus,
    PeriodUnit,
    ProrationResult,
    SchedulingPolicy,
    TemporalScheduler,
    add_months,
    add_period,
)
from backoffice_engines.state_machine import StateMachine
from backoffice_engines.tracer import traced_engine
from backoffice_engines.valuation import (
    Deduction,
    DeductionKind,
    Multiplier,
    SplitPolicy,
    ValuationPipeline,
    ValuationRequest,
    ValuationResult,
    benefit_premium_request,
    contract_commission_request,
    discount_percent_for,
    late_fee_request,
)

__all__ = [
    "ContractMetrics",
    "ContractMetricsCalculator",
    "ContractTerms",
    "Deduction",
    "DeductionKind",
    "ExpiryStatus",
    "FinancialImpact",
    "Multiplier",
    "PeriodUnit",
    "ProrationResult",
    "SchedulingPolicy",
    "SplitPolicy",
    "StateMachine",
    "TemporalScheduler",
    "ValuationPipeline",
    "ValuationRequest",
    "ValuationResult",
    "add_months",
    "add_period",
    "benefit_premium_request",
    "contract_commission_request",
    "discount_percent_for",
    "late_fee_request",
    "traced_engine",
]
