"""
Benefit Actions (``backoffice_modules.benefits.actions``).

Responsibility
--------------
Declares the business operations on a benefit enrollment and how each
one recomputes money and dates:

    enroll     pending -> enrolled      premium valuation + eligibility
    cancel     pending -> cancelled
    terminate  enrolled -> terminated   premium prorated to the termination date
    renew      enrolled (in place)      new end date + premium revaluation

Architecture position
---------------------
**Modules layer** -- declarative action table.  Hooks call the pure
engines through the ``ActionContext``; configuration tables come from
``ctx.config``.

Invariants enforced
-------------------
* Premiums are always the valuation pipeline's output; nothing else
  writes ``premium``, ``employee_share`` or ``employer_share``.
* Coverage, benefit-type and network values must exist in configuration.
"""

from __future__ import annotations

import dataclasses
from datetime import date
from decimal import Decimal

from backoffice_config.schema import EngineConfiguration
from backoffice_engines.valuation import (
    ValuationResult,
    benefit_premium_request,
    discount_percent_for,
)
from backoffice_kernel.domain.entity import ZERO, EntityKind, LifecycleEntity
from backoffice_kernel.domain.person import PersonSnapshot
from backoffice_kernel.exceptions import ValidationError
from backoffice_kernel.logging_config import get_logger
from backoffice_modules._actions import (
    ActionContext,
    ActionDefinition,
    CreateDefinition,
    CreateRequest,
    increment,
    require_amounts_non_negative,
    require_choice,
    require_date_order,
    with_amounts,
    with_attributes,
)
from backoffice_modules.benefits.models import EligibilityResult

logger = get_logger("modules.benefits.actions")

KIND = EntityKind.BENEFIT
DAYS_PER_YEAR = 365


# -----------------------------------------------------------------------------
# Eligibility and valuation helpers
# -----------------------------------------------------------------------------


def check_eligibility(
    person: PersonSnapshot | None,
    person_id: str,
    config: EngineConfiguration,
    as_of: date,
) -> EligibilityResult:
    """Active, eligible employment type, and at least the minimum service days."""
    if person is None:
        return EligibilityResult(person_id, False, 0, ("employee_not_found",))
    reasons = []
    if not person.active:
        reasons.append("employee_inactive")
    if person.employment_type not in config.eligibility.eligible_employment_types:
        reasons.append(f"employment_type_not_eligible:{person.employment_type}")
    service_days = person.service_days(as_of)
    if service_days < config.eligibility.min_service_days:
        reasons.append("insufficient_service_days")
    return EligibilityResult(person_id, not reasons, service_days, tuple(reasons))


def value_premium(
    entity: LifecycleEntity,
    ctx: ActionContext,
    base_premium: Decimal | None = None,
) -> ValuationResult:
    tables = ctx.config.valuation
    coverage = str(entity.attr("coverage_level"))
    tenure_years = 0
    if ctx.owner is not None:
        tenure_years = ctx.owner.service_days(ctx.as_of) // DAYS_PER_YEAR
    enrolled_count = int(ctx.inputs.get("enrolled_count") or entity.attr("enrolled_count", 0) or 0)

    request = benefit_premium_request(
        base_premium=base_premium if base_premium is not None else entity.amount("base_premium"),
        network_factor=tables.network_factor(str(entity.attr("network_type"))),
        benefit_type_factor=tables.benefit_type_factor(str(entity.attr("benefit_type"))),
        coverage_factor=tables.coverage_factor(coverage),
        employee_percent=tables.split_for(coverage).employee_percent,
        tenure_discount=discount_percent_for(
            tables.tiers_as_pairs(tables.tenure_discounts), tenure_years
        ),
        volume_discount=discount_percent_for(
            tables.tiers_as_pairs(tables.volume_discounts), enrolled_count
        ),
        employee_override=entity.amounts.get("employee_contribution"),
        employer_override=entity.amounts.get("employer_contribution"),
    )
    return ctx.pipeline.compute(request=request)


def _with_premium(entity: LifecycleEntity, result: ValuationResult) -> LifecycleEntity:
    entity = with_amounts(
        entity,
        premium=result.total,
        subtotal=result.subtotal,
        employee_share=result.employee_share,
        employer_share=result.employer_share,
        discount_amount=result.discounts_applied,
    )
    return with_attributes(entity, discount_percent=result.discount_percent)


# -----------------------------------------------------------------------------
# Create
# -----------------------------------------------------------------------------


def prepare_create(request: CreateRequest, config: EngineConfiguration, as_of: date) -> CreateRequest:
    attributes = dict(request.attributes)
    tables = config.valuation
    require_choice(attributes.get("benefit_type"), tables.benefit_type_multipliers, "benefit_type")
    require_choice(attributes.get("network_type"), tables.network_multipliers, "network_type")
    require_choice(attributes.get("coverage_level"), tables.coverage_multipliers, "coverage_level")
    if not request.owner_id:
        raise ValidationError("employee_id", "is required")
    amounts = require_amounts_non_negative(request.amounts)
    if "base_premium" not in amounts:
        raise ValidationError("base_premium", "is required")
    if request.effective_date is None:
        raise ValidationError("effective_date", "is required")
    require_date_order(request.effective_date, request.end_date)
    return dataclasses.replace(request, attributes=attributes, amounts=amounts)


# -----------------------------------------------------------------------------
# Hooks
# -----------------------------------------------------------------------------


def _enroll_precondition(ctx: ActionContext) -> None:
    # An unknown or inactive owner is the guard's concern.
    if ctx.owner is None or not ctx.owner.active:
        return
    result = check_eligibility(ctx.owner, ctx.owner.person_id, ctx.config, ctx.as_of)
    if not result.eligible:
        raise ctx.fail(",".join(result.reasons))


def _enroll_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    entity = _with_premium(entity, value_premium(entity, ctx))
    entity = with_attributes(entity, enrolled_on=ctx.as_of)
    if ctx.has("enrolled_count"):
        # Renewals revalue against the same headcount tier.
        entity = with_attributes(entity, enrolled_count=int(ctx.inputs["enrolled_count"]))
    return entity


def _cancel_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    return with_attributes(
        entity,
        cancelled_on=ctx.as_of,
        cancellation_reason=ctx.text_input("reason", "unspecified"),
    )


def _termination_date(ctx: ActionContext) -> date:
    # Coverage that has not started yet ends on its first day, with nothing used.
    default = ctx.as_of
    starts = ctx.entity.effective_date
    if starts is not None and starts > default:
        default = starts
    return ctx.date_input("termination_date", default)


def _terminate_validate(ctx: ActionContext) -> None:
    termination_date = _termination_date(ctx)
    require_date_order(ctx.entity.effective_date, termination_date, "termination_date")


def _terminate_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    termination_date = _termination_date(ctx)
    premium = entity.amount("premium")
    start = entity.effective_date or termination_date
    end = entity.end_date or termination_date
    proration = ctx.scheduler.prorate_by_elapsed(
        total=premium, start=start, end=end, as_of=termination_date
    )
    entity = with_amounts(
        entity,
        used_premium=proration.amount,
        unused_premium=max(premium - proration.amount, ZERO),
    )
    entity = with_attributes(
        entity,
        termination_date=termination_date,
        termination_reason=ctx.text_input("reason", "unspecified"),
        proration_percentage=proration.percentage,
    )
    return dataclasses.replace(entity, end_date=termination_date)


def _renew_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    renewal = ctx.config.renewal
    period = int(ctx.inputs.get("period") or renewal.period)
    unit = ctx.text_input("unit", renewal.unit)
    current_end = entity.end_date or ctx.as_of
    new_end = ctx.scheduler.next_renewal_date(
        current=current_end, period=period, unit=unit, as_of=ctx.as_of
    )
    base = ctx.decimal_input("base_premium")
    if base is not None:
        entity = with_amounts(entity, base_premium=base)
    entity = _with_premium(entity, value_premium(entity, ctx))
    entity = with_attributes(
        entity,
        renewed_on=ctx.as_of,
        renewal_count=increment(entity, "renewal_count"),
        previous_end_date=entity.end_date,
    )
    return dataclasses.replace(entity, end_date=new_end)


# -----------------------------------------------------------------------------
# Action table
# -----------------------------------------------------------------------------

ENROLL = ActionDefinition(
    kind=KIND,
    name="enroll",
    description="Confirm enrollment and compute the premium breakdown",
    to_status="enrolled",
    precondition=_enroll_precondition,
    apply=_enroll_apply,
    needs_owner=True,
)

CANCEL = ActionDefinition(
    kind=KIND,
    name="cancel",
    description="Withdraw a pending enrollment",
    to_status="cancelled",
    apply=_cancel_apply,
)

TERMINATE = ActionDefinition(
    kind=KIND,
    name="terminate",
    description="End coverage, prorating the premium to the termination date",
    to_status="terminated",
    validate=_terminate_validate,
    apply=_terminate_apply,
)

RENEW = ActionDefinition(
    kind=KIND,
    name="renew",
    description="Extend coverage by the renewal period and revalue the premium",
    in_place_from=("enrolled",),
    apply=_renew_apply,
    needs_owner=True,
)

ACTIONS: tuple[ActionDefinition, ...] = (ENROLL, CANCEL, TERMINATE, RENEW)

CREATE = CreateDefinition(kind=KIND, prepare=prepare_create)
