"""
Contract Actions (``backoffice_modules.contracts.actions``).

Responsibility
--------------
Business operations on a provider contract:

    sign          draft -> active                 commission split of the value
    suspend       active -> suspended
    resume        suspended -> active
    flag_renewal  active -> pending_renewal       only inside the renewal window
    renew         pending_renewal -> active       new end date, optional new value
                  (or in place on an active contract)
    terminate     active|suspended|pending_renewal -> terminated
    expire        active|pending_renewal -> expired   only once the end date passed
    cancel        draft -> cancelled

Architecture position
---------------------
**Modules layer** -- declarative action table over the pure engines.
"""

from __future__ import annotations

import dataclasses
from datetime import date

from backoffice_config.schema import EngineConfiguration
from backoffice_engines.contract_metrics import ContractTerms
from backoffice_engines.valuation import contract_commission_request, discount_percent_for
from backoffice_kernel.domain.entity import ZERO, HUNDRED, EntityKind, LifecycleEntity, to_decimal
from backoffice_kernel.exceptions import ValidationError
from backoffice_modules._actions import (
    ActionContext,
    ActionDefinition,
    CreateDefinition,
    CreateRequest,
    decimal_attr,
    increment,
    require_amounts_non_negative,
    require_date_order,
    with_amounts,
    with_attributes,
)

KIND = EntityKind.CONTRACT


def contract_terms(entity: LifecycleEntity) -> ContractTerms:
    """Read the metrics inputs off a contract entity."""
    score = entity.attr("performance_score")
    return ContractTerms(
        status=entity.status,
        contract_value=entity.amount("contract_value"),
        commission_rate=decimal_attr(entity, "commission_rate"),
        bonus=entity.amount("bonus"),
        start_date=entity.effective_date,
        end_date=entity.end_date,
        auto_renewal=bool(entity.attr("auto_renewal", False)),
        performance_score=to_decimal(score, "performance_score") if score not in (None, "") else None,
        actual_value=entity.amounts.get("actual_value"),
        investment_amount=entity.amounts.get("investment_amount"),
    )


def _with_commission(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    active_contracts = int(ctx.inputs.get("active_contracts") or 0)
    tables = ctx.config.valuation
    result = ctx.pipeline.compute(
        request=contract_commission_request(
            contract_value=entity.amount("contract_value"),
            commission_rate=decimal_attr(entity, "commission_rate"),
            volume_discount=discount_percent_for(
                tables.tiers_as_pairs(tables.volume_discounts), active_contracts
            ),
        )
    )
    return with_amounts(
        entity,
        commission_amount=result.employee_share,
        net_value=result.employer_share,
        discount_amount=result.discounts_applied,
    )


# -----------------------------------------------------------------------------
# Create
# -----------------------------------------------------------------------------


def prepare_create(request: CreateRequest, config: EngineConfiguration, as_of: date) -> CreateRequest:
    # Drafts may be incomplete; the sign guard checks completeness.
    attributes = dict(request.attributes)
    amounts = require_amounts_non_negative(request.amounts)
    rate = attributes.get("commission_rate")
    if rate not in (None, ""):
        rate = to_decimal(rate, "commission_rate")
        if not ZERO <= rate <= HUNDRED:
            raise ValidationError("commission_rate", "must be between 0 and 100", str(rate))
        attributes["commission_rate"] = str(rate)
    if request.owner_id and not attributes.get("provider_id"):
        attributes["provider_id"] = request.owner_id
    require_date_order(request.effective_date, request.end_date)
    owner_id = request.owner_id or attributes.get("provider_id")
    return dataclasses.replace(
        request,
        attributes=attributes,
        amounts=amounts,
        owner_id=str(owner_id) if owner_id else None,
    )


# -----------------------------------------------------------------------------
# Hooks
# -----------------------------------------------------------------------------


def _sign_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    entity = _with_commission(entity, ctx)
    return with_attributes(entity, signed_on=ctx.as_of, signed_by=ctx.actor_id)


def _suspend_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    return with_attributes(
        entity,
        suspended_on=ctx.as_of,
        suspension_reason=ctx.text_input("reason", "unspecified"),
    )


def _resume_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    return with_attributes(entity, resumed_on=ctx.as_of)


def _flag_renewal_precondition(ctx: ActionContext) -> None:
    if not ctx.scheduler.within_renewal_window(ctx.entity.end_date, ctx.as_of):
        raise ctx.fail("outside_renewal_window")


def _flag_renewal_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    return with_attributes(entity, renewal_flagged_on=ctx.as_of)


def _renew_validate(ctx: ActionContext) -> None:
    ctx.decimal_input("contract_value")
    period = ctx.inputs.get("period")
    if period is None:
        return
    try:
        valid = int(period) > 0
    except (TypeError, ValueError):
        valid = False
    if not valid:
        raise ValidationError("period", "must be a positive integer", period)


def _renew_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    renewal = ctx.config.renewal
    new_end = ctx.scheduler.next_renewal_date(
        current=entity.end_date or ctx.as_of,
        period=int(ctx.inputs.get("period") or renewal.period),
        unit=ctx.text_input("unit", renewal.unit),
        as_of=ctx.as_of,
    )
    new_value = ctx.decimal_input("contract_value")
    if new_value is not None:
        entity = with_amounts(entity, contract_value=new_value)
    entity = _with_commission(entity, ctx)
    entity = with_attributes(
        entity,
        renewed_on=ctx.as_of,
        renewal_count=increment(entity, "renewal_count"),
        previous_end_date=entity.end_date,
    )
    return dataclasses.replace(entity, end_date=new_end)


def _terminate_validate(ctx: ActionContext) -> None:
    termination_date = ctx.date_input("termination_date", ctx.as_of)
    require_date_order(ctx.entity.effective_date, termination_date, "termination_date")


def _terminate_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    termination_date = ctx.date_input("termination_date", ctx.as_of)
    entity = with_attributes(
        entity,
        termination_date=termination_date,
        termination_reason=ctx.text_input("reason", "unspecified"),
        original_end_date=entity.end_date,
    )
    return dataclasses.replace(entity, end_date=termination_date)


def _expire_precondition(ctx: ActionContext) -> None:
    end = ctx.entity.end_date
    if end is None or end >= ctx.as_of:
        raise ctx.fail("end_date_not_reached")


def _expire_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    return with_attributes(entity, expired_on=ctx.as_of)


def _cancel_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    return with_attributes(
        entity,
        cancelled_on=ctx.as_of,
        cancellation_reason=ctx.text_input("reason", "unspecified"),
    )


# -----------------------------------------------------------------------------
# Action table
# -----------------------------------------------------------------------------

SIGN = ActionDefinition(
    kind=KIND, name="sign",
    description="Activate a complete draft and split commission from the value",
    to_status="active", apply=_sign_apply,
)

SUSPEND = ActionDefinition(
    kind=KIND, name="suspend", description="Put an active contract on hold",
    to_status="suspended", apply=_suspend_apply,
)

RESUME = ActionDefinition(
    kind=KIND, name="resume", description="Reactivate a suspended contract",
    to_status="active", apply=_resume_apply,
)

FLAG_RENEWAL = ActionDefinition(
    kind=KIND, name="flag_renewal",
    description="Mark an active contract nearing its end date for renewal",
    to_status="pending_renewal",
    precondition=_flag_renewal_precondition, apply=_flag_renewal_apply,
)

RENEW = ActionDefinition(
    kind=KIND, name="renew", description="Extend the contract term",
    to_status="active", in_place_from=("active",),
    validate=_renew_validate, apply=_renew_apply,
)

TERMINATE = ActionDefinition(
    kind=KIND, name="terminate", description="End the contract early",
    to_status="terminated", validate=_terminate_validate, apply=_terminate_apply,
)

EXPIRE = ActionDefinition(
    kind=KIND, name="expire", description="Close a contract whose end date has passed",
    to_status="expired", precondition=_expire_precondition, apply=_expire_apply,
)

CANCEL = ActionDefinition(
    kind=KIND, name="cancel", description="Discard a draft contract",
    to_status="cancelled", apply=_cancel_apply,
)

ACTIONS: tuple[ActionDefinition, ...] = (
    SIGN, SUSPEND, RESUME, FLAG_RENEWAL, RENEW, TERMINATE, EXPIRE, CANCEL,
)

CREATE = CreateDefinition(kind=KIND, prepare=prepare_create)
