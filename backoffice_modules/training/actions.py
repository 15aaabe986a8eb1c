"""
Training Actions (``backoffice_modules.training.actions``).

Responsibility
--------------
Business operations on an employee training record:

    start            not_started -> in_progress; completed|failed -> in_progress (retake)
    record_progress  in_progress (in place)        hours completed so far
    complete         in_progress -> completed      hours must reach total hours
    fail             in_progress -> failed
    cancel           not_started|in_progress|failed -> cancelled
    reactivate       cancelled -> not_started
    renew            completed (in place)          certifications only

Hours are kept as decimal strings in ``attributes`` (``total_hours``,
``hours_completed``).  Certifications carry ``certification_expires_on``.

Architecture position
---------------------
**Modules layer** -- declarative action table over the pure engines.

Invariants enforced
-------------------
* ``0 <= hours_completed <= total_hours``.
* Scores lie in the configured score range; ratings in the rating range.
"""

from __future__ import annotations

import dataclasses
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from backoffice_config.schema import EngineConfiguration
from backoffice_kernel.domain.entity import HUNDRED, ZERO, EntityKind, LifecycleEntity, to_decimal
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
    with_attributes,
)
from backoffice_modules.training.models import TrainingProgress

KIND = EntityKind.TRAINING
_PCT = Decimal("0.01")


def progress(entity: LifecycleEntity, hours_completed: Decimal | None = None) -> TrainingProgress:
    total = decimal_attr(entity, "total_hours")
    hours = decimal_attr(entity, "hours_completed") if hours_completed is None else hours_completed
    percentage = ZERO
    if total > ZERO:
        percentage = min(hours / total * HUNDRED, HUNDRED).quantize(_PCT, rounding=ROUND_HALF_UP)
    return TrainingProgress(hours_completed=hours, total_hours=total, percentage=percentage)


def _check_range(ctx: ActionContext, name: str, low: Decimal, high: Decimal) -> Decimal | None:
    value = ctx.decimal_input(name, allow_negative=True)
    if value is not None and not low <= value <= high:
        raise ValidationError(name, f"must be between {low} and {high}", str(value))
    return value


def _certification_expiry(ctx: ActionContext, start: date) -> date:
    rules = ctx.config.training
    return ctx.scheduler.next_renewal_date(
        current=start,
        period=rules.certification_validity,
        unit=rules.certification_validity_unit,
        as_of=ctx.as_of,
    )


# -----------------------------------------------------------------------------
# Create
# -----------------------------------------------------------------------------


def prepare_create(request: CreateRequest, config: EngineConfiguration, as_of: date) -> CreateRequest:
    attributes = dict(request.attributes)
    if not request.owner_id:
        raise ValidationError("employee_id", "is required")
    if not attributes.get("training_name"):
        raise ValidationError("training_name", "is required")
    total = to_decimal(attributes.get("total_hours"), "total_hours")
    if total <= ZERO:
        raise ValidationError("total_hours", "must be positive", str(total))
    attributes["total_hours"] = str(total)
    attributes["hours_completed"] = "0"
    attributes["is_certification"] = bool(attributes.get("is_certification", False))
    require_date_order(request.effective_date, request.end_date)
    return dataclasses.replace(
        request,
        attributes=attributes,
        amounts=require_amounts_non_negative(request.amounts),
    )


# -----------------------------------------------------------------------------
# Hooks
# -----------------------------------------------------------------------------


def _start_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    retake = ctx.entity.status in ("completed", "failed")
    attributes = {
        "started_on": ctx.as_of,
        "attempts": increment(entity, "attempts"),
    }
    if retake:
        attributes.update(
            hours_completed="0",
            progress_percentage=ZERO,
            previous_score=entity.attr("score"),
            score=None,
            retake_of_status=ctx.entity.status,
        )
    return with_attributes(entity, **attributes)


def _progress_validate(ctx: ActionContext) -> None:
    hours = ctx.decimal_input("hours_completed", required=True)
    total = decimal_attr(ctx.entity, "total_hours")
    if hours > total:
        raise ValidationError(
            "hours_completed", f"cannot exceed total hours {total}", str(hours)
        )


def _progress_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    hours = ctx.decimal_input("hours_completed", required=True)
    return with_attributes(
        entity,
        hours_completed=hours,
        progress_percentage=progress(entity, hours).percentage,
        last_progress_on=ctx.as_of,
    )


def _complete_validate(ctx: ActionContext) -> None:
    rules = ctx.config.training
    _check_range(ctx, "score", rules.min_score, rules.max_score)
    _check_range(ctx, "rating", rules.min_rating, rules.max_rating)
    ctx.date_input("completion_date")


def _complete_precondition(ctx: ActionContext) -> None:
    if not progress(ctx.entity).complete:
        raise ctx.fail("hours_completed_below_total_hours")


def _complete_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    completed_on = ctx.date_input("completion_date", ctx.as_of)
    attributes = {
        "completed_on": completed_on,
        "score": ctx.decimal_input("score", allow_negative=True),
        "rating": ctx.decimal_input("rating", allow_negative=True),
        "progress_percentage": HUNDRED,
    }
    if entity.attr("is_certification"):
        attributes["certification_expires_on"] = _certification_expiry(ctx, completed_on)
    return with_attributes(entity, **attributes)


def _fail_validate(ctx: ActionContext) -> None:
    rules = ctx.config.training
    _check_range(ctx, "score", rules.min_score, rules.max_score)


def _fail_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    return with_attributes(
        entity,
        failed_on=ctx.as_of,
        score=ctx.decimal_input("score", allow_negative=True),
        failure_reason=ctx.text_input("reason", "unspecified"),
    )


def _cancel_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    return with_attributes(
        entity,
        cancelled_on=ctx.as_of,
        cancellation_reason=ctx.text_input("reason", "unspecified"),
    )


def _reactivate_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    return with_attributes(
        entity,
        reactivated_on=ctx.as_of,
        reactivation_count=increment(entity, "reactivation_count"),
    )


def _renew_precondition(ctx: ActionContext) -> None:
    if not ctx.entity.attr("is_certification"):
        raise ctx.fail("not_a_certification")


def _renew_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    renewal_date = ctx.date_input("renewal_date", ctx.as_of)
    return with_attributes(
        entity,
        previous_expiry=entity.attr("certification_expires_on"),
        certification_expires_on=_certification_expiry(ctx, renewal_date),
        renewed_on=renewal_date,
        renewal_count=increment(entity, "renewal_count"),
    )


# -----------------------------------------------------------------------------
# Action table
# -----------------------------------------------------------------------------

START = ActionDefinition(
    kind=KIND, name="start", description="Begin (or retake) the training",
    to_status="in_progress", apply=_start_apply,
)

RECORD_PROGRESS = ActionDefinition(
    kind=KIND, name="record_progress", description="Record hours completed so far",
    in_place_from=("in_progress",), validate=_progress_validate, apply=_progress_apply,
)

COMPLETE = ActionDefinition(
    kind=KIND, name="complete",
    description="Finish the training once all hours are done",
    to_status="completed",
    validate=_complete_validate, precondition=_complete_precondition,
    apply=_complete_apply,
)

FAIL = ActionDefinition(
    kind=KIND, name="fail", description="Record a failed attempt",
    to_status="failed", validate=_fail_validate, apply=_fail_apply,
)

CANCEL = ActionDefinition(
    kind=KIND, name="cancel", description="Withdraw from the training",
    to_status="cancelled", apply=_cancel_apply,
)

REACTIVATE = ActionDefinition(
    kind=KIND, name="reactivate", description="Reopen a cancelled training",
    to_status="not_started", apply=_reactivate_apply,
)

RENEW = ActionDefinition(
    kind=KIND, name="renew", description="Extend a certification's validity",
    in_place_from=("completed",), precondition=_renew_precondition, apply=_renew_apply,
)

ACTIONS: tuple[ActionDefinition, ...] = (
    START, RECORD_PROGRESS, COMPLETE, FAIL, CANCEL, REACTIVATE, RENEW,
)

CREATE = CreateDefinition(kind=KIND, prepare=prepare_create)
