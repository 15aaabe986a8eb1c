"""
Payment Actions (``backoffice_modules.payments.actions``).

Responsibility
--------------
Business operations on a provider payment:

    process    pending -> processed        late fee when a due date is known
    complete   processed -> completed      requires a transaction id
    fail       pending|processed -> failed
    cancel     pending -> cancelled
    refund     completed -> refunded       amount <= paid amount
    retry      failed -> pending
    reconcile  completed|refunded (in place)   bank statement match

Architecture position
---------------------
**Modules layer** -- declarative action table over the pure engines.
"""

from __future__ import annotations

import dataclasses
from datetime import date
from decimal import Decimal

from backoffice_config.schema import EngineConfiguration
from backoffice_engines.valuation import late_fee_request
from backoffice_kernel.domain.entity import ZERO, EntityKind, LifecycleEntity
from backoffice_kernel.exceptions import ValidationError
from backoffice_modules._actions import (
    ActionContext,
    ActionDefinition,
    CreateDefinition,
    CreateRequest,
    increment,
    require_amounts_non_negative,
    require_choice,
    with_amounts,
    with_attributes,
)
from backoffice_modules.payments.models import PAYMENT_METHODS
from backoffice_modules.payments.workflows import has_transaction_reference

KIND = EntityKind.PAYMENT


def settled_amount(entity: LifecycleEntity) -> Decimal:
    """Paid amount net of refunds."""
    return entity.amount("paid_amount") - entity.amount("refunded_amount")


# -----------------------------------------------------------------------------
# Create
# -----------------------------------------------------------------------------


def prepare_create(request: CreateRequest, config: EngineConfiguration, as_of: date) -> CreateRequest:
    amounts = require_amounts_non_negative(request.amounts)
    if amounts.get("amount", ZERO) <= ZERO:
        raise ValidationError("amount", "must be positive", request.amounts.get("amount"))
    attributes = dict(request.attributes)
    require_choice(attributes.get("payment_method"), PAYMENT_METHODS, "payment_method")
    if request.owner_id and not attributes.get("provider_id"):
        attributes["provider_id"] = request.owner_id
    return dataclasses.replace(
        request,
        attributes=attributes,
        amounts=amounts,
        effective_date=request.effective_date or as_of,
    )


# -----------------------------------------------------------------------------
# Hooks
# -----------------------------------------------------------------------------


def _process_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    policy = ctx.config.late_fees
    months = ctx.scheduler.late_fee_months(entity.end_date, ctx.as_of, policy.grace_days)
    result = ctx.pipeline.compute(
        request=late_fee_request(entity.amount("amount"), policy.percent_per_month * months)
    )
    entity = with_amounts(entity, late_fee=result.fees_applied, total=result.total)
    attributes = {"processed_on": ctx.as_of, "late_fee_months": months}
    if ctx.has("transaction_id"):
        attributes["transaction_id"] = ctx.text_input("transaction_id")
    return with_attributes(entity, **attributes)


def _complete_precondition(ctx: ActionContext) -> None:
    if not has_transaction_reference(ctx.entity, ctx.inputs):
        raise ctx.fail("transaction_id_missing")


def _complete_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    transaction_id = ctx.text_input("transaction_id") or entity.attr("transaction_id")
    paid = entity.amounts.get("total", entity.amount("amount"))
    entity = with_amounts(entity, paid_amount=paid)
    return with_attributes(entity, transaction_id=transaction_id, completed_on=ctx.as_of)


def _fail_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    return with_attributes(
        entity,
        failed_on=ctx.as_of,
        failure_reason=ctx.text_input("reason", "unspecified"),
        failure_count=increment(entity, "failure_count"),
    )


def _cancel_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    return with_attributes(
        entity,
        cancelled_on=ctx.as_of,
        cancellation_reason=ctx.text_input("reason", "unspecified"),
    )


def _refund_validate(ctx: ActionContext) -> None:
    paid = ctx.entity.amount("paid_amount")
    amount = ctx.decimal_input("amount", default=paid)
    if amount <= ZERO:
        raise ValidationError("amount", "must be positive", str(amount))
    if amount > paid:
        raise ValidationError("amount", f"cannot exceed the paid amount {paid}", str(amount))


def _refund_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    amount = ctx.decimal_input("amount", default=entity.amount("paid_amount"))
    entity = with_amounts(entity, refunded_amount=amount)
    return with_attributes(
        entity,
        refunded_on=ctx.as_of,
        refund_reason=ctx.text_input("reason", "unspecified"),
    )


def _retry_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    return with_attributes(
        entity,
        retried_on=ctx.as_of,
        retry_count=increment(entity, "retry_count"),
    )


def _reconcile_validate(ctx: ActionContext) -> None:
    ctx.text_input("reconciliation_reference", required=True)
    ctx.decimal_input("statement_amount")


def _reconcile_precondition(ctx: ActionContext) -> None:
    if ctx.entity.attr("reconciled"):
        raise ctx.fail("already_reconciled")
    statement = ctx.decimal_input("statement_amount")
    if statement is not None and statement != settled_amount(ctx.entity):
        raise ctx.fail("statement_amount_mismatch")


def _reconcile_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    return with_attributes(
        entity,
        reconciled=True,
        reconciled_on=ctx.as_of,
        reconciled_by=ctx.actor_id,
        reconciliation_reference=ctx.text_input("reconciliation_reference"),
    )


# -----------------------------------------------------------------------------
# Action table
# -----------------------------------------------------------------------------

PROCESS = ActionDefinition(
    kind=KIND, name="process",
    description="Submit the payment, adding the late fee when past grace",
    to_status="processed", apply=_process_apply,
)

COMPLETE = ActionDefinition(
    kind=KIND, name="complete", description="Confirm settlement with a transaction id",
    to_status="completed", precondition=_complete_precondition, apply=_complete_apply,
)

FAIL = ActionDefinition(
    kind=KIND, name="fail", description="Record a failed payment attempt",
    to_status="failed", apply=_fail_apply,
)

CANCEL = ActionDefinition(
    kind=KIND, name="cancel", description="Withdraw a pending payment",
    to_status="cancelled", apply=_cancel_apply,
)

REFUND = ActionDefinition(
    kind=KIND, name="refund", description="Return some or all of a completed payment",
    to_status="refunded", validate=_refund_validate, apply=_refund_apply,
)

RETRY = ActionDefinition(
    kind=KIND, name="retry", description="Requeue a failed payment",
    to_status="pending", apply=_retry_apply,
)

RECONCILE = ActionDefinition(
    kind=KIND, name="reconcile", description="Match a settled payment to a statement line",
    in_place_from=("completed", "refunded"),
    validate=_reconcile_validate, precondition=_reconcile_precondition,
    apply=_reconcile_apply,
)

ACTIONS: tuple[ActionDefinition, ...] = (
    PROCESS, COMPLETE, FAIL, CANCEL, REFUND, RETRY, RECONCILE,
)

CREATE = CreateDefinition(kind=KIND, prepare=prepare_create)
