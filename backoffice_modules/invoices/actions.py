"""
Invoice Actions (``backoffice_modules.invoices.actions``).

Responsibility
--------------
Business operations on a provider invoice:

    send                     draft -> sent
    record_partial_payment   sent|overdue -> partially_paid (in place once partial)
    mark_overdue             sent|partially_paid -> overdue   only past the due date
    mark_paid                sent|partially_paid|overdue -> paid   with late fee
    cancel                   draft|sent -> cancelled

Amounts kept on the entity: the breakdown (``subtotal``, ``tax``,
``shipping``, ``discount``), ``total``, ``amount_paid``, ``balance_due``
and, once paid late, ``late_fee``.  ``end_date`` is the due date.

Architecture position
---------------------
**Modules layer** -- declarative action table over the pure engines.

Invariants enforced
-------------------
* ``amount_paid + balance_due == total`` until the invoice is paid; a
  paid invoice has zero balance and ``amount_paid`` includes any late fee.
"""

from __future__ import annotations

import dataclasses
from datetime import date, timedelta

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
    require_date_order,
    with_amounts,
    with_attributes,
)
from backoffice_modules.invoices.models import BREAKDOWN_FIELDS, InvoiceTotals

KIND = EntityKind.INVOICE


# -----------------------------------------------------------------------------
# Create
# -----------------------------------------------------------------------------


def prepare_create(request: CreateRequest, config: EngineConfiguration, as_of: date) -> CreateRequest:
    amounts = require_amounts_non_negative(request.amounts)
    unknown = sorted(set(amounts) - set(BREAKDOWN_FIELDS))
    if unknown:
        raise ValidationError(unknown[0], "is not part of the invoice breakdown")
    total = InvoiceTotals.from_amounts(amounts).total
    if total < ZERO:
        raise ValidationError("discount", "cannot exceed subtotal plus tax and shipping", str(total))
    amounts.update(total=total, amount_paid=ZERO, balance_due=total)

    invoice_date = request.effective_date or as_of
    due_date = request.end_date or invoice_date + timedelta(days=config.invoicing.payment_terms_days)
    require_date_order(invoice_date, due_date, "due_date")

    attributes = dict(request.attributes)
    if request.owner_id and not attributes.get("provider_id"):
        attributes["provider_id"] = request.owner_id
    return dataclasses.replace(
        request,
        attributes=attributes,
        amounts=amounts,
        effective_date=invoice_date,
        end_date=due_date,
    )


# -----------------------------------------------------------------------------
# Hooks
# -----------------------------------------------------------------------------


def _send_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    return with_attributes(entity, sent_on=ctx.as_of)


def _partial_validate(ctx: ActionContext) -> None:
    amount = ctx.decimal_input("amount", required=True)
    balance = ctx.entity.amount("balance_due")
    if amount <= ZERO:
        raise ValidationError("amount", "must be positive", str(amount))
    if amount >= balance:
        raise ValidationError(
            "amount", f"must be less than the balance due {balance}; use mark_paid", str(amount)
        )


def _partial_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    amount = ctx.decimal_input("amount", required=True)
    entity = with_amounts(
        entity,
        amount_paid=entity.amount("amount_paid") + amount,
        balance_due=entity.amount("balance_due") - amount,
    )
    return with_attributes(
        entity,
        last_payment_on=ctx.date_input("payment_date", ctx.as_of),
        payment_count=increment(entity, "payment_count"),
    )


def _overdue_precondition(ctx: ActionContext) -> None:
    due = ctx.entity.end_date
    if due is None or due >= ctx.as_of:
        raise ctx.fail("not_past_due")


def _overdue_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    return with_attributes(
        entity,
        overdue_since=entity.end_date,
        days_overdue=ctx.scheduler.days_between(entity.end_date, ctx.as_of),
    )


def _paid_validate(ctx: ActionContext) -> None:
    paid_on = ctx.date_input("payment_date", ctx.as_of)
    require_date_order(ctx.entity.effective_date, paid_on, "payment_date")


def _paid_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    paid_on = ctx.date_input("payment_date", ctx.as_of)
    policy = ctx.config.late_fees
    months = ctx.scheduler.late_fee_months(entity.end_date, paid_on, policy.grace_days)
    balance = entity.amount("balance_due")
    result = ctx.pipeline.compute(
        request=late_fee_request(balance, policy.percent_per_month * months)
    )
    entity = with_amounts(
        entity,
        late_fee=result.fees_applied,
        amount_paid=entity.amount("amount_paid") + result.total,
        balance_due=ZERO,
    )
    return with_attributes(
        entity,
        paid_on=paid_on,
        late_fee_months=months,
        payment_reference=ctx.text_input("payment_reference"),
    )


def _cancel_apply(entity: LifecycleEntity, ctx: ActionContext) -> LifecycleEntity:
    return with_attributes(
        entity,
        cancelled_on=ctx.as_of,
        cancellation_reason=ctx.text_input("reason", "unspecified"),
    )


# -----------------------------------------------------------------------------
# Action table
# -----------------------------------------------------------------------------

SEND = ActionDefinition(
    kind=KIND, name="send", description="Issue the invoice to the provider",
    to_status="sent", apply=_send_apply,
)

RECORD_PARTIAL_PAYMENT = ActionDefinition(
    kind=KIND, name="record_partial_payment",
    description="Apply a payment smaller than the balance due",
    to_status="partially_paid", in_place_from=("partially_paid",),
    validate=_partial_validate, apply=_partial_apply,
)

MARK_OVERDUE = ActionDefinition(
    kind=KIND, name="mark_overdue", description="Flag an unpaid invoice past its due date",
    to_status="overdue", precondition=_overdue_precondition, apply=_overdue_apply,
)

MARK_PAID = ActionDefinition(
    kind=KIND, name="mark_paid",
    description="Settle the balance, charging the late fee when past grace",
    to_status="paid", validate=_paid_validate, apply=_paid_apply,
)

CANCEL = ActionDefinition(
    kind=KIND, name="cancel", description="Void a draft or sent invoice",
    to_status="cancelled", apply=_cancel_apply,
)

ACTIONS: tuple[ActionDefinition, ...] = (
    SEND, RECORD_PARTIAL_PAYMENT, MARK_OVERDUE, MARK_PAID, CANCEL,
)

CREATE = CreateDefinition(kind=KIND, prepare=prepare_create)
