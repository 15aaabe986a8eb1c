"""
Payments Workflows (``backoffice_modules.payments.workflows``).

Responsibility
--------------
State machine for a provider payment.  Completion requires a transaction
reference, either already recorded on the payment or supplied with the
command.  Failed payments may be retried; completed payments refunded.

Architecture position
---------------------
**Modules layer** -- declarative workflow definitions.
"""

from backoffice_kernel.domain.workflow import Guard, Transition, Workflow


def has_transaction_reference(entity, inputs) -> bool:
    return bool(entity.attr("transaction_id") or inputs.get("transaction_id"))


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

TRANSACTION_REFERENCE_PRESENT = Guard(
    name="transaction_reference_present",
    description="Payment carries a transaction id",
    predicate=lambda entity, ctx: has_transaction_reference(entity, ctx.inputs),
)


# -----------------------------------------------------------------------------
# Payment Workflow
# -----------------------------------------------------------------------------

PAYMENT_WORKFLOW = Workflow(
    name="provider_payment",
    description="Provider payment lifecycle",
    initial_state="pending",
    states=("pending", "processed", "completed", "failed", "refunded", "cancelled"),
    terminal_states=("refunded", "cancelled"),
    transitions=(
        Transition("pending", "processed", action="process"),
        Transition("pending", "failed", action="fail"),
        Transition("pending", "cancelled", action="cancel"),
        Transition(
            "processed", "completed", action="complete", guard=TRANSACTION_REFERENCE_PRESENT
        ),
        Transition("processed", "failed", action="fail"),
        Transition("completed", "refunded", action="refund"),
        Transition("failed", "pending", action="retry"),
    ),
)

WORKFLOW = PAYMENT_WORKFLOW
