"""
Invoices Workflows (``backoffice_modules.invoices.workflows``).

Responsibility
--------------
State machine for a provider invoice.  A draft can only be sent once its
amount breakdown yields a positive total.

Architecture position
---------------------
**Modules layer** -- declarative workflow definitions.
"""

from backoffice_kernel.domain.entity import ZERO
from backoffice_kernel.domain.workflow import Guard, Transition, Workflow
from backoffice_modules.invoices.models import InvoiceTotals

# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

AMOUNT_BREAKDOWN_COMPLETE = Guard(
    name="amount_breakdown_complete",
    description="Subtotal is present and the computed total is positive",
    predicate=lambda entity, ctx: (
        "subtotal" in entity.amounts
        and InvoiceTotals.from_amounts(entity.amounts).total > ZERO
    ),
)


# -----------------------------------------------------------------------------
# Invoice Workflow
# -----------------------------------------------------------------------------

INVOICE_WORKFLOW = Workflow(
    name="provider_invoice",
    description="Provider invoice lifecycle",
    initial_state="draft",
    states=("draft", "sent", "partially_paid", "overdue", "paid", "cancelled"),
    terminal_states=("paid", "cancelled"),
    transitions=(
        Transition("draft", "sent", action="send", guard=AMOUNT_BREAKDOWN_COMPLETE),
        Transition("draft", "cancelled", action="cancel"),
        Transition("sent", "paid", action="mark_paid"),
        Transition("sent", "overdue", action="mark_overdue"),
        Transition("sent", "partially_paid", action="record_partial_payment"),
        Transition("sent", "cancelled", action="cancel"),
        Transition("partially_paid", "paid", action="mark_paid"),
        Transition("partially_paid", "overdue", action="mark_overdue"),
        Transition("overdue", "paid", action="mark_paid"),
        Transition("overdue", "partially_paid", action="record_partial_payment"),
    ),
)

WORKFLOW = INVOICE_WORKFLOW
