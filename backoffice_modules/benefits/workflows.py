"""
Benefits Workflows (``backoffice_modules.benefits.workflows``).

Responsibility
--------------
Declares the state machine for an employee benefit enrollment.  Moving
from ``pending`` to ``enrolled`` requires the owning employee to be active
in the person directory and the coverage to start today or later.

Architecture position
---------------------
**Modules layer** -- declarative workflow definitions over the kernel's
Guard / Transition / Workflow value objects.
"""

from backoffice_kernel.domain.workflow import Guard, Transition, Workflow, all_of
from backoffice_kernel.logging_config import get_logger

logger = get_logger("modules.benefits.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

OWNER_ACTIVE = Guard(
    name="owner_active",
    description="Owning employee is active in the person directory",
    predicate=lambda entity, ctx: ctx.owner is not None and ctx.owner.active,
)

EFFECTIVE_DATE_NOT_PAST = Guard(
    name="effective_date_not_past",
    description="Coverage effective date is today or later",
    predicate=lambda entity, ctx: (
        entity.effective_date is not None and entity.effective_date >= ctx.as_of
    ),
)

ENROLLMENT_ALLOWED = all_of(
    "owner_active_and_effective_date_not_past",
    "Owner active and effective date not in the past",
    OWNER_ACTIVE,
    EFFECTIVE_DATE_NOT_PAST,
)


# -----------------------------------------------------------------------------
# Enrollment Workflow
# -----------------------------------------------------------------------------

BENEFIT_WORKFLOW = Workflow(
    name="benefit_enrollment",
    description="Employee benefit enrollment lifecycle",
    initial_state="pending",
    states=("pending", "enrolled", "terminated", "cancelled"),
    terminal_states=("terminated", "cancelled"),
    transitions=(
        Transition("pending", "enrolled", action="enroll", guard=ENROLLMENT_ALLOWED),
        Transition("pending", "cancelled", action="cancel"),
        Transition("enrolled", "terminated", action="terminate"),
    ),
)

WORKFLOW = BENEFIT_WORKFLOW

logger.info(
    "benefit_workflow_registered",
    extra={
        "workflow": BENEFIT_WORKFLOW.name,
        "state_count": len(BENEFIT_WORKFLOW.states),
        "transition_count": len(BENEFIT_WORKFLOW.transitions),
    },
)
