"""
Training Workflows (``backoffice_modules.training.workflows``).

Responsibility
--------------
State machine for an employee training record.  Completed and failed
trainings can be retaken (back to in_progress); cancelled ones can be
reactivated.  No terminal state: every record can re-enter the cycle.

Architecture position
---------------------
**Modules layer** -- declarative workflow definitions.
"""

from backoffice_kernel.domain.workflow import Transition, Workflow

TRAINING_WORKFLOW = Workflow(
    name="employee_training",
    description="Employee training and certification lifecycle",
    initial_state="not_started",
    states=("not_started", "in_progress", "completed", "failed", "cancelled"),
    transitions=(
        Transition("not_started", "in_progress", action="start"),
        Transition("not_started", "cancelled", action="cancel"),
        Transition("in_progress", "completed", action="complete"),
        Transition("in_progress", "failed", action="fail"),
        Transition("in_progress", "cancelled", action="cancel"),
        Transition("completed", "in_progress", action="start"),
        Transition("failed", "in_progress", action="start"),
        Transition("failed", "cancelled", action="cancel"),
        Transition("cancelled", "not_started", action="reactivate"),
    ),
)

WORKFLOW = TRAINING_WORKFLOW
