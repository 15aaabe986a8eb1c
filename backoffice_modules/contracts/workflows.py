"""
Contracts Workflows (``backoffice_modules.contracts.workflows``).

Responsibility
--------------
State machine for a provider contract.  Signing (draft -> active) requires
the contract number, provider, start and end dates and contract value to
be present.  Active contracts can be suspended and resumed, flagged for
renewal, renewed, terminated or left to expire.

Architecture position
---------------------
**Modules layer** -- declarative workflow definitions.
"""

from backoffice_kernel.domain.workflow import Guard, Transition, Workflow
from backoffice_kernel.logging_config import get_logger

logger = get_logger("modules.contracts.workflows")

REQUIRED_ATTRIBUTES = ("contract_number", "provider_id")


def _required_fields_present(entity, ctx) -> bool:
    if any(entity.attr(name) in (None, "") for name in REQUIRED_ATTRIBUTES):
        return False
    if entity.effective_date is None or entity.end_date is None:
        return False
    return "contract_value" in entity.amounts


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

REQUIRED_FIELDS_PRESENT = Guard(
    name="required_fields_present",
    description="Contract number, provider, start/end dates and value are set",
    predicate=_required_fields_present,
)


# -----------------------------------------------------------------------------
# Contract Workflow
# -----------------------------------------------------------------------------

CONTRACT_WORKFLOW = Workflow(
    name="provider_contract",
    description="Provider contract lifecycle",
    initial_state="draft",
    states=(
        "draft",
        "active",
        "suspended",
        "pending_renewal",
        "terminated",
        "expired",
        "cancelled",
    ),
    terminal_states=("terminated", "expired", "cancelled"),
    transitions=(
        Transition("draft", "active", action="sign", guard=REQUIRED_FIELDS_PRESENT),
        Transition("draft", "cancelled", action="cancel"),
        Transition("active", "suspended", action="suspend"),
        Transition("active", "terminated", action="terminate"),
        Transition("active", "pending_renewal", action="flag_renewal"),
        Transition("active", "expired", action="expire"),
        Transition("suspended", "active", action="resume"),
        Transition("suspended", "terminated", action="terminate"),
        Transition("pending_renewal", "active", action="renew"),
        Transition("pending_renewal", "expired", action="expire"),
        Transition("pending_renewal", "terminated", action="terminate"),
    ),
)

WORKFLOW = CONTRACT_WORKFLOW
