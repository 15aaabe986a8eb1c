"""
Action and workflow registry (``backoffice_modules.registry``).

Responsibility
--------------
Maps ``(kind, action)`` to its ``ActionDefinition`` and each kind to its
``Workflow`` and ``CreateDefinition``.  The lifecycle executor resolves
every command through this table; there are no per-kind action classes.

Architecture position
---------------------
**Modules layer** -- assembles the declarative tables of the per-kind
modules.  Imported by ``backoffice_services``; never by engines or kernel.

Invariants enforced
-------------------
* Every registered action targets a status of its kind's workflow, and
  every in-place status belongs to that workflow.
* One definition per ``(kind, action)``; duplicates fail at registration.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from types import ModuleType

from backoffice_engines.state_machine import StateMachine
from backoffice_kernel.domain.entity import EntityKind
from backoffice_kernel.domain.workflow import Workflow
from backoffice_kernel.exceptions import UnknownActionError, ValidationError
from backoffice_kernel.logging_config import get_logger
from backoffice_modules._actions import ActionDefinition, CreateDefinition

logger = get_logger("modules.registry")


class ActionRegistry:
    """
    Lookup table of action definitions keyed by ``(kind, action)``.

    Contract:
        ``get`` raises ``UnknownActionError`` for an unregistered pair.
    Guarantees:
        - Registration validates targets against the kind's workflow; an
          action that moves status must own at least one edge into its target.
        - Reads are safe from any thread once registration is done.
    """

    def __init__(self) -> None:
        self._workflows: dict[EntityKind, Workflow] = {}
        self._creates: dict[EntityKind, CreateDefinition] = {}
        self._actions: dict[tuple[EntityKind, str], ActionDefinition] = {}

    def register_kind(
        self,
        kind: EntityKind,
        workflow: Workflow,
        create: CreateDefinition,
        actions: Iterable[ActionDefinition],
    ) -> None:
        if kind in self._workflows:
            raise ValueError(f"Kind {kind.value} already registered")
        self._workflows[kind] = workflow
        self._creates[kind] = create
        for definition in actions:
            self.register(definition)
        logger.debug(
            "lifecycle_kind_registered",
            extra={
                "kind": kind.value,
                "workflow": workflow.name,
                "actions": self.actions_for(kind),
            },
        )

    def register(self, definition: ActionDefinition) -> None:
        workflow = self._workflows.get(definition.kind)
        if workflow is None:
            raise ValueError(f"No workflow registered for {definition.kind.value}")
        key = (definition.kind, definition.name)
        if key in self._actions:
            raise ValueError(f"Duplicate action {definition.kind.value}.{definition.name}")
        targets = list(definition.in_place_from)
        if definition.to_status is not None:
            targets.append(definition.to_status)
        unknown = [s for s in targets if s not in workflow.states]
        if unknown:
            raise ValueError(
                f"Action {definition.kind.value}.{definition.name} references"
                f" unknown statuses: {', '.join(unknown)}"
            )
        if definition.to_status is not None and not any(
            t.action == definition.name and t.to_state == definition.to_status
            for t in workflow.transitions
        ):
            raise ValueError(
                f"Action {definition.kind.value}.{definition.name} has no"
                f" transition into {definition.to_status} in workflow {workflow.name}"
            )
        self._actions[key] = definition

    def get(self, kind: EntityKind, action: str) -> ActionDefinition:
        try:
            return self._actions[(kind, action)]
        except KeyError:
            raise UnknownActionError(kind.value, action, self.actions_for(kind)) from None

    def actions_for(self, kind: EntityKind) -> list[str]:
        return sorted(name for k, name in self._actions if k == kind)

    def create_definition(self, kind: EntityKind) -> CreateDefinition:
        try:
            return self._creates[kind]
        except KeyError:
            raise ValidationError("kind", "no create operation registered", kind) from None

    def workflows(self) -> dict[EntityKind, Workflow]:
        return dict(self._workflows)


def _module_bundles() -> list[tuple[EntityKind, ModuleType, ModuleType]]:
    from backoffice_modules.benefits import actions as benefit_actions
    from backoffice_modules.benefits import workflows as benefit_workflows
    from backoffice_modules.contracts import actions as contract_actions
    from backoffice_modules.contracts import workflows as contract_workflows
    from backoffice_modules.invoices import actions as invoice_actions
    from backoffice_modules.invoices import workflows as invoice_workflows
    from backoffice_modules.payments import actions as payment_actions
    from backoffice_modules.payments import workflows as payment_workflows
    from backoffice_modules.training import actions as training_actions
    from backoffice_modules.training import workflows as training_workflows

    return [
        (EntityKind.BENEFIT, benefit_workflows, benefit_actions),
        (EntityKind.CONTRACT, contract_workflows, contract_actions),
        (EntityKind.INVOICE, invoice_workflows, invoice_actions),
        (EntityKind.PAYMENT, payment_workflows, payment_actions),
        (EntityKind.TRAINING, training_workflows, training_actions),
    ]


_default_registry: ActionRegistry | None = None
_registry_lock = threading.Lock()


def build_registry() -> ActionRegistry:
    """A fresh registry holding every module's workflow and actions."""
    registry = ActionRegistry()
    for kind, workflows, actions in _module_bundles():
        registry.register_kind(kind, workflows.WORKFLOW, actions.CREATE, actions.ACTIONS)
    return registry


def default_registry() -> ActionRegistry:
    """The process-wide registry, built once."""
    global _default_registry
    if _default_registry is None:
        with _registry_lock:
            if _default_registry is None:
                _default_registry = build_registry()
    return _default_registry


def default_state_machine() -> StateMachine:
    return StateMachine(default_registry().workflows())
