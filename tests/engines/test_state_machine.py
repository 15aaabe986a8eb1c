"""
Tests for backoffice_engines.state_machine.

Every edge of every registered workflow is accepted, every pair that is
not an edge is rejected with reason ``not_in_table``, and guards turn a
table-valid edge into a ``guard_failed:<name>`` rejection.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from backoffice_engines.state_machine import StateMachine
from backoffice_kernel.domain.entity import EntityKind, LifecycleEntity
from backoffice_kernel.domain.person import PersonSnapshot
from backoffice_kernel.domain.workflow import GuardContext, Transition, Workflow
from backoffice_kernel.exceptions import InvalidTransitionError, ValidationError
from backoffice_modules.registry import default_registry, default_state_machine

AS_OF = date(2024, 6, 3)
ACTIVE_OWNER = PersonSnapshot("E-100", active=True, hire_date=date(2018, 1, 15))

# Entities carrying everything the guards of their kind look at
_QUALIFIED = {
    EntityKind.BENEFIT: dict(
        effective_date=date(2024, 7, 1),
        end_date=date(2025, 6, 30),
        owner_id="E-100",
    ),
    EntityKind.CONTRACT: dict(
        attributes={"contract_number": "C-1", "provider_id": "P-1"},
        amounts={"contract_value": Decimal("1000")},
        effective_date=date(2024, 1, 1),
        end_date=date(2024, 12, 31),
    ),
    EntityKind.INVOICE: dict(amounts={"subtotal": Decimal("100")}),
    EntityKind.PAYMENT: dict(attributes={"transaction_id": "TX-1"}),
    EntityKind.TRAINING: dict(),
}


def _entity(kind: EntityKind, status: str, **overrides) -> LifecycleEntity:
    fields = dict(_QUALIFIED[kind])
    fields.update(overrides)
    return LifecycleEntity(id=uuid4(), kind=kind, status=status, **fields)


def _context(**overrides) -> GuardContext:
    fields = {"as_of": AS_OF, "owner": ACTIVE_OWNER}
    fields.update(overrides)
    return GuardContext(**fields)


def _all_edges():
    for kind, workflow in default_registry().workflows().items():
        for t in workflow.transitions:
            yield pytest.param(kind, t.from_state, t.to_state, id=f"{kind.value}:{t.from_state}->{t.to_state}")


def _edges_with_actions():
    for kind, workflow in default_registry().workflows().items():
        for t in workflow.transitions:
            yield pytest.param(
                kind, t, id=f"{kind.value}:{t.from_state}->{t.to_state}:{t.action}"
            )


def _all_non_edges():
    for kind, workflow in default_registry().workflows().items():
        for a in workflow.states:
            for b in workflow.states:
                if workflow.find(a, b) is None:
                    yield pytest.param(kind, a, b, id=f"{kind.value}:{a}->{b}")


@pytest.fixture(scope="module")
def machine():
    return default_state_machine()


class TestTableLookup:
    """Pure table membership, no guards."""

    @pytest.mark.parametrize("kind,from_status,to_status", list(_all_edges()))
    def test_every_edge_is_valid(self, machine, kind, from_status, to_status):
        assert machine.can_transition(kind, from_status, to_status)

    @pytest.mark.parametrize("kind,from_status,to_status", list(_all_non_edges()))
    def test_every_non_edge_is_invalid(self, machine, kind, from_status, to_status):
        assert not machine.can_transition(kind, from_status, to_status)

    @pytest.mark.parametrize("kind,edge", list(_edges_with_actions()))
    def test_edge_belongs_to_its_action_only(self, machine, kind, edge):
        assert machine.can_transition(kind, edge.from_state, edge.to_state, edge.action)
        others = set(default_registry().actions_for(kind)) - {edge.action}
        for action in others:
            assert not machine.can_transition(kind, edge.from_state, edge.to_state, action)

    def test_terminal_states_have_no_successors(self, machine):
        for kind in machine.kinds:
            workflow = machine.workflow_for(kind)
            for state in workflow.terminal_states:
                assert machine.is_terminal(kind, state)
                assert machine.successors(kind, state) == frozenset()

    def test_training_has_no_terminal_state(self, machine):
        assert machine.workflow_for(EntityKind.TRAINING).terminal_states == ()

    def test_successors_of_pending_benefit(self, machine):
        assert machine.successors(EntityKind.BENEFIT, "pending") == {"enrolled", "cancelled"}

    def test_unregistered_kind_raises(self):
        empty = StateMachine({})
        with pytest.raises(ValidationError):
            empty.workflow_for(EntityKind.BENEFIT)


class TestTransition:
    """``transition`` applies edges and evaluates guards."""

    @pytest.mark.parametrize("kind,from_status,to_status", list(_all_edges()))
    def test_qualified_entity_moves_along_every_edge(self, machine, kind, from_status, to_status):
        entity = _entity(kind, from_status)
        result = machine.transition(entity, to_status, _context())
        assert result.status == to_status
        assert result.id == entity.id
        assert result.amounts == entity.amounts
        assert entity.status == from_status

    @pytest.mark.parametrize("kind,from_status,to_status", list(_all_non_edges()))
    def test_non_edge_rejected_as_not_in_table(self, machine, kind, from_status, to_status):
        entity = _entity(kind, from_status)
        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.transition(entity, to_status, _context())
        assert exc_info.value.reason == "not_in_table"
        assert exc_info.value.from_status == from_status
        assert exc_info.value.to_status == to_status

    def test_edge_of_another_action_rejected(self, machine):
        entity = _entity(EntityKind.CONTRACT, "suspended")
        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.transition(entity, "active", _context(), action="sign")
        assert exc_info.value.reason == "not_in_table"
        assert machine.transition(entity, "active", _context(), action="resume").status == "active"

    def test_unknown_requested_status(self, machine):
        entity = _entity(EntityKind.INVOICE, "draft")
        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.transition(entity, "archived", _context())
        assert exc_info.value.reason == "unknown_status"

    def test_unknown_current_status(self, machine):
        entity = _entity(EntityKind.INVOICE, "lost")
        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.transition(entity, "sent", _context())
        assert exc_info.value.reason == "unknown_status"

    def test_rejection_is_logged(self, machine, captured_logs):
        entity = _entity(EntityKind.PAYMENT, "refunded")
        with pytest.raises(InvalidTransitionError):
            machine.transition(entity, "pending", _context())
        rejected = [r for r in captured_logs() if r["message"] == "transition_rejected"]
        assert len(rejected) == 1
        assert rejected[0]["kind"] == "payment"
        assert rejected[0]["reason"] == "not_in_table"


class TestGuards:
    """A failing guard turns a table-valid edge into a rejection."""

    def test_benefit_enroll_requires_active_owner(self, machine):
        entity = _entity(EntityKind.BENEFIT, "pending")
        inactive = PersonSnapshot("E-100", active=False)
        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.transition(entity, "enrolled", _context(owner=inactive))
        assert exc_info.value.reason == "guard_failed:owner_active"

    def test_benefit_enroll_requires_known_owner(self, machine):
        entity = _entity(EntityKind.BENEFIT, "pending")
        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.transition(entity, "enrolled", _context(owner=None))
        assert exc_info.value.reason == "guard_failed:owner_active"

    def test_benefit_enroll_rejects_past_effective_date(self, machine):
        entity = _entity(EntityKind.BENEFIT, "pending", effective_date=date(2024, 6, 2))
        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.transition(entity, "enrolled", _context())
        assert exc_info.value.reason == "guard_failed:effective_date_not_past"

    def test_benefit_enroll_accepts_effective_date_today(self, machine):
        entity = _entity(EntityKind.BENEFIT, "pending", effective_date=AS_OF)
        assert machine.transition(entity, "enrolled", _context()).status == "enrolled"

    def test_contract_sign_requires_value(self, machine):
        entity = _entity(EntityKind.CONTRACT, "draft", amounts={})
        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.transition(entity, "active", _context())
        assert exc_info.value.reason == "guard_failed:required_fields_present"

    def test_contract_sign_requires_dates(self, machine):
        entity = _entity(EntityKind.CONTRACT, "draft", end_date=None)
        with pytest.raises(InvalidTransitionError):
            machine.transition(entity, "active", _context())

    def test_invoice_send_requires_positive_total(self, machine):
        entity = _entity(
            EntityKind.INVOICE, "draft",
            amounts={"subtotal": Decimal("50"), "discount": Decimal("50")},
        )
        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.transition(entity, "sent", _context())
        assert exc_info.value.reason == "guard_failed:amount_breakdown_complete"

    def test_payment_complete_accepts_reference_from_inputs(self, machine):
        entity = _entity(EntityKind.PAYMENT, "processed", attributes={})
        ctx = _context(inputs={"transaction_id": "TX-9"})
        assert machine.transition(entity, "completed", ctx).status == "completed"

    def test_payment_complete_without_reference_rejected(self, machine):
        entity = _entity(EntityKind.PAYMENT, "processed", attributes={})
        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.transition(entity, "completed", _context())
        assert exc_info.value.reason == "guard_failed:transaction_reference_present"


class TestWorkflowDefinition:
    """Workflow value objects reject malformed tables at construction."""

    def test_initial_state_must_be_a_state(self):
        with pytest.raises(ValueError):
            Workflow("w", "d", initial_state="x", states=("a",), transitions=())

    def test_transition_to_unknown_state(self):
        with pytest.raises(ValueError):
            Workflow("w", "d", "a", ("a",), (Transition("a", "b", "go"),))

    def test_duplicate_transition(self):
        with pytest.raises(ValueError):
            Workflow(
                "w", "d", "a", ("a", "b"),
                (Transition("a", "b", "go"), Transition("a", "b", "again")),
            )

    def test_terminal_state_with_outgoing_edge(self):
        with pytest.raises(ValueError):
            Workflow(
                "w", "d", "a", ("a", "b"),
                (Transition("a", "b", "go"),),
                terminal_states=("a",),
            )
