"""
backoffice_services.lifecycle_action -- Generic lifecycle action executor.

Responsibility:
    Run one business operation (enroll, terminate, renew, sign, complete,
    fail, mark_paid, reconcile, ...) against one entity inside a single
    unit of work, then publish exactly one domain event.  Also creates new
    entities in their kind's initial state.

Architecture position:
    Services layer.  Coordinates the pure engines (StateMachine,
    ValuationPipeline, TemporalScheduler), the module action tables
    (``backoffice_modules.registry``) and the kernel store.  Contains no
    per-kind logic of its own.

Invariants enforced:
    - Atomicity: load, validation, transition, recomputation, save and the
      event record share one transaction.  Any failure rolls back all of
      it and nothing is published.
    - Mutual exclusion: the row is loaded FOR UPDATE and saved under the
      optimistic version check; a lost race is ConflictError.
    - Status membership: the saved status always belongs to the kind's
      workflow; amounts are non-negative and rounded to 2 places.
    - Exactly one DomainEvent per committed action, published only after
      commit.

Failure modes:
    - UnknownActionError: no definition for (kind, action).
    - EntityNotFoundError: id unknown for the kind.
    - InvalidTransitionError: status not reachable or guard failed.
    - ValidationError / PreconditionFailedError: raised by action hooks.
    - ConflictError: concurrent writer won.  Callers may retry once via
      ``execute_with_retry`` / ``retry_on_conflict``.

Audit relevance:
    ``lifecycle_action_committed`` is logged for every success and
    ``lifecycle_action_rejected`` (with the error code) for every failure;
    the domain_events table holds the durable record.
"""

from __future__ import annotations

import dataclasses
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from backoffice_config import get_active_config
from backoffice_config.bridges import build_scheduler
from backoffice_config.schema import EngineConfiguration
from backoffice_engines.scheduling import TemporalScheduler
from backoffice_engines.state_machine import StateMachine
from backoffice_engines.valuation import ValuationPipeline
from backoffice_kernel.domain.clock import Clock, SystemClock
from backoffice_kernel.domain.entity import DomainEvent, EntityKind, LifecycleEntity, round_money
from backoffice_kernel.domain.person import PersonDirectory
from backoffice_kernel.domain.workflow import GuardContext
from backoffice_kernel.exceptions import (
    BackofficeError,
    InvalidTransitionError,
    ValidationError,
)
from backoffice_kernel.logging_config import LogContext, get_logger
from backoffice_kernel.services.store import UnitOfWork, retry_on_conflict
from backoffice_modules._actions import ActionContext, ActionDefinition, CreateRequest, json_safe
from backoffice_modules.registry import ActionRegistry, default_registry
from backoffice_services.event_publisher import EventSink

logger = get_logger("services.lifecycle_action")

CREATE_ACTION = "create"


@dataclass(frozen=True)
class LifecycleCommand:
    """A request to run ``action`` on one entity."""

    kind: EntityKind
    entity_id: UUID
    action: str
    inputs: Mapping[str, Any] = field(default_factory=dict)
    actor_id: str | None = None
    correlation_id: str | None = None


def _amounts_snapshot(entity: LifecycleEntity) -> dict[str, str]:
    return {name: str(value) for name, value in sorted(entity.amounts.items())}


class LifecycleAction:
    """
    One generic executor for every kind and action.

    Contract:
        ``execute`` returns the committed entity or raises the first error
        encountered.  ``create`` returns the new entity in its initial state.
    Guarantees:
        - Check order: status table, input validation, domain
          preconditions, guards, recomputation.  A status that cannot
          reach the action's target fails with InvalidTransitionError
          before any input is looked at.
        - The sink is called after commit and its failures never reach the
          caller.
    Non-goals:
        - Does not retry on ConflictError by itself; ``execute_with_retry``
          is the opt-in wrapper.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        sink: EventSink | None = None,
        clock: Clock | None = None,
        config: EngineConfiguration | None = None,
        directory: PersonDirectory | None = None,
        registry: ActionRegistry | None = None,
        pipeline: ValuationPipeline | None = None,
        scheduler: TemporalScheduler | None = None,
    ):
        self._session_factory = session_factory
        self._sink = sink
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        self._directory = directory
        self._registry = registry or default_registry()
        self._state_machine = StateMachine(self._registry.workflows())
        self._pipeline = pipeline or ValuationPipeline()
        self._scheduler = scheduler or build_scheduler(self._config)

    @property
    def session_factory(self) -> sessionmaker[Session]:
        return self._session_factory

    @property
    def state_machine(self) -> StateMachine:
        return self._state_machine

    @property
    def registry(self) -> ActionRegistry:
        return self._registry

    @property
    def config(self) -> EngineConfiguration:
        return self._config

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def scheduler(self) -> TemporalScheduler:
        return self._scheduler

    @property
    def directory(self) -> PersonDirectory | None:
        return self._directory

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(
        self,
        kind: EntityKind,
        attributes: Mapping[str, Any] | None = None,
        amounts: Mapping[str, Any] | None = None,
        effective_date: date | None = None,
        end_date: date | None = None,
        owner_id: str | None = None,
        actor_id: str | None = None,
        correlation_id: str | None = None,
    ) -> LifecycleEntity:
        """Create an entity in the initial state of ``kind``'s workflow."""
        definition = self._registry.create_definition(kind)
        workflow = self._state_machine.workflow_for(kind)
        as_of = self._clock.today()
        prepared = definition.prepare(
            CreateRequest(
                attributes=dict(attributes or {}),
                amounts=dict(amounts or {}),
                effective_date=effective_date,
                end_date=end_date,
                owner_id=str(owner_id) if owner_id is not None else None,
            ),
            self._config,
            as_of,
        )
        entity = LifecycleEntity(
            id=uuid4(),
            kind=kind,
            status=workflow.initial_state,
            amounts={k: round_money(v) for k, v in prepared.amounts.items()},
            attributes=json_safe(dict(prepared.attributes)),
            effective_date=prepared.effective_date,
            end_date=prepared.end_date,
            owner_id=prepared.owner_id,
        )

        with LogContext.bind(
            correlation_id=correlation_id,
            entity_id=str(entity.id),
            action=CREATE_ACTION,
            actor_id=actor_id,
        ):
            with UnitOfWork(self._session_factory, self._clock) as uow:
                model = uow.store.add(entity, actor_id=_actor_uuid(actor_id))
                event = self._build_event(
                    entity, entity, CREATE_ACTION, {}, list(prepared.attributes), actor_id, correlation_id
                )
                uow.store.append_event(event)
                created = model.to_dto()

            logger.info(
                "lifecycle_entity_created",
                extra={"kind": kind.value, "status": created.status},
            )
            self._publish(event)
        return created

    # ------------------------------------------------------------------
    # Execute
    # ------------------------------------------------------------------

    def execute(self, command: LifecycleCommand) -> LifecycleEntity:
        """Run ``command`` in one unit of work and publish its event."""
        definition = self._registry.get(command.kind, command.action)

        with LogContext.bind(
            correlation_id=command.correlation_id,
            entity_id=str(command.entity_id),
            action=command.action,
            actor_id=command.actor_id,
        ):
            t0 = time.monotonic()
            try:
                with UnitOfWork(self._session_factory, self._clock) as uow:
                    model = uow.store.load(command.kind, command.entity_id, for_update=True)
                    before = model.to_dto()
                    after = self._run(definition, before, command)
                    changed = uow.store.save(model, after, actor_id=_actor_uuid(command.actor_id))
                    event = self._build_event(
                        before, after, command.action, command.inputs, changed,
                        command.actor_id, command.correlation_id,
                    )
                    uow.store.append_event(event)
                    result = model.to_dto()
            except BackofficeError as exc:
                logger.warning(
                    "lifecycle_action_rejected",
                    extra={
                        "kind": command.kind.value,
                        "error_code": exc.code,
                        "error": str(exc),
                    },
                )
                raise

            logger.info(
                "lifecycle_action_committed",
                extra={
                    "kind": command.kind.value,
                    "from_status": before.status,
                    "to_status": result.status,
                    "version": result.version,
                    "changed_fields": changed,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
            self._publish(event)
        return result

    def execute_with_retry(self, command: LifecycleCommand, attempts: int = 2) -> LifecycleEntity:
        """``execute`` with a reload-and-retry on ConflictError."""
        return retry_on_conflict(lambda: self.execute(command), attempts=attempts)

    def get(self, kind: EntityKind, entity_id: UUID) -> LifecycleEntity:
        with UnitOfWork(self._session_factory, self._clock) as uow:
            return uow.store.get(kind, entity_id)

    def history(self, entity_id: UUID) -> list[DomainEvent]:
        with UnitOfWork(self._session_factory, self._clock) as uow:
            return uow.store.events_for(entity_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run(
        self,
        definition: ActionDefinition,
        before: LifecycleEntity,
        command: LifecycleCommand,
    ) -> LifecycleEntity:
        current = before.status
        in_place = current in definition.in_place_from

        if not in_place:
            target = definition.to_status
            if target is None or not self._state_machine.can_transition(
                before.kind, current, target, definition.name
            ):
                raise InvalidTransitionError(
                    before.kind.value,
                    str(before.id),
                    current,
                    target or current,
                    reason="not_in_table",
                )

        owner = None
        if definition.needs_owner and self._directory is not None and before.owner_id:
            owner = self._directory.lookup(before.owner_id)

        ctx = ActionContext(
            entity=before,
            action=definition.name,
            inputs=dict(command.inputs),
            as_of=self._clock.today(),
            now=self._clock.now(),
            config=self._config,
            pipeline=self._pipeline,
            scheduler=self._scheduler,
            owner=owner,
            actor_id=command.actor_id,
        )

        if definition.validate is not None:
            definition.validate(ctx)
        if definition.precondition is not None:
            definition.precondition(ctx)

        if in_place:
            transitioned = before
        else:
            transitioned = self._state_machine.transition(
                before,
                definition.to_status,
                GuardContext(as_of=ctx.as_of, owner=owner, inputs=ctx.inputs),
                action=definition.name,
            )

        after = definition.apply(transitioned, ctx) if definition.apply else transitioned
        return self._normalize(after, transitioned.status)

    def _normalize(self, entity: LifecycleEntity, expected_status: str) -> LifecycleEntity:
        if entity.status != expected_status:
            raise ValidationError("status", "action hooks may not change status", entity.status)
        amounts = {}
        for name, value in entity.amounts.items():
            if value < 0:
                raise ValidationError(name, "cannot be negative", str(value))
            amounts[name] = round_money(value)
        return dataclasses.replace(entity, amounts=amounts)

    def _build_event(
        self,
        before: LifecycleEntity,
        after: LifecycleEntity,
        action: str,
        inputs: Mapping[str, Any],
        changed: list[str],
        actor_id: str | None,
        correlation_id: str | None,
    ) -> DomainEvent:
        return DomainEvent(
            event_id=uuid4(),
            kind=after.kind,
            entity_id=after.id,
            action=action,
            from_status=before.status,
            to_status=after.status,
            occurred_at=self._clock.now(),
            payload={
                "owner_id": after.owner_id,
                "amounts_before": _amounts_snapshot(before),
                "amounts_after": _amounts_snapshot(after),
                "changed": sorted(changed),
                "inputs": json_safe(dict(inputs)),
                "effective_date": json_safe(after.effective_date),
                "end_date": json_safe(after.end_date),
                "attributes": json_safe(dict(after.attributes)),
            },
            actor_id=actor_id,
            correlation_id=correlation_id,
        )

    def _publish(self, event: DomainEvent) -> None:
        if self._sink is None:
            return
        try:
            self._sink.publish(event)
        except Exception:
            # The mutation is committed; the outbox relay redelivers.
            logger.exception(
                "event_publish_failed",
                extra={"event_id": str(event.event_id), "event_type": event.event_type},
            )


def _actor_uuid(actor_id: str | None) -> UUID | None:
    if actor_id is None:
        return None
    try:
        return UUID(str(actor_id))
    except ValueError:
        return None
