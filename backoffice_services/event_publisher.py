"""
backoffice_services.event_publisher -- At-least-once domain event fan-out.

Responsibility:
    Deliver each committed ``DomainEvent`` to every registered handler on
    a worker pool, retrying each handler independently with exponential
    backoff.  ``OutboxRelay`` republishes event records whose delivery was
    never confirmed (process crash between commit and delivery).

Architecture position:
    Services layer.  ``LifecycleAction`` calls ``EventSink.publish`` after
    commit; handlers live in ``backoffice_services.handlers``.

Invariants enforced:
    - Handler failures never propagate to the publisher's caller and never
      affect other handlers.
    - ``on_delivered(event_id)`` fires only when every handler succeeded.
    - Delivery is at-least-once; handlers must be idempotent per event id.

Failure modes:
    - A handler that still fails after ``max_attempts`` is logged as
      ``handler_delivery_failed``; its event stays undelivered in the
      outbox and is picked up by the next relay run.
    - ``publish`` after ``shutdown`` raises RuntimeError.

Audit relevance:
    ``handler_delivered`` / ``handler_delivery_failed`` carry event id,
    event type, handler name and attempt count.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from backoffice_config.schema import EventDelivery
from backoffice_kernel.domain.clock import Clock, SystemClock
from backoffice_kernel.domain.entity import DomainEvent
from backoffice_kernel.logging_config import LogContext, get_logger
from backoffice_kernel.services.store import UnitOfWork

logger = get_logger("services.event_publisher")


@runtime_checkable
class EventSink(Protocol):
    """Anything that accepts committed domain events."""

    def publish(self, event: DomainEvent) -> None: ...


@runtime_checkable
class EventHandler(Protocol):
    """A side effect driven by domain events.  Must be idempotent per event id."""

    name: str

    def handle(self, event: DomainEvent) -> None: ...


class EventPublisher:
    """
    Asynchronous fan-out of domain events to independent handlers.

    Contract:
        ``publish`` returns immediately; deliveries run on a thread pool.
    Guarantees:
        - Each handler gets up to ``max_attempts`` tries with delays of
          ``backoff_seconds * 2**(attempt-1)`` between them.
        - ``drain`` blocks until outstanding deliveries finish or the
          timeout passes.
    Non-goals:
        - Ordering across events is not guaranteed.
    """

    def __init__(
        self,
        handlers: Iterable[EventHandler],
        max_workers: int = 4,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
        on_delivered: Callable[[UUID], None] | None = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._handlers = tuple(handlers)
        self._max_attempts = max_attempts
        self._backoff = backoff_seconds
        self._on_delivered = on_delivered
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="event-publisher"
        )
        self._lock = threading.Lock()
        self._pending: set[Future] = set()
        self._outstanding: dict[UUID, list] = {}
        self._closed = False

    @classmethod
    def from_config(
        cls,
        handlers: Iterable[EventHandler],
        delivery: EventDelivery,
        on_delivered: Callable[[UUID], None] | None = None,
    ) -> EventPublisher:
        return cls(
            handlers,
            max_workers=delivery.max_workers,
            max_attempts=delivery.max_attempts,
            backoff_seconds=delivery.backoff_seconds,
            on_delivered=on_delivered,
        )

    @property
    def handlers(self) -> tuple[EventHandler, ...]:
        return self._handlers

    def publish(self, event: DomainEvent) -> None:
        with self._lock:
            if self._closed:
                raise RuntimeError("EventPublisher is shut down")
            # [handlers remaining, all succeeded so far]
            self._outstanding[event.event_id] = [len(self._handlers), True]
            futures = [
                self._executor.submit(self._run, handler, event)
                for handler in self._handlers
            ]
            self._pending.update(futures)
        for future in futures:
            future.add_done_callback(self._forget)
        if not self._handlers:
            self._settle(event.event_id, True)

    def drain(self, timeout: float | None = None) -> bool:
        """Wait for in-flight deliveries.  True when none remain."""
        with self._lock:
            pending = set(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait_for_pending: bool = True) -> None:
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait_for_pending)

    # ------------------------------------------------------------------

    def _deliver(self, handler: EventHandler, event: DomainEvent) -> bool:
        with LogContext.bind(
            event_id=str(event.event_id),
            entity_id=str(event.entity_id),
            correlation_id=event.correlation_id,
        ):
            for attempt in range(1, self._max_attempts + 1):
                try:
                    handler.handle(event)
                except Exception as exc:
                    if attempt >= self._max_attempts:
                        logger.error(
                            "handler_delivery_failed",
                            extra={
                                "handler": handler.name,
                                "event_type": event.event_type,
                                "attempts": attempt,
                                "error": f"{type(exc).__name__}: {exc}",
                            },
                        )
                        return False
                    logger.warning(
                        "handler_delivery_retry",
                        extra={
                            "handler": handler.name,
                            "event_type": event.event_type,
                            "attempt": attempt,
                            "error": f"{type(exc).__name__}: {exc}",
                        },
                    )
                    if self._backoff:
                        time.sleep(self._backoff * (2 ** (attempt - 1)))
                else:
                    logger.debug(
                        "handler_delivered",
                        extra={
                            "handler": handler.name,
                            "event_type": event.event_type,
                            "attempts": attempt,
                        },
                    )
                    return True
        return False

    def _run(self, handler: EventHandler, event: DomainEvent) -> bool:
        ok = self._deliver(handler, event)
        self._settle(event.event_id, ok)
        return ok

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def _settle(self, event_id: UUID, ok: bool) -> None:
        with self._lock:
            state = self._outstanding.get(event_id)
            if state is None:
                return
            state[0] -= 1
            state[1] = state[1] and ok
            if state[0] > 0:
                return
            del self._outstanding[event_id]
            all_ok = state[1]
        if all_ok and self._on_delivered is not None:
            try:
                self._on_delivered(event_id)
            except Exception:
                logger.exception("delivery_confirmation_failed", extra={"event_id": str(event_id)})


class OutboxRelay:
    """
    Redelivers ``domain_events`` rows that were never marked delivered.

    ``mark_delivered`` is the ``on_delivered`` callback for an
    ``EventPublisher``; ``relay_pending`` is run at startup or on a
    schedule.
    """

    def __init__(self, session_factory: sessionmaker[Session], clock: Clock | None = None):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()

    def relay_pending(self, sink: EventSink, limit: int = 100) -> int:
        with UnitOfWork(self._session_factory, self._clock) as uow:
            events = uow.store.undelivered_events(limit=limit)
        for event in events:
            sink.publish(event)
        logger.info("outbox_relayed", extra={"event_count": len(events)})
        return len(events)

    def mark_delivered(self, event_id: UUID) -> bool:
        with UnitOfWork(self._session_factory, self._clock) as uow:
            return uow.store.mark_delivered(event_id, self._clock.now())
