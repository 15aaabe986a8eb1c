"""
Back-office services: the lifecycle executor, event fan-out, and the
default side-effect handlers.

Wiring::

    relay = OutboxRelay(session_factory, clock)
    publisher = EventPublisher.from_config(
        default_handlers(session_factory, clock),
        config.delivery,
        on_delivered=relay.mark_delivered,
    )
    lifecycle = LifecycleAction(session_factory, publisher, clock, config, directory)
"""

from backoffice_services.event_publisher import (
    EventHandler,
    EventPublisher,
    EventSink,
    OutboxRelay,
)
from backoffice_services.handlers import (
    AuditLogHandler,
    LoggingNotifier,
    MetricsHandler,
    NotificationHandler,
    Notifier,
    PayrollDeductionHandler,
    default_handlers,
)
from backoffice_services.lifecycle_action import LifecycleAction, LifecycleCommand

__all__ = [
    "AuditLogHandler",
    "EventHandler",
    "EventPublisher",
    "EventSink",
    "LifecycleAction",
    "LifecycleCommand",
    "LoggingNotifier",
    "MetricsHandler",
    "NotificationHandler",
    "Notifier",
    "OutboxRelay",
    "PayrollDeductionHandler",
    "default_handlers",
]
