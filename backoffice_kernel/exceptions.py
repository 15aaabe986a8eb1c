"""
Typed Exception Hierarchy for the Back-Office Kernel.

Every error has a typed class (catch by type, not message), a class-level
``code`` (machine-readable, API-safe), and structured attributes.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BackofficeError (base)
    |
    +-- LifecycleError
    |   +-- InvalidTransitionError
    |   +-- PreconditionFailedError
    |   +-- UnknownActionError
    |
    +-- ValidationError
    |
    +-- EntityNotFoundError
    |
    +-- ConcurrencyError
    |   +-- ConflictError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                      | When Raised                              | Caller handling
--------------------------|------------------------------------------|-------------------------
INVALID_TRANSITION        | Status unreachable, or guard failed      | Surface verbatim
PRECONDITION_FAILED       | Domain rule beyond status (hours, txn id)| Surface verbatim
UNKNOWN_ACTION            | No action registered for (kind, action)  | Programming error
VALIDATION_ERROR          | Missing / out-of-range input             | Surface verbatim
ENTITY_NOT_FOUND          | Entity id unknown for kind               | 404-equivalent
OPTIMISTIC_LOCK_CONFLICT  | Concurrent writer won the race           | Reload + retry once
CONFIGURATION_ERROR       | Config file invalid or inconsistent      | Fail at startup

Degenerate computations (zero denominators, empty periods) are NOT errors:
engines resolve them to documented fallback values.

===============================================================================
"""

from typing import Any


class BackofficeError(Exception):
    """
    Base exception for all back-office kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "BACKOFFICE_ERROR"


# Lifecycle exceptions


class LifecycleError(BackofficeError):
    """Base exception for lifecycle (status / action) errors."""

    code: str = "LIFECYCLE_ERROR"


class InvalidTransitionError(LifecycleError):
    """Requested status is not reachable from the current one, or its guard failed."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        kind: str,
        entity_id: str | None,
        from_status: str,
        to_status: str,
        reason: str = "not_in_table",
    ):
        self.kind = kind
        self.entity_id = entity_id
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        super().__init__(
            f"Invalid {kind} transition {from_status} -> {to_status}"
            f" for {entity_id}: {reason}"
        )


class PreconditionFailedError(LifecycleError):
    """A domain rule beyond pure status rejected the action."""

    code: str = "PRECONDITION_FAILED"

    def __init__(self, kind: str, entity_id: str | None, action: str, reason: str):
        self.kind = kind
        self.entity_id = entity_id
        self.action = action
        self.reason = reason
        super().__init__(f"Cannot {action} {kind} {entity_id}: {reason}")


class UnknownActionError(LifecycleError):
    """No action definition is registered for the (kind, action) pair."""

    code: str = "UNKNOWN_ACTION"

    def __init__(self, kind: str, action: str, available: list[str] | None = None):
        self.kind = kind
        self.action = action
        self.available = available or []
        super().__init__(
            f"Unknown action '{action}' for {kind}; available: {', '.join(self.available)}"
        )


# Validation


class ValidationError(BackofficeError):
    """Input is missing, malformed, or out of range."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.value = value
        super().__init__(f"{field}: {message}")


# Lookup


class EntityNotFoundError(BackofficeError):
    """Entity with given kind and id was not found."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} not found: {entity_id}")


# Concurrency


class ConcurrencyError(BackofficeError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConflictError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Configuration


class ConfigurationError(BackofficeError):
    """Configuration file is missing, malformed, or internally inconsistent."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"Invalid configuration ({source}): {message}")
