"""
Training Domain Models (``backoffice_modules.training.models``).

Status enum and progress snapshot for employee training records.  Pure
data definitions.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class TrainingStatus(Enum):
    """Employee training states.  Must align with ``TRAINING_WORKFLOW.states``."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class TrainingProgress:
    hours_completed: Decimal
    total_hours: Decimal
    percentage: Decimal

    @property
    def complete(self) -> bool:
        return self.hours_completed >= self.total_hours
