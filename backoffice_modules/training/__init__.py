"""
Training Module (``backoffice_modules.training``).

Employee trainings: start and retake, progress in hours, completion with
score and rating, failure, cancellation and reactivation, certification
expiry and renewal.
"""

from backoffice_modules.training.models import TrainingProgress, TrainingStatus
from backoffice_modules.training.workflows import TRAINING_WORKFLOW

__all__ = ["TrainingProgress", "TrainingStatus", "TRAINING_WORKFLOW"]
