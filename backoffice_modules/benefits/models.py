"""
Benefits Domain Models (``backoffice_modules.benefits.models``).

Responsibility
--------------
Frozen value objects and enums for employee benefit enrollments: benefit
statuses, coverage levels, payroll deduction snapshots and eligibility
outcomes.

Architecture position
---------------------
**Modules layer** -- pure data definitions.  No I/O, no database.

Invariants enforced
-------------------
* All monetary fields use ``Decimal``.
* ``BenefitStatus`` values align with ``workflows.BENEFIT_WORKFLOW.states``.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID


class BenefitStatus(Enum):
    """Benefit enrollment states.  Must align with ``BENEFIT_WORKFLOW.states``."""
    PENDING = "pending"
    ENROLLED = "enrolled"
    TERMINATED = "terminated"
    CANCELLED = "cancelled"


class CoverageLevel(Enum):
    INDIVIDUAL = "individual"
    SPOUSE = "spouse"
    CHILDREN = "children"
    FAMILY = "family"


class DeductionStatus(Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    RENEWAL_REQUIRED = "renewal_required"


@dataclass(frozen=True)
class PayrollDeduction:
    """Employee-side premium withheld through payroll for one enrollment."""
    id: UUID
    benefit_id: UUID
    employee_id: str
    amount: Decimal
    frequency: str
    status: DeductionStatus
    start_date: date | None
    end_date: date | None = None


@dataclass(frozen=True)
class EligibilityResult:
    """Outcome of a benefit eligibility check.  ``reasons`` is empty when eligible."""
    employee_id: str
    eligible: bool
    service_days: int
    reasons: tuple[str, ...] = ()
