"""
Benefits Module (``backoffice_modules.benefits``).

Employee benefit enrollments: premium valuation by network, benefit type
and coverage level; employee/employer contribution split; tenure and
volume discounts; eligibility; proration on termination; renewal; payroll
deductions maintained from enrollment events.

``BenefitsService`` lives in ``backoffice_modules.benefits.service``.
"""

from backoffice_modules.benefits.models import (
    BenefitStatus,
    CoverageLevel,
    DeductionStatus,
    EligibilityResult,
    PayrollDeduction,
)
from backoffice_modules.benefits.workflows import BENEFIT_WORKFLOW

__all__ = [
    "BenefitStatus",
    "CoverageLevel",
    "DeductionStatus",
    "EligibilityResult",
    "PayrollDeduction",
    "BENEFIT_WORKFLOW",
]
