"""
Benefits ORM Models (``backoffice_modules.benefits.orm``).

Responsibility
--------------
SQLAlchemy persistence for payroll deductions derived from benefit
enrollments.  Rows are maintained by ``PayrollDeductionHandler`` from
benefit domain events, never by the enrollment action itself.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``backoffice_kernel.db.base``
and sibling ``models.py``.  MUST NOT be imported by ``backoffice_kernel``
(the engine module imports it lazily only to register the table).
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from backoffice_kernel.db.base import TrackedBase, UUIDString
from backoffice_modules.benefits.models import DeductionStatus, PayrollDeduction


class PayrollDeductionModel(TrackedBase):
    """
    ORM model for a benefit payroll deduction.

    Guarantees:
        - One row per benefit enrollment (uq_payroll_deduction_benefit).
        - amount is the employee share of the premium.
        - status stored as the string enum value.
    """

    __tablename__ = "benefit_payroll_deductions"

    __table_args__ = (
        UniqueConstraint("benefit_id", name="uq_payroll_deduction_benefit"),
        Index("idx_payroll_deduction_employee", "employee_id"),
    )

    benefit_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    employee_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[Decimal]
    frequency: Mapped[str] = mapped_column(String(20), nullable=False, default="monthly")
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    def to_dto(self) -> PayrollDeduction:
        return PayrollDeduction(
            id=self.id,
            benefit_id=self.benefit_id,
            employee_id=self.employee_id,
            amount=self.amount,
            frequency=self.frequency,
            status=DeductionStatus(self.status),
            start_date=self.start_date,
            end_date=self.end_date,
        )

    def __repr__(self) -> str:
        return f"<PayrollDeduction {self.benefit_id} {self.status} {self.amount}>"
