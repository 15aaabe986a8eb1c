"""
Back-Office Lifecycle Modules.

Thin declarative layers over the kernel and engines.  Each module
contains:
- Domain models (statuses, read models)
- Workflows (transition tables and guards)
- Actions (preconditions, validation and recomputation per operation)
- A service facade over the generic ``LifecycleAction`` executor

Modules:
- Benefits: employee benefit enrollments, premiums, payroll deductions
- Contracts: provider contracts, commission, renewal, metrics
- Invoices: provider invoices, partial payments, late fees
- Payments: provider payments, refunds, reconciliation
- Training: employee trainings and certifications

``backoffice_modules.registry`` assembles the action tables.
"""

from backoffice_modules import benefits, contracts, invoices, payments, training

__all__ = ["benefits", "contracts", "invoices", "payments", "training"]
