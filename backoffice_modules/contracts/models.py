"""
Contracts Domain Models (``backoffice_modules.contracts.models``).

Responsibility
--------------
Status enum for provider contracts and the read model returned by the
metrics query.

Architecture position
---------------------
**Modules layer** -- pure data definitions.  No I/O.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from uuid import UUID

from backoffice_engines.contract_metrics import ContractMetrics
from backoffice_engines.scheduling import ExpiryStatus


class ContractStatus(Enum):
    """Provider contract states.  Must align with ``CONTRACT_WORKFLOW.states``."""
    DRAFT = "draft"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    PENDING_RENEWAL = "pending_renewal"
    TERMINATED = "terminated"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ContractSnapshot:
    """Metrics for one contract at ``as_of``, with its expiry classification."""
    contract_id: UUID
    status: str
    as_of: date
    expiry_status: ExpiryStatus
    metrics: ContractMetrics
