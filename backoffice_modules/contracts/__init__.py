"""
Contracts Module (``backoffice_modules.contracts``).

Provider contracts: signing with commission split, suspension, renewal
window flagging, renewal, termination, expiry, and contract metrics.
"""

from backoffice_modules.contracts.models import ContractSnapshot, ContractStatus
from backoffice_modules.contracts.workflows import CONTRACT_WORKFLOW

__all__ = ["ContractSnapshot", "ContractStatus", "CONTRACT_WORKFLOW"]
