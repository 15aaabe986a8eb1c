"""Imperative-shell services of the back-office kernel."""

from backoffice_kernel.services.store import EntityStore, UnitOfWork, retry_on_conflict

__all__ = ["EntityStore", "UnitOfWork", "retry_on_conflict"]
