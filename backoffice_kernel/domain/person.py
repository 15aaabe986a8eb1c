"""
Person directory port (``backoffice_kernel.domain.person``).

Benefit guards and eligibility checks need to know whether the owning
employee is active, how they are employed and since when.  The directory
itself lives outside this library; callers inject an implementation of
``PersonDirectory``.  ``InMemoryPersonDirectory`` is the reference
implementation used by tests and tooling.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import date
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class PersonSnapshot:
    """Point-in-time view of a person as the directory reports it."""

    person_id: str
    active: bool
    employment_type: str = "full_time"
    hire_date: date | None = None
    email: str | None = None

    def service_days(self, as_of: date) -> int:
        if self.hire_date is None:
            return 0
        return max(0, (as_of - self.hire_date).days)


@runtime_checkable
class PersonDirectory(Protocol):
    """Lookup of people by id.  Returns None for unknown ids."""

    def lookup(self, person_id: str) -> PersonSnapshot | None: ...


class InMemoryPersonDirectory:
    """Dictionary-backed directory.  Safe to share across threads."""

    def __init__(self, people: list[PersonSnapshot] | None = None):
        self._lock = threading.Lock()
        self._people: dict[str, PersonSnapshot] = {}
        for person in people or []:
            self._people[person.person_id] = person

    def add(self, person: PersonSnapshot) -> None:
        with self._lock:
            self._people[person.person_id] = person

    def lookup(self, person_id: str) -> PersonSnapshot | None:
        with self._lock:
            return self._people.get(str(person_id))
