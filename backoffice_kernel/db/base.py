"""
Module: backoffice_kernel.db.base
Responsibility: Declarative base classes shared by every ORM model in the
    back office: lifecycle entities, domain events, handler receipts and
    module tables such as payroll deductions.
Architecture position: Kernel > DB.  Lowest-level import target inside the
    kernel; MUST NOT import from models/, services/, domain/ or outer layers.

Invariants enforced:
    - Primary keys are uuid4 values stored as 36-character strings, so the
      same schema runs on PostgreSQL and on the SQLite files used in tests.
    - Money columns are ``Numeric(18, 2)``; floats never reach the database.
    - Dates without a time part stay ``Date``; timestamps are timezone-aware.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, ClassVar
from uuid import UUID, uuid4

from sqlalchemy import JSON, Date, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

MONEY = Numeric(18, 2)


class UUIDString(TypeDecorator):
    """UUID column stored as String(36).  Accepts UUIDs or their string form."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(value if isinstance(value, UUID) else UUID(str(value)))

    def process_result_value(self, value, dialect):
        return UUID(value) if value is not None else None


class Base(DeclarativeBase):
    """
    Declarative base.

    ``Mapped[...]`` annotations resolve through ``type_annotation_map``:
    Decimal to money, date to Date, datetime to timezone-aware DateTime,
    UUID to UUIDString and plain dicts to JSON.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: MONEY,
        date: Date,
        datetime: DateTime(timezone=True),
        UUID: UUIDString(),
        dict[str, Any]: JSON,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Abstract base recording when and by whom a row was written.

    The store stamps ``created_at`` / ``updated_at`` from the injected
    clock; the server defaults only cover rows written outside it.  Actor
    columns are nullable because batch sweeps run without a person.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )
    created_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    updated_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
