"""
Module: backoffice_kernel.models.handler_receipt
Responsibility: One row per (handler, event) pair that a database-backed
    handler has fully applied.  Written in the same transaction as the
    handler's own effect, so redelivery of the same event is a no-op.
Architecture position: Kernel > Models.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from backoffice_kernel.db.base import Base, UUIDString


class HandlerReceiptModel(Base):
    """Idempotency receipt for event handlers."""

    __tablename__ = "handler_receipts"

    __table_args__ = (
        UniqueConstraint("handler_name", "event_id", name="uq_handler_event"),
    )

    handler_name: Mapped[str] = mapped_column(String(100), nullable=False)

    event_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    processed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<HandlerReceipt {self.handler_name}:{self.event_id}>"
