"""RmaLine model — one returned item on an RMA."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rms.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from rms.models.enums import DispositionType

if TYPE_CHECKING:
    from rms.models.rma import Rma


class RmaLine(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "rma_lines"

    rma_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("rmas.id", ondelete="CASCADE"), nullable=False
    )
    part_number: Mapped[str] = mapped_column(String(100), nullable=False)
    ordered_qty: Mapped[int] = mapped_column(Integer, nullable=False)
    reason_code: Mapped[str] = mapped_column(String(50), nullable=False)
    disposition: Mapped[DispositionType | None] = mapped_column()
    unit_cost: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))

    # Warehouse / QC quantities
    received_qty: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    inspected_qty: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    # QC results; qc_inspected_at doubles as the disposition lock
    qc_inspected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    qc_pass: Mapped[bool | None] = mapped_column(Boolean)
    qc_findings: Mapped[str | None] = mapped_column(Text)
    qc_disposition_recommendation: Mapped[DispositionType | None] = mapped_column()

    # Finance approval (CREDIT lines only)
    finance_approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    finance_approved_by_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)

    # Relationships
    rma: Mapped[Rma] = relationship("Rma", back_populates="lines", lazy="noload")

    __table_args__ = (
        Index("ix_rma_lines_rma_id", "rma_id"),
        Index("ix_rma_lines_disposition", "disposition"),
    )

    def __repr__(self) -> str:
        return (
            f"<RmaLine id={self.id} part={self.part_number} ordered={self.ordered_qty} "
            f"received={self.received_qty} inspected={self.inspected_qty}>"
        )
