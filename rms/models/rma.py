"""Rma model — return merchandise authorization header."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rms.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from rms.models.enums import RmaStatus

if TYPE_CHECKING:
    from rms.models.rma_line import RmaLine


class Rma(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "rmas"

    rma_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    status: Mapped[RmaStatus] = mapped_column(nullable=False, server_default="DRAFT")

    # Ownership
    branch_id: Mapped[str] = mapped_column(String(64), nullable=False)
    customer_id: Mapped[str | None] = mapped_column(String(64))
    submitted_by_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)

    # Reason fields, each written by exactly one transition
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    cancellation_reason: Mapped[str | None] = mapped_column(Text)
    dispute_reason: Mapped[str | None] = mapped_column(Text)
    contested_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    contest_resolution_note: Mapped[str | None] = mapped_column(Text)

    # Relationships
    lines: Mapped[list[RmaLine]] = relationship(
        "RmaLine",
        back_populates="rma",
        lazy="noload",
        cascade="all, delete-orphan",
        order_by="RmaLine.created_at",
    )

    __table_args__ = (
        Index("ix_rmas_branch_id", "branch_id"),
        Index("ix_rmas_status", "status"),
        Index("ix_rmas_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Rma id={self.id} number={self.rma_number} status={self.status}>"
