"""FulfillmentIntegrationLog model — one row per fulfillment adapter call."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from rms.database.base import Base, JSONType, UUIDPrimaryKeyMixin, utcnow
from rms.models.enums import FulfillmentOperation, FulfillmentStatus


class FulfillmentIntegrationLog(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "fulfillment_integration_logs"

    rma_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("rmas.id", ondelete="RESTRICT"), nullable=False
    )
    operation_type: Mapped[FulfillmentOperation] = mapped_column(nullable=False)
    request_payload: Mapped[dict] = mapped_column(JSONType, nullable=False)
    response_payload: Mapped[dict | None] = mapped_column(JSONType)
    reference_id: Mapped[str | None] = mapped_column(String(100))
    status: Mapped[FulfillmentStatus] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_fulfillment_integration_logs_rma_id", "rma_id"),
    )
