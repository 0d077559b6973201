"""Audit recorder — one immutable row per significant change."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rms.database.transaction import Transaction
from rms.models.audit_event import AuditEvent
from rms.modules.audit.constants import KNOWN_AUDIT_ACTIONS

logger = logging.getLogger(__name__)


class AuditService:
    async def log_event(
        self,
        tx: Transaction,
        *,
        actor_id: uuid.UUID,
        actor_role: str,
        action: str,
        rma_id: uuid.UUID | None = None,
        rma_line_id: uuid.UUID | None = None,
        from_status: str | None = None,
        to_status: str | None = None,
        old_value: dict | None = None,
        new_value: dict | None = None,
        metadata: dict | None = None,
        ip_address: str | None = None,
    ) -> AuditEvent:
        """Insert an audit row inside the caller's transaction.

        ``tx`` is required: the row must commit or roll back together with the
        change it documents. Any insert failure propagates so the caller's
        whole unit of work aborts. ``occurred_at`` is assigned here, never by
        the caller.
        """
        session = tx.ensure_active()

        if action not in KNOWN_AUDIT_ACTIONS:
            logger.warning("Recording unregistered audit action %s", action)

        event = AuditEvent(
            rma_id=rma_id,
            rma_line_id=rma_line_id,
            actor_id=actor_id,
            actor_role=actor_role,
            action=action,
            from_status=from_status,
            to_status=to_status,
            old_value=old_value,
            new_value=new_value,
            event_metadata=metadata,
            ip_address=ip_address,
        )
        session.add(event)
        await session.flush()
        return event

    async def list_for_rma(self, db: AsyncSession, rma_id: uuid.UUID) -> list[AuditEvent]:
        """Return the audit trail for an RMA, oldest first."""
        result = await db.execute(
            select(AuditEvent)
            .where(AuditEvent.rma_id == rma_id)
            .order_by(AuditEvent.occurred_at.asc())
        )
        return list(result.scalars().all())
