"""Data access for the RMA aggregate (header + lines).

Reads run against whatever session the repository was built with. Writes
take a ``Transaction`` handle and refuse to run once its unit of work has
ended.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import contains_eager, selectinload

from rms.config import settings
from rms.database.transaction import Transaction
from rms.models.enums import DispositionType, RmaStatus
from rms.models.rma import Rma
from rms.models.rma_line import RmaLine
from rms.modules.rma.constants import APPROVAL_QUEUE_STATUSES
from rms.modules.users.service import ActorContext, branch_scope_where

_LINE_FIELDS = ("part_number", "ordered_qty", "reason_code", "disposition", "unit_cost")


class RmaRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def find_by_id(self, rma_id: uuid.UUID, *, for_update: bool = False) -> Rma | None:
        """Load the aggregate with its lines, or None.

        ``for_update`` takes a row lock on the header (PostgreSQL) so
        concurrent transitions on the same RMA serialise.
        """
        query = (
            select(Rma)
            .options(selectinload(Rma.lines))
            .where(Rma.id == rma_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update(of=Rma)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def find_by_id_branch_scoped(
        self,
        rma_id: uuid.UUID,
        actor: ActorContext,
        *,
        for_update: bool = False,
    ) -> Rma | None:
        """Like find_by_id, but records outside the actor's branches read as absent."""
        query = (
            select(Rma)
            .options(selectinload(Rma.lines))
            .where(Rma.id == rma_id, *branch_scope_where(actor))
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update(of=Rma)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def find_many_branch_scoped(
        self,
        actor: ActorContext,
        *,
        branch_id: str | None = None,
        status: RmaStatus | None = None,
        take: int = 50,
        skip: int = 0,
    ) -> list[Rma]:
        """List RMAs visible to the actor, newest first."""
        query = select(Rma).options(selectinload(Rma.lines)).where(
            *branch_scope_where(actor, branch_id)
        )
        if status is not None:
            query = query.where(Rma.status == status)
        query = query.order_by(Rma.created_at.desc()).offset(skip).limit(take)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def find_for_approval_queue(
        self,
        actor: ActorContext,
        *,
        branch_id: str | None = None,
        status: RmaStatus | None = None,
        take: int | None = None,
        skip: int = 0,
    ) -> list[Rma]:
        """RMAs awaiting a branch manager decision, oldest first."""
        if status is not None and status not in APPROVAL_QUEUE_STATUSES:
            return []
        statuses = [status] if status is not None else list(APPROVAL_QUEUE_STATUSES)

        query = (
            select(Rma)
            .options(selectinload(Rma.lines))
            .where(Rma.status.in_(statuses), *branch_scope_where(actor, branch_id))
            .order_by(Rma.created_at.asc())
            .offset(skip)
            .limit(take or settings.approval_queue_page_size)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def find_credit_approval_lines(
        self,
        actor: ActorContext,
        *,
        branch_id: str | None = None,
        take: int | None = None,
        skip: int = 0,
    ) -> list[RmaLine]:
        """Unapproved CREDIT lines on QC_COMPLETE RMAs, ordered by RMA age."""
        query = (
            select(RmaLine)
            .join(RmaLine.rma)
            .options(contains_eager(RmaLine.rma))
            .where(
                RmaLine.disposition == DispositionType.CREDIT,
                RmaLine.finance_approved_at.is_(None),
                Rma.status == RmaStatus.QC_COMPLETE,
                *branch_scope_where(actor, branch_id),
            )
            .order_by(Rma.created_at.asc(), RmaLine.created_at.asc())
            .offset(skip)
            .limit(take or settings.credit_approval_page_size)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def generate_rma_number(self) -> str:
        """Next RMA-YYYYMM-NNNNNN for the current month.

        Count-based, so two concurrent callers can get the same number; the
        unique constraint on rma_number catches that and the caller retries.
        """
        prefix = f"RMA-{datetime.now(UTC):%Y%m}-"
        result = await self.db.execute(
            select(func.count()).select_from(Rma).where(Rma.rma_number.like(f"{prefix}%"))
        )
        count = result.scalar_one()
        return f"{prefix}{count + 1:06d}"

    # ------------------------------------------------------------------
    # Header writes
    # ------------------------------------------------------------------

    async def create_rma(
        self,
        tx: Transaction,
        *,
        rma_number: str,
        branch_id: str,
        lines: list[dict[str, Any]],
        customer_id: str | None = None,
        submitted_by_id: uuid.UUID | None = None,
    ) -> Rma:
        session = tx.ensure_active()
        rma = Rma(
            rma_number=rma_number,
            status=RmaStatus.DRAFT,
            branch_id=branch_id,
            customer_id=customer_id,
            submitted_by_id=submitted_by_id,
        )
        rma.lines = [self._new_line(data) for data in lines]
        session.add(rma)
        await session.flush()
        return rma

    async def update_status(
        self,
        tx: Transaction,
        rma: Rma,
        status: RmaStatus,
        **fields: Any,
    ) -> Rma:
        """Set the status plus any transition-specific header fields."""
        return await self.update_rma(tx, rma, status=status, **fields)

    async def update_rma(self, tx: Transaction, rma: Rma, **fields: Any) -> Rma:
        session = tx.ensure_active()
        for key, value in fields.items():
            setattr(rma, key, value)
        await session.flush()
        return rma

    # ------------------------------------------------------------------
    # Line writes
    # ------------------------------------------------------------------

    async def add_line(self, tx: Transaction, rma_id: uuid.UUID, data: dict[str, Any]) -> RmaLine:
        session = tx.ensure_active()
        line = self._new_line(data)
        line.rma_id = rma_id
        session.add(line)
        await session.flush()
        return line

    async def update_line(self, tx: Transaction, line: RmaLine, changes: dict[str, Any]) -> RmaLine:
        """Patch line fields.

        Moving the disposition away from CREDIT drops any finance approval
        in the same write.
        """
        session = tx.ensure_active()
        for key, value in changes.items():
            setattr(line, key, value)
        if "disposition" in changes and changes["disposition"] != DispositionType.CREDIT:
            line.finance_approved_at = None
            line.finance_approved_by_id = None
        await session.flush()
        return line

    async def remove_line(self, tx: Transaction, line: RmaLine) -> None:
        session = tx.ensure_active()
        await session.delete(line)
        await session.flush()

    async def update_line_receipt(self, tx: Transaction, line: RmaLine, received_qty: int) -> RmaLine:
        session = tx.ensure_active()
        line.received_qty = received_qty
        await session.flush()
        return line

    async def update_line_qc(
        self,
        tx: Transaction,
        line: RmaLine,
        *,
        inspected_qty: int,
        qc_inspected_at: datetime,
        qc_pass: bool | None = None,
        qc_findings: str | None = None,
        qc_disposition_recommendation: DispositionType | None = None,
    ) -> RmaLine:
        """Record an inspection. Optional QC result fields are only written when supplied."""
        session = tx.ensure_active()
        line.inspected_qty = inspected_qty
        line.qc_inspected_at = qc_inspected_at
        if qc_pass is not None:
            line.qc_pass = qc_pass
        if qc_findings is not None:
            line.qc_findings = qc_findings
        if qc_disposition_recommendation is not None:
            line.qc_disposition_recommendation = qc_disposition_recommendation
        await session.flush()
        return line

    async def approve_line_credit(
        self,
        tx: Transaction,
        line: RmaLine,
        *,
        approved_by_id: uuid.UUID,
        approved_at: datetime,
    ) -> RmaLine:
        session = tx.ensure_active()
        line.finance_approved_at = approved_at
        line.finance_approved_by_id = approved_by_id
        await session.flush()
        return line

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _new_line(data: dict[str, Any]) -> RmaLine:
        return RmaLine(
            **{key: data[key] for key in _LINE_FIELDS if data.get(key) is not None},
            received_qty=0,
            inspected_qty=0,
        )
