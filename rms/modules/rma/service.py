"""RMA lifecycle service — the state machine driver.

Every public operation runs in one unit of work: load the aggregate (row
locked), check guards, validate the transition, write, audit, re-read. Guards
raise before the first write, and any failure after it rolls the whole unit
back, audit row included.
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rms.config import settings
from rms.database.transaction import Transaction, unit_of_work
from rms.exceptions import (
    ForbiddenException,
    InvalidTransitionException,
    NotFoundException,
    PreconditionFailedException,
)
from rms.models.enums import DispositionType, RmaStatus
from rms.models.rma import Rma
from rms.models.rma_line import RmaLine
from rms.modules.audit.constants import AuditAction
from rms.modules.audit.service import AuditService
from rms.modules.events.outbox_service import OutboxService
from rms.modules.rma.constants import (
    EVENT_RMA_RESOLVED,
    LINE_EDITABLE_STATUSES,
    RECEIPT_STATUSES,
)
from rms.modules.rma.lifecycle import allowed_transitions, assert_valid_transition
from rms.modules.rma.repository import RmaRepository
from rms.modules.users.service import ActorContext

logger = logging.getLogger(__name__)

_EDITABLE_LINE_FIELDS = frozenset({"part_number", "ordered_qty", "reason_code", "disposition", "unit_cost"})


# ------------------------------------------------------------------
# Guard helpers
# ------------------------------------------------------------------


def _require_text(value: str | None, label: str) -> str:
    if value is None or not value.strip():
        raise PreconditionFailedException(f"{label} is required")
    return value.strip()


def _require_positive_qty(value: Any, label: str = "ordered_qty") -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise PreconditionFailedException(f"{label} must be a positive integer")


def _require_line_editable(rma: Rma) -> None:
    if rma.status not in LINE_EDITABLE_STATUSES:
        raise PreconditionFailedException(
            f"Lines can only be changed while the RMA is DRAFT or INFO_REQUIRED "
            f"(current status: {rma.status.value})"
        )


def _require_source_status(rma: Rma, expected: RmaStatus, to_status: RmaStatus) -> None:
    """Reject operations whose target is reachable from several statuses.

    The table lets both SUBMITTED and CONTESTED reach APPROVED, and both
    RESOLVED and CONTESTED reach CLOSED; each operation owns one of those edges.
    """
    if rma.status != expected:
        raise PreconditionFailedException(
            f"Only {expected.value} RMAs can move to {to_status.value} through this operation "
            f"(current status: {rma.status.value})"
        )


def _find_line(rma: Rma, line_id: uuid.UUID) -> RmaLine:
    for line in rma.lines:
        if line.id == line_id:
            return line
    raise NotFoundException(f"Line {line_id} not found on RMA {rma.id}")


def _json_value(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, DispositionType | RmaStatus):
        return value.value
    return value


def _line_snapshot(line: RmaLine) -> dict[str, Any]:
    """JSON-safe view of a line for audit old/new values."""
    return {
        "id": _json_value(line.id),
        "partNumber": line.part_number,
        "orderedQty": line.ordered_qty,
        "reasonCode": line.reason_code,
        "disposition": _json_value(line.disposition),
        "unitCost": _json_value(line.unit_cost),
        "receivedQty": line.received_qty,
        "inspectedQty": line.inspected_qty,
        "qcInspectedAt": _json_value(line.qc_inspected_at),
        "financeApprovedAt": _json_value(line.finance_approved_at),
    }


def _changes_snapshot(changes: dict[str, Any]) -> dict[str, Any]:
    return {key: _json_value(value) for key, value in changes.items()}


class RmaLifecycleService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audit: AuditService | None = None,
        outbox: OutboxService | None = None,
    ):
        self._session_factory = session_factory
        self._audit = audit or AuditService()
        self._outbox = outbox or OutboxService()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _load(self, tx: Transaction, rma_id: uuid.UUID, actor: ActorContext) -> Rma:
        rma = await RmaRepository(tx.session).find_by_id_branch_scoped(
            rma_id, actor, for_update=True
        )
        if rma is None:
            raise NotFoundException(f"RMA {rma_id} not found")
        return rma

    async def _log(
        self,
        tx: Transaction,
        actor: ActorContext,
        action: str,
        rma: Rma,
        **fields: Any,
    ) -> None:
        await self._audit.log_event(
            tx,
            actor_id=actor.id,
            actor_role=actor.role.value,
            action=action,
            rma_id=rma.id,
            ip_address=actor.ip_address,
            **fields,
        )

    async def _transition(
        self,
        rma_id: uuid.UUID,
        actor: ActorContext,
        to_status: RmaStatus,
        action: str,
        *,
        source_status: RmaStatus | None = None,
        fields: dict[str, Any] | None = None,
        new_value: dict | None = None,
        metadata: dict | None = None,
    ) -> Rma:
        """Shared body for operations that only move the header status."""
        async with unit_of_work(self._session_factory) as tx:
            repo = RmaRepository(tx.session)
            rma = await self._load(tx, rma_id, actor)
            from_status = rma.status

            assert_valid_transition(from_status, to_status)
            if source_status is not None:
                _require_source_status(rma, source_status, to_status)

            await repo.update_status(tx, rma, to_status, **(fields or {}))
            await self._log(
                tx, actor, action, rma,
                from_status=from_status.value,
                to_status=to_status.value,
                new_value=new_value,
                metadata=metadata,
            )
            result = await repo.find_by_id(rma_id)

        logger.info(
            "RMA %s moved %s -> %s by %s", result.rma_number, from_status.value, to_status.value, actor.id
        )
        return result

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_draft(
        self,
        branch_id: str,
        lines: list[dict[str, Any]],
        actor: ActorContext,
        customer_id: str | None = None,
    ) -> Rma:
        """Create a DRAFT RMA with its initial lines.

        The RMA number is count-based; on a unique-constraint collision the
        whole unit of work is retried with a freshly allocated number.
        """
        if not lines:
            raise PreconditionFailedException("At least one line item is required to create an RMA")
        for line in lines:
            _require_positive_qty(line.get("ordered_qty"))
            _require_text(line.get("part_number"), "part_number")
            _require_text(line.get("reason_code"), "reason_code")
        if not actor.is_admin and branch_id not in actor.branch_ids:
            raise ForbiddenException(f"Branch {branch_id} is outside your branch scope")

        max_attempts = settings.rma_number_max_attempts
        for attempt in range(1, max_attempts + 1):
            try:
                async with unit_of_work(self._session_factory) as tx:
                    repo = RmaRepository(tx.session)
                    rma_number = await repo.generate_rma_number()
                    rma = await repo.create_rma(
                        tx,
                        rma_number=rma_number,
                        branch_id=branch_id,
                        customer_id=customer_id,
                        submitted_by_id=actor.id,
                        lines=lines,
                    )
                    await self._log(
                        tx, actor, AuditAction.RMA_CREATED, rma,
                        to_status=RmaStatus.DRAFT.value,
                        new_value={"rmaNumber": rma_number, "lineCount": len(lines)},
                    )
                    result = await repo.find_by_id(rma.id)
                break
            except IntegrityError:
                if attempt >= max_attempts:
                    logger.error("Giving up on RMA number allocation after %d attempts", attempt)
                    raise
                logger.warning("RMA number collision on attempt %d, retrying", attempt)

        logger.info("Created RMA %s (%s) in branch %s", result.id, result.rma_number, branch_id)
        return result

    # ------------------------------------------------------------------
    # Header transitions
    # ------------------------------------------------------------------

    async def submit(self, rma_id: uuid.UUID, actor: ActorContext) -> Rma:
        """DRAFT or INFO_REQUIRED -> SUBMITTED. Requires at least one line."""
        async with unit_of_work(self._session_factory) as tx:
            repo = RmaRepository(tx.session)
            rma = await self._load(tx, rma_id, actor)
            from_status = rma.status

            assert_valid_transition(from_status, RmaStatus.SUBMITTED)
            if not rma.lines:
                raise PreconditionFailedException("Cannot submit an RMA with no line items")

            await repo.update_status(tx, rma, RmaStatus.SUBMITTED)
            await self._log(
                tx, actor, AuditAction.RMA_SUBMITTED, rma,
                from_status=from_status.value,
                to_status=RmaStatus.SUBMITTED.value,
                metadata={"cycle": "resubmit"} if from_status == RmaStatus.INFO_REQUIRED else None,
            )
            result = await repo.find_by_id(rma_id)

        logger.info("RMA %s submitted from %s", result.rma_number, from_status.value)
        return result

    async def place_info_required(
        self, rma_id: uuid.UUID, actor: ActorContext, note: str | None = None
    ) -> Rma:
        return await self._transition(
            rma_id, actor, RmaStatus.INFO_REQUIRED, AuditAction.RMA_INFO_REQUIRED,
            new_value={"note": note.strip()} if note and note.strip() else None,
        )

    async def approve(self, rma_id: uuid.UUID, actor: ActorContext) -> Rma:
        return await self._transition(
            rma_id, actor, RmaStatus.APPROVED, AuditAction.RMA_APPROVED,
            source_status=RmaStatus.SUBMITTED,
        )

    async def reject(self, rma_id: uuid.UUID, reason: str | None, actor: ActorContext) -> Rma:
        reason = _require_text(reason, "Rejection reason")
        return await self._transition(
            rma_id, actor, RmaStatus.REJECTED, AuditAction.RMA_REJECTED,
            fields={"rejection_reason": reason},
            new_value={"rejectionReason": reason},
        )

    async def cancel(self, rma_id: uuid.UUID, reason: str | None, actor: ActorContext) -> Rma:
        reason = _require_text(reason, "Cancellation reason")
        return await self._transition(
            rma_id, actor, RmaStatus.CANCELLED, AuditAction.RMA_CANCELLED,
            fields={"cancellation_reason": reason},
            new_value={"cancellationReason": reason},
        )

    async def contest(
        self, rma_id: uuid.UUID, dispute_reason: str | None, actor: ActorContext
    ) -> Rma:
        """REJECTED -> CONTESTED, at most once per RMA.

        The one-contest rule is checked first and holds in every status,
        because contested_at is never cleared.
        """
        async with unit_of_work(self._session_factory) as tx:
            repo = RmaRepository(tx.session)
            rma = await self._load(tx, rma_id, actor)

            if rma.contested_at is not None:
                raise PreconditionFailedException(
                    f"RMA {rma.rma_number} has already been contested; only one contest is allowed"
                )
            if rma.status != RmaStatus.REJECTED:
                raise InvalidTransitionException(
                    rma.status.value,
                    RmaStatus.CONTESTED.value,
                    [s.value for s in allowed_transitions(rma.status)],
                )
            reason = _require_text(dispute_reason, "Dispute reason")

            await repo.update_status(
                tx, rma, RmaStatus.CONTESTED,
                dispute_reason=reason,
                contested_at=datetime.now(UTC),
            )
            await self._log(
                tx, actor, AuditAction.RMA_CONTESTED, rma,
                from_status=RmaStatus.REJECTED.value,
                to_status=RmaStatus.CONTESTED.value,
                new_value={"disputeReason": reason},
            )
            result = await repo.find_by_id(rma_id)

        logger.info("RMA %s contested by %s", result.rma_number, actor.id)
        return result

    async def overturn(
        self, rma_id: uuid.UUID, resolution_note: str | None, actor: ActorContext
    ) -> Rma:
        """CONTESTED -> APPROVED: the rejection is reversed."""
        note = _require_text(resolution_note, "Resolution note")
        return await self._transition(
            rma_id, actor, RmaStatus.APPROVED, AuditAction.RMA_APPROVED,
            source_status=RmaStatus.CONTESTED,
            fields={"contest_resolution_note": note},
            new_value={"resolutionNote": note},
            metadata={"overturned": True},
        )

    async def uphold(
        self, rma_id: uuid.UUID, resolution_note: str | None, actor: ActorContext
    ) -> Rma:
        """CONTESTED -> CLOSED: the rejection stands."""
        note = _require_text(resolution_note, "Resolution note")
        return await self._transition(
            rma_id, actor, RmaStatus.CLOSED, AuditAction.RMA_CLOSED,
            source_status=RmaStatus.CONTESTED,
            fields={"contest_resolution_note": note},
            new_value={"resolutionNote": note},
            metadata={"upheld": True},
        )

    async def complete_qc(self, rma_id: uuid.UUID, actor: ActorContext) -> Rma:
        return await self._transition(
            rma_id, actor, RmaStatus.QC_COMPLETE, AuditAction.STATUS_CHANGED,
        )

    async def resolve(self, rma_id: uuid.UUID, actor: ActorContext) -> Rma:
        """QC_COMPLETE -> RESOLVED, gated on finance approval of every CREDIT line.

        When the RMA has CREDIT or REPLACEMENT lines an ``rma.resolved`` outbox
        event is written in the same transaction; fulfillment runs after commit.
        """
        async with unit_of_work(self._session_factory) as tx:
            repo = RmaRepository(tx.session)
            rma = await self._load(tx, rma_id, actor)
            from_status = rma.status

            assert_valid_transition(from_status, RmaStatus.RESOLVED)
            unapproved = [
                line for line in rma.lines
                if line.disposition == DispositionType.CREDIT and line.finance_approved_at is None
            ]
            if unapproved:
                raise PreconditionFailedException(
                    f"{len(unapproved)} CREDIT line(s) still need finance approval before resolving",
                    details=[{
                        "unapprovedCreditLines": len(unapproved),
                        "lineIds": [str(line.id) for line in unapproved],
                    }],
                )

            await repo.update_status(tx, rma, RmaStatus.RESOLVED)
            await self._log(
                tx, actor, AuditAction.RMA_RESOLVED, rma,
                from_status=from_status.value,
                to_status=RmaStatus.RESOLVED.value,
            )

            fulfillable = {DispositionType.CREDIT, DispositionType.REPLACEMENT}
            if any(line.disposition in fulfillable for line in rma.lines):
                await self._outbox.publish_event(
                    tx,
                    event_type=EVENT_RMA_RESOLVED,
                    aggregate_type="rma",
                    aggregate_id=str(rma.id),
                    payload={
                        "rma_id": str(rma.id),
                        "rma_number": rma.rma_number,
                        "resolved_by_id": str(actor.id),
                        "resolved_by_role": actor.role.value,
                    },
                )
            result = await repo.find_by_id(rma_id)

        logger.info("RMA %s resolved by %s", result.rma_number, actor.id)
        return result

    async def close(self, rma_id: uuid.UUID, actor: ActorContext) -> Rma:
        """RESOLVED -> CLOSED. State check only; contested RMAs close through uphold."""
        return await self._transition(
            rma_id, actor, RmaStatus.CLOSED, AuditAction.RMA_CLOSED,
            source_status=RmaStatus.RESOLVED,
        )

    # ------------------------------------------------------------------
    # Line editing (DRAFT / INFO_REQUIRED only)
    # ------------------------------------------------------------------

    async def add_line(
        self, rma_id: uuid.UUID, data: dict[str, Any], actor: ActorContext
    ) -> Rma:
        _require_positive_qty(data.get("ordered_qty"))
        _require_text(data.get("part_number"), "part_number")
        _require_text(data.get("reason_code"), "reason_code")

        async with unit_of_work(self._session_factory) as tx:
            repo = RmaRepository(tx.session)
            rma = await self._load(tx, rma_id, actor)
            _require_line_editable(rma)

            line = await repo.add_line(tx, rma.id, data)
            await self._log(
                tx, actor, AuditAction.LINE_ADDED, rma,
                rma_line_id=line.id,
                new_value=_line_snapshot(line),
            )
            result = await repo.find_by_id(rma_id)

        logger.info("Added line %s to RMA %s", line.id, result.rma_number)
        return result

    async def update_line(
        self,
        rma_id: uuid.UUID,
        line_id: uuid.UUID,
        changes: dict[str, Any],
        actor: ActorContext,
    ) -> Rma:
        """Patch a line. Disposition is locked once QC has inspected the line."""
        unknown = set(changes) - _EDITABLE_LINE_FIELDS
        if unknown:
            raise PreconditionFailedException(f"Fields cannot be edited: {sorted(unknown)}")
        if not changes:
            raise PreconditionFailedException("No line changes supplied")
        if "ordered_qty" in changes:
            _require_positive_qty(changes["ordered_qty"])
        changes = dict(changes)
        for field in ("part_number", "reason_code"):
            if field in changes:
                changes[field] = _require_text(changes[field], field)

        async with unit_of_work(self._session_factory) as tx:
            repo = RmaRepository(tx.session)
            rma = await self._load(tx, rma_id, actor)
            _require_line_editable(rma)
            line = _find_line(rma, line_id)

            # Any disposition in the patch is refused after QC, even an unchanged one.
            if "disposition" in changes and line.qc_inspected_at is not None:
                raise PreconditionFailedException(
                    f"Disposition of line {line.id} is locked after QC inspection"
                )

            before = _line_snapshot(line)
            await repo.update_line(tx, line, changes)
            await self._log(
                tx, actor,
                AuditAction.DISPOSITION_SET if "disposition" in changes else AuditAction.LINE_UPDATED,
                rma,
                rma_line_id=line.id,
                old_value=before,
                new_value=_changes_snapshot(changes),
            )
            result = await repo.find_by_id(rma_id)

        logger.info("Updated line %s on RMA %s", line_id, result.rma_number)
        return result

    async def remove_line(
        self, rma_id: uuid.UUID, line_id: uuid.UUID, actor: ActorContext
    ) -> Rma:
        async with unit_of_work(self._session_factory) as tx:
            repo = RmaRepository(tx.session)
            rma = await self._load(tx, rma_id, actor)
            _require_line_editable(rma)
            line = _find_line(rma, line_id)

            before = _line_snapshot(line)
            await repo.remove_line(tx, line)
            await self._log(
                tx, actor, AuditAction.LINE_UPDATED, rma,
                rma_line_id=line_id,
                old_value={**before, "removed": True},
                metadata={"removed": True},
            )
            result = await repo.find_by_id(rma_id)

        logger.info("Removed line %s from RMA %s", line_id, result.rma_number)
        return result

    async def split_line(
        self,
        rma_id: uuid.UUID,
        line_id: uuid.UUID,
        splits: list[dict[str, Any]],
        actor: ActorContext,
    ) -> Rma:
        """Replace one line with several whose ordered quantities sum to the original.

        Each split inherits the original's part, reason, disposition and unit
        cost unless it overrides them, and starts with nothing received.
        """
        if len(splits) < 2:
            raise PreconditionFailedException("A split needs at least two target lines")
        for split in splits:
            _require_positive_qty(split.get("ordered_qty"))

        async with unit_of_work(self._session_factory) as tx:
            repo = RmaRepository(tx.session)
            rma = await self._load(tx, rma_id, actor)
            _require_line_editable(rma)
            original = _find_line(rma, line_id)

            total = sum(split["ordered_qty"] for split in splits)
            if total != original.ordered_qty:
                raise PreconditionFailedException(
                    f"Split quantities sum to {total} but the line has ordered_qty "
                    f"{original.ordered_qty}",
                    details=[{"expected": original.ordered_qty, "actual": total}],
                )

            before = _line_snapshot(original)
            inherited = {
                "part_number": original.part_number,
                "reason_code": original.reason_code,
                "disposition": original.disposition,
                "unit_cost": original.unit_cost,
            }
            await repo.remove_line(tx, original)
            new_lines = [
                await repo.add_line(
                    tx,
                    rma.id,
                    {**inherited, **{k: v for k, v in split.items() if v is not None}},
                )
                for split in splits
            ]
            await self._log(
                tx, actor, AuditAction.LINE_SPLIT, rma,
                rma_line_id=line_id,
                old_value=before,
                new_value={"lines": [_line_snapshot(line) for line in new_lines]},
            )
            result = await repo.find_by_id(rma_id)

        logger.info(
            "Split line %s on RMA %s into %d lines", line_id, result.rma_number, len(splits)
        )
        return result

    # ------------------------------------------------------------------
    # Warehouse and QC
    # ------------------------------------------------------------------

    async def record_receipt(
        self,
        rma_id: uuid.UUID,
        line_id: uuid.UUID,
        received_qty: int,
        actor: ActorContext,
    ) -> Rma:
        """Set a line's received quantity; the first receipt also moves APPROVED -> RECEIVED.

        Over-receipt is allowed. The header row lock taken by ``_load`` makes
        concurrent first receipts serialise, so only one of them sees every
        line at zero and writes the status transition.
        """
        async with unit_of_work(self._session_factory) as tx:
            repo = RmaRepository(tx.session)
            rma = await self._load(tx, rma_id, actor)
            if rma.status not in RECEIPT_STATUSES:
                raise PreconditionFailedException(
                    f"Receipts are only accepted while APPROVED or RECEIVED "
                    f"(current status: {rma.status.value})"
                )
            line = _find_line(rma, line_id)

            if received_qty < 0:
                raise PreconditionFailedException("received_qty cannot be negative")
            if received_qty < line.inspected_qty:
                raise PreconditionFailedException(
                    f"received_qty {received_qty} is below the already inspected "
                    f"quantity {line.inspected_qty}"
                )

            from_status = rma.status
            # A zero receipt on APPROVED only touches the line; nothing has arrived yet.
            first_receipt = (
                from_status == RmaStatus.APPROVED
                and received_qty > 0
                and all(existing.received_qty == 0 for existing in rma.lines)
            )
            if first_receipt:
                assert_valid_transition(from_status, RmaStatus.RECEIVED)

            before = _line_snapshot(line)
            await repo.update_line_receipt(tx, line, received_qty)
            if first_receipt:
                await repo.update_status(tx, rma, RmaStatus.RECEIVED)

            await self._log(
                tx, actor,
                AuditAction.RMA_RECEIVED if first_receipt else AuditAction.LINE_UPDATED,
                rma,
                rma_line_id=line.id,
                from_status=from_status.value if first_receipt else None,
                to_status=RmaStatus.RECEIVED.value if first_receipt else None,
                old_value={"receivedQty": before["receivedQty"]},
                new_value={"receivedQty": received_qty},
            )
            result = await repo.find_by_id(rma_id)

        logger.info(
            "Recorded receipt of %d on line %s of RMA %s%s",
            received_qty, line_id, result.rma_number, " (first receipt)" if first_receipt else "",
        )
        return result

    async def record_qc_inspection(
        self,
        rma_id: uuid.UUID,
        line_id: uuid.UUID,
        inspected_qty: int,
        actor: ActorContext,
        qc_pass: bool | None = None,
        qc_findings: str | None = None,
        qc_disposition_recommendation: DispositionType | None = None,
    ) -> Rma:
        """Record QC on a line. Setting qc_inspected_at locks the line's disposition."""
        async with unit_of_work(self._session_factory) as tx:
            repo = RmaRepository(tx.session)
            rma = await self._load(tx, rma_id, actor)
            if rma.status != RmaStatus.RECEIVED:
                raise PreconditionFailedException(
                    f"QC inspection requires status RECEIVED (current status: {rma.status.value})"
                )
            line = _find_line(rma, line_id)

            if inspected_qty < 0:
                raise PreconditionFailedException("inspected_qty cannot be negative")
            if inspected_qty > line.received_qty:
                raise PreconditionFailedException(
                    f"inspected_qty {inspected_qty} exceeds received quantity {line.received_qty}"
                )

            before = _line_snapshot(line)
            await repo.update_line_qc(
                tx,
                line,
                inspected_qty=inspected_qty,
                qc_inspected_at=datetime.now(UTC),
                qc_pass=qc_pass,
                qc_findings=qc_findings,
                qc_disposition_recommendation=qc_disposition_recommendation,
            )
            await self._log(
                tx, actor, AuditAction.LINE_UPDATED, rma,
                rma_line_id=line.id,
                old_value={"inspectedQty": before["inspectedQty"]},
                new_value=_changes_snapshot({
                    "inspectedQty": inspected_qty,
                    "qcPass": qc_pass,
                    "qcFindings": qc_findings,
                    "qcDispositionRecommendation": qc_disposition_recommendation,
                }),
            )
            result = await repo.find_by_id(rma_id)

        logger.info(
            "Recorded QC inspection of %d on line %s of RMA %s",
            inspected_qty, line_id, result.rma_number,
        )
        return result

    # ------------------------------------------------------------------
    # Finance
    # ------------------------------------------------------------------

    async def approve_line_credit(
        self, rma_id: uuid.UUID, line_id: uuid.UUID, actor: ActorContext
    ) -> Rma:
        async with unit_of_work(self._session_factory) as tx:
            repo = RmaRepository(tx.session)
            rma = await self._load(tx, rma_id, actor)
            line = _find_line(rma, line_id)

            if line.disposition != DispositionType.CREDIT:
                raise PreconditionFailedException(
                    f"Only CREDIT lines need finance approval (line {line.id} is "
                    f"{line.disposition.value if line.disposition else 'unset'})"
                )
            if line.finance_approved_at is not None:
                raise PreconditionFailedException(f"Line {line.id} is already finance approved")

            await repo.approve_line_credit(
                tx, line, approved_by_id=actor.id, approved_at=datetime.now(UTC)
            )
            await self._log(
                tx, actor, AuditAction.FINANCE_APPROVED, rma,
                rma_line_id=line.id,
                new_value={
                    "financeApprovedAt": _json_value(line.finance_approved_at),
                    "financeApprovedById": str(actor.id),
                },
            )
            result = await repo.find_by_id(rma_id)

        logger.info("Finance approved credit line %s on RMA %s", line_id, result.rma_number)
        return result
