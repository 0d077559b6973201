"""Tests for RmaLifecycleService against an in-process SQLite database."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select, update

from rms.exceptions import (
    ForbiddenException,
    InvalidTransitionException,
    NotFoundException,
    PreconditionFailedException,
)
from rms.models.audit_event import AuditEvent
from rms.models.enums import DispositionType, RmaStatus, RmsRole
from rms.models.event_outbox import EventOutbox
from rms.models.rma_line import RmaLine
from rms.modules.audit.constants import AuditAction
from rms.modules.audit.service import AuditService
from rms.modules.rma.constants import EVENT_RMA_RESOLVED
from rms.modules.rma.repository import RmaRepository
from rms.modules.rma.service import RmaLifecycleService
from tests.factories import BRANCH_A, BRANCH_B, make_actor, make_line

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _audit_events(session_factory, rma_id, action=None) -> list[AuditEvent]:
    async with session_factory() as session:
        query = select(AuditEvent).where(AuditEvent.rma_id == rma_id)
        if action is not None:
            query = query.where(AuditEvent.action == action)
        return list((await session.execute(query.order_by(AuditEvent.occurred_at))).scalars().all())


async def _reload(session_factory, rma_id):
    async with session_factory() as session:
        return await RmaRepository(session).find_by_id(rma_id)


async def _set_line_fields(session_factory, line_id, **values) -> None:
    async with session_factory() as session:
        await session.execute(update(RmaLine).where(RmaLine.id == line_id).values(**values))
        await session.commit()


async def _approved(lifecycle, agent, manager, lines=None):
    rma = await lifecycle.create_draft(BRANCH_A, lines or [make_line()], agent)
    await lifecycle.submit(rma.id, agent)
    return await lifecycle.approve(rma.id, manager)


async def _qc_complete(lifecycle, agent, manager, warehouse, qc, lines):
    rma = await _approved(lifecycle, agent, manager, lines)
    for line in rma.lines:
        rma = await lifecycle.record_receipt(rma.id, line.id, line.ordered_qty, warehouse)
    for line in rma.lines:
        rma = await lifecycle.record_qc_inspection(rma.id, line.id, line.received_qty, qc)
    return await lifecycle.complete_qc(rma.id, qc)


# ---------------------------------------------------------------------------
# Create / submit
# ---------------------------------------------------------------------------


class TestCreateDraft:
    @pytest.mark.asyncio
    async def test_creates_draft_with_zeroed_lines(self, lifecycle, agent, session_factory):
        rma = await lifecycle.create_draft(BRANCH_A, [make_line()], agent, customer_id="CUST-9")

        assert rma.status == RmaStatus.DRAFT
        assert rma.branch_id == BRANCH_A
        assert rma.customer_id == "CUST-9"
        assert rma.submitted_by_id == agent.id
        assert len(rma.lines) == 1
        assert rma.lines[0].received_qty == 0
        assert rma.lines[0].inspected_qty == 0

        events = await _audit_events(session_factory, rma.id)
        assert [e.action for e in events] == [AuditAction.RMA_CREATED]
        assert events[0].to_status == "DRAFT"
        assert events[0].actor_role == "RETURNS_AGENT"
        assert events[0].new_value == {"rmaNumber": rma.rma_number, "lineCount": 1}

    @pytest.mark.asyncio
    async def test_rma_numbers_are_sequential_within_month(self, lifecycle, agent):
        first = await lifecycle.create_draft(BRANCH_A, [make_line()], agent)
        second = await lifecycle.create_draft(BRANCH_A, [make_line()], agent)

        prefix = f"RMA-{datetime.now(UTC):%Y%m}-"
        assert first.rma_number == f"{prefix}000001"
        assert second.rma_number == f"{prefix}000002"

    @pytest.mark.asyncio
    async def test_requires_at_least_one_line(self, lifecycle, agent):
        with pytest.raises(PreconditionFailedException):
            await lifecycle.create_draft(BRANCH_A, [], agent)

    @pytest.mark.asyncio
    async def test_rejects_non_positive_quantity(self, lifecycle, agent):
        with pytest.raises(PreconditionFailedException):
            await lifecycle.create_draft(BRANCH_A, [make_line(ordered_qty=0)], agent)

    @pytest.mark.asyncio
    async def test_rejects_branch_outside_scope(self, lifecycle, agent):
        with pytest.raises(ForbiddenException):
            await lifecycle.create_draft(BRANCH_B, [make_line()], agent)

    @pytest.mark.asyncio
    async def test_admin_can_create_in_any_branch(self, lifecycle, admin):
        rma = await lifecycle.create_draft(BRANCH_B, [make_line()], admin)
        assert rma.branch_id == BRANCH_B

    @pytest.mark.asyncio
    async def test_retries_on_number_collision(self, lifecycle, agent, monkeypatch):
        first = await lifecycle.create_draft(BRANCH_A, [make_line()], agent)

        numbers = iter([first.rma_number, "RMA-209901-000001"])

        async def fake_generate(self):
            return next(numbers)

        monkeypatch.setattr(RmaRepository, "generate_rma_number", fake_generate)
        second = await lifecycle.create_draft(BRANCH_A, [make_line()], agent)

        assert second.rma_number == "RMA-209901-000001"


class TestSubmit:
    @pytest.mark.asyncio
    async def test_submit_from_draft(self, lifecycle, agent, session_factory):
        rma = await lifecycle.create_draft(BRANCH_A, [make_line()], agent)
        rma = await lifecycle.submit(rma.id, agent)

        assert rma.status == RmaStatus.SUBMITTED
        events = await _audit_events(session_factory, rma.id, AuditAction.RMA_SUBMITTED)
        assert len(events) == 1
        assert events[0].from_status == "DRAFT"
        assert events[0].event_metadata is None

    @pytest.mark.asyncio
    async def test_resubmit_from_info_required_is_tagged(self, lifecycle, agent, session_factory):
        rma = await lifecycle.create_draft(BRANCH_A, [make_line()], agent)
        await lifecycle.submit(rma.id, agent)
        rma = await lifecycle.place_info_required(rma.id, agent, note="Need photos")
        assert rma.status == RmaStatus.INFO_REQUIRED

        rma = await lifecycle.submit(rma.id, agent)

        assert rma.status == RmaStatus.SUBMITTED
        events = await _audit_events(session_factory, rma.id, AuditAction.RMA_SUBMITTED)
        assert events[-1].from_status == "INFO_REQUIRED"
        assert events[-1].event_metadata == {"cycle": "resubmit"}
        info = await _audit_events(session_factory, rma.id, AuditAction.RMA_INFO_REQUIRED)
        assert info[0].new_value == {"note": "Need photos"}

    @pytest.mark.asyncio
    async def test_submit_without_lines_fails(self, lifecycle, agent, session_factory):
        rma = await lifecycle.create_draft(BRANCH_A, [make_line()], agent)
        await lifecycle.remove_line(rma.id, rma.lines[0].id, agent)

        with pytest.raises(PreconditionFailedException):
            await lifecycle.submit(rma.id, agent)
        assert (await _reload(session_factory, rma.id)).status == RmaStatus.DRAFT

    @pytest.mark.asyncio
    async def test_submit_twice_is_invalid_transition(self, lifecycle, agent):
        rma = await lifecycle.create_draft(BRANCH_A, [make_line()], agent)
        await lifecycle.submit(rma.id, agent)

        with pytest.raises(InvalidTransitionException) as exc_info:
            await lifecycle.submit(rma.id, agent)
        assert exc_info.value.from_status == "SUBMITTED"

    @pytest.mark.asyncio
    async def test_unknown_rma_is_not_found(self, lifecycle, agent):
        with pytest.raises(NotFoundException):
            await lifecycle.submit(uuid.uuid4(), agent)


# ---------------------------------------------------------------------------
# Approve / reject / cancel / contest
# ---------------------------------------------------------------------------


class TestDecisions:
    @pytest.mark.asyncio
    async def test_approve(self, lifecycle, agent, manager, session_factory):
        rma = await _approved(lifecycle, agent, manager)

        assert rma.status == RmaStatus.APPROVED
        events = await _audit_events(session_factory, rma.id, AuditAction.RMA_APPROVED)
        assert events[0].actor_role == "BRANCH_MANAGER"

    @pytest.mark.asyncio
    async def test_approve_from_draft_is_invalid(self, lifecycle, agent, manager):
        rma = await lifecycle.create_draft(BRANCH_A, [make_line()], agent)

        with pytest.raises(InvalidTransitionException) as exc_info:
            await lifecycle.approve(rma.id, manager)
        assert exc_info.value.allowed_transitions == ["SUBMITTED", "CANCELLED"]

    @pytest.mark.asyncio
    async def test_reject_requires_reason(self, lifecycle, agent, manager, session_factory):
        rma = await lifecycle.create_draft(BRANCH_A, [make_line()], agent)
        await lifecycle.submit(rma.id, agent)

        with pytest.raises(PreconditionFailedException):
            await lifecycle.reject(rma.id, "   ", manager)

        reloaded = await _reload(session_factory, rma.id)
        assert reloaded.status == RmaStatus.SUBMITTED
        assert await _audit_events(session_factory, rma.id, AuditAction.RMA_REJECTED) == []

    @pytest.mark.asyncio
    async def test_reject_stores_reason(self, lifecycle, agent, manager, session_factory):
        rma = await lifecycle.create_draft(BRANCH_A, [make_line()], agent)
        await lifecycle.submit(rma.id, agent)

        rma = await lifecycle.reject(rma.id, " bad part ", manager)

        assert rma.status == RmaStatus.REJECTED
        assert rma.rejection_reason == "bad part"
        events = await _audit_events(session_factory, rma.id, AuditAction.RMA_REJECTED)
        assert events[0].new_value == {"rejectionReason": "bad part"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("steps", [[], ["submit"], ["submit", "approve"]])
    async def test_cancel_from_open_statuses(self, lifecycle, agent, manager, steps):
        rma = await lifecycle.create_draft(BRANCH_A, [make_line()], agent)
        if "submit" in steps:
            await lifecycle.submit(rma.id, agent)
        if "approve" in steps:
            await lifecycle.approve(rma.id, manager)

        rma = await lifecycle.cancel(rma.id, "customer withdrew", agent)

        assert rma.status == RmaStatus.CANCELLED
        assert rma.cancellation_reason == "customer withdrew"

    @pytest.mark.asyncio
    async def test_cancel_requires_reason(self, lifecycle, agent):
        rma = await lifecycle.create_draft(BRANCH_A, [make_line()], agent)
        with pytest.raises(PreconditionFailedException):
            await lifecycle.cancel(rma.id, "", agent)

    @pytest.mark.asyncio
    async def test_cancelled_is_terminal(self, lifecycle, agent):
        rma = await lifecycle.create_draft(BRANCH_A, [make_line()], agent)
        await lifecycle.cancel(rma.id, "dup", agent)

        with pytest.raises(InvalidTransitionException) as exc_info:
            await lifecycle.submit(rma.id, agent)
        assert exc_info.value.allowed_transitions == []


class TestContest:
    async def _rejected(self, lifecycle, agent, manager):
        rma = await lifecycle.create_draft(BRANCH_A, [make_line()], agent)
        await lifecycle.submit(rma.id, agent)
        return await lifecycle.reject(rma.id, "bad part", manager)

    @pytest.mark.asyncio
    async def test_reject_contest_overturn_cycle(
        self, lifecycle, agent, manager, customer, session_factory
    ):
        rma = await self._rejected(lifecycle, agent, manager)

        rma = await lifecycle.contest(rma.id, "disagree", customer)
        assert rma.status == RmaStatus.CONTESTED
        assert rma.dispute_reason == "disagree"
        assert rma.contested_at is not None

        rma = await lifecycle.overturn(rma.id, "approved", manager)
        assert rma.status == RmaStatus.APPROVED
        assert rma.contest_resolution_note == "approved"
        assert rma.contested_at is not None

        with pytest.raises(PreconditionFailedException):
            await lifecycle.contest(rma.id, "again", customer)

        overturned = await _audit_events(session_factory, rma.id, AuditAction.RMA_APPROVED)
        assert overturned[-1].event_metadata == {"overturned": True}
        assert overturned[-1].from_status == "CONTESTED"

    @pytest.mark.asyncio
    async def test_uphold_closes(self, lifecycle, agent, manager, customer, session_factory):
        rma = await self._rejected(lifecycle, agent, manager)
        await lifecycle.contest(rma.id, "disagree", customer)

        rma = await lifecycle.uphold(rma.id, "rejection stands", manager)

        assert rma.status == RmaStatus.CLOSED
        events = await _audit_events(session_factory, rma.id, AuditAction.RMA_CLOSED)
        assert events[0].event_metadata == {"upheld": True}

        with pytest.raises(PreconditionFailedException):
            await lifecycle.contest(rma.id, "again", customer)

    @pytest.mark.asyncio
    async def test_contest_requires_rejected_status(self, lifecycle, agent, customer):
        rma = await lifecycle.create_draft(BRANCH_A, [make_line()], agent)

        with pytest.raises(InvalidTransitionException) as exc_info:
            await lifecycle.contest(rma.id, "disagree", customer)
        assert exc_info.value.to_status == "CONTESTED"

    @pytest.mark.asyncio
    async def test_contest_requires_reason(self, lifecycle, agent, manager, customer, session_factory):
        rma = await self._rejected(lifecycle, agent, manager)

        with pytest.raises(PreconditionFailedException):
            await lifecycle.contest(rma.id, "", customer)
        reloaded = await _reload(session_factory, rma.id)
        assert reloaded.status == RmaStatus.REJECTED
        assert reloaded.contested_at is None

    @pytest.mark.asyncio
    async def test_overturn_requires_note(self, lifecycle, agent, manager, customer):
        rma = await self._rejected(lifecycle, agent, manager)
        await lifecycle.contest(rma.id, "disagree", customer)

        with pytest.raises(PreconditionFailedException):
            await lifecycle.overturn(rma.id, " ", manager)

    @pytest.mark.asyncio
    async def test_overturn_only_from_contested(self, lifecycle, agent, manager):
        rma = await lifecycle.create_draft(BRANCH_A, [make_line()], agent)
        await lifecycle.submit(rma.id, agent)

        with pytest.raises(PreconditionFailedException):
            await lifecycle.overturn(rma.id, "note", manager)

    @pytest.mark.asyncio
    async def test_approve_does_not_resolve_a_contest(self, lifecycle, agent, manager, customer):
        rma = await self._rejected(lifecycle, agent, manager)
        await lifecycle.contest(rma.id, "disagree", customer)

        with pytest.raises(PreconditionFailedException):
            await lifecycle.approve(rma.id, manager)


# ---------------------------------------------------------------------------
# Line editing
# ---------------------------------------------------------------------------


class TestLineEditing:
    @pytest.mark.asyncio
    async def test_add_line(self, lifecycle, agent, session_factory):
        rma = await lifecycle.create_draft(BRANCH_A, [make_line()], agent)

        rma = await lifecycle.add_line(rma.id, make_line("P2", 3), agent)

        assert sorted(line.part_number for line in rma.lines) == ["P1", "P2"]
        events = await _audit_events(session_factory, rma.id, AuditAction.LINE_ADDED)
        assert events[0].new_value["partNumber"] == "P2"

    @pytest.mark.asyncio
    async def test_lines_locked_after_submit(self, lifecycle, agent):
        rma = await lifecycle.create_draft(BRANCH_A, [make_line()], agent)
        await lifecycle.submit(rma.id, agent)

        with pytest.raises(PreconditionFailedException):
            await lifecycle.add_line(rma.id, make_line("P2"), agent)
        with pytest.raises(PreconditionFailedException):
            await lifecycle.update_line(rma.id, rma.lines[0].id, {"ordered_qty": 9}, agent)
        with pytest.raises(PreconditionFailedException):
            await lifecycle.remove_line(rma.id, rma.lines[0].id, agent)

    @pytest.mark.asyncio
    async def test_lines_editable_in_info_required(self, lifecycle, agent):
        rma = await lifecycle.create_draft(BRANCH_A, [make_line()], agent)
        await lifecycle.submit(rma.id, agent)
        await lifecycle.place_info_required(rma.id, agent)

        rma = await lifecycle.update_line(rma.id, rma.lines[0].id, {"ordered_qty": 7}, agent)
        assert rma.lines[0].ordered_qty == 7

    @pytest.mark.asyncio
    async def test_disposition_change_audited_as_disposition_set(
        self, lifecycle, agent, session_factory
    ):
        rma = await lifecycle.create_draft(BRANCH_A, [make_line()], agent)

        rma = await lifecycle.update_line(
            rma.id, rma.lines[0].id, {"disposition": DispositionType.SCRAP}, agent
        )

        assert rma.lines[0].disposition == DispositionType.SCRAP
        events = await _audit_events(session_factory, rma.id, AuditAction.DISPOSITION_SET)
        assert events[0].new_value == {"disposition": "SCRAP"}
        assert events[0].old_value["disposition"] is None

    @pytest.mark.asyncio
    async def test_disposition_lock_after_qc(self, lifecycle, agent, session_factory):
        rma = await lifecycle.create_draft(
            BRANCH_A, [make_line(disposition=DispositionType.CREDIT)], agent
        )
        line_id = rma.lines[0].id
        await _set_line_fields(session_factory, line_id, qc_inspected_at=datetime.now(UTC))

        with pytest.raises(PreconditionFailedException):
            await lifecycle.update_line(
                rma.id, line_id, {"disposition": DispositionType.SCRAP}, agent
            )

        # Re-sending the current disposition is refused as well.
        with pytest.raises(PreconditionFailedException):
            await lifecycle.update_line(
                rma.id, line_id, {"disposition": DispositionType.CREDIT}, agent
            )

        rma = await lifecycle.update_line(rma.id, line_id, {"reason_code": "WRONG_PART"}, agent)
        assert rma.lines[0].reason_code == "WRONG_PART"
        assert rma.lines[0].disposition == DispositionType.CREDIT
        assert await _audit_events(session_factory, rma.id, AuditAction.DISPOSITION_SET) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "changes",
        [
            {"part_number": None},
            {"part_number": "   "},
            {"reason_code": None},
            {"reason_code": ""},
        ],
    )
    async def test_required_text_fields_cannot_be_blanked(
        self, lifecycle, agent, session_factory, changes
    ):
        rma = await lifecycle.create_draft(BRANCH_A, [make_line()], agent)
        line_id = rma.lines[0].id

        with pytest.raises(PreconditionFailedException):
            await lifecycle.update_line(rma.id, line_id, changes, agent)

        reloaded = await _reload(session_factory, rma.id)
        assert reloaded.lines[0].part_number == "P1"
        assert reloaded.lines[0].reason_code == "DEFECTIVE"
        assert await _audit_events(session_factory, rma.id, AuditAction.LINE_UPDATED) == []

    @pytest.mark.asyncio
    async def test_text_fields_are_stripped(self, lifecycle, agent):
        rma = await lifecycle.create_draft(BRANCH_A, [make_line()], agent)

        rma = await lifecycle.update_line(
            rma.id, rma.lines[0].id, {"part_number": "  P9 "}, agent
        )

        assert rma.lines[0].part_number == "P9"

    @pytest.mark.asyncio
    async def test_moving_away_from_credit_clears_finance_approval(
        self, lifecycle, agent, finance
    ):
        rma = await lifecycle.create_draft(
            BRANCH_A, [make_line(disposition=DispositionType.CREDIT)], agent
        )
        line_id = rma.lines[0].id
        rma = await lifecycle.approve_line_credit(rma.id, line_id, finance)
        assert rma.lines[0].finance_approved_at is not None

        rma = await lifecycle.update_line(
            rma.id, line_id, {"disposition": DispositionType.REPLACEMENT}, agent
        )

        assert rma.lines[0].finance_approved_at is None
        assert rma.lines[0].finance_approved_by_id is None

    @pytest.mark.asyncio
    async def test_remove_line_audited(self, lifecycle, agent, session_factory):
        rma = await lifecycle.create_draft(BRANCH_A, [make_line(), make_line("P2")], agent)
        removed = rma.lines[0]

        rma = await lifecycle.remove_line(rma.id, removed.id, agent)

        assert len(rma.lines) == 1
        assert removed.id not in {line.id for line in rma.lines}
        events = await _audit_events(session_factory, rma.id, AuditAction.LINE_UPDATED)
        assert events[0].old_value["removed"] is True
        assert events[0].rma_line_id == removed.id

    @pytest.mark.asyncio
    async def test_unknown_line_is_not_found(self, lifecycle, agent):
        rma = await lifecycle.create_draft(BRANCH_A, [make_line()], agent)
        with pytest.raises(NotFoundException):
            await lifecycle.remove_line(rma.id, uuid.uuid4(), agent)


class TestSplitLine:
    @pytest.mark.asyncio
    async def test_split_preserves_quantity(self, lifecycle, agent, session_factory):
        rma = await lifecycle.create_draft(
            BRANCH_A, [make_line(ordered_qty=10, disposition=DispositionType.CREDIT)], agent
        )
        original = rma.lines[0]

        rma = await lifecycle.split_line(
            rma.id,
            original.id,
            [{"ordered_qty": 6}, {"ordered_qty": 4, "disposition": DispositionType.SCRAP}],
            agent,
        )

        assert len(rma.lines) == 2
        assert sum(line.ordered_qty for line in rma.lines) == 10
        assert original.id not in {line.id for line in rma.lines}
        assert {line.disposition for line in rma.lines} == {
            DispositionType.CREDIT,
            DispositionType.SCRAP,
        }
        assert all(line.part_number == "P1" for line in rma.lines)
        assert all(line.received_qty == 0 and line.inspected_qty == 0 for line in rma.lines)

        events = await _audit_events(session_factory, rma.id, AuditAction.LINE_SPLIT)
        assert events[0].old_value["orderedQty"] == 10
        assert sorted(line["orderedQty"] for line in events[0].new_value["lines"]) == [4, 6]

    @pytest.mark.asyncio
    async def test_split_sum_must_match(self, lifecycle, agent, session_factory):
        rma = await lifecycle.create_draft(BRANCH_A, [make_line(ordered_qty=10)], agent)

        with pytest.raises(PreconditionFailedException):
            await lifecycle.split_line(
                rma.id, rma.lines[0].id, [{"ordered_qty": 6}, {"ordered_qty": 5}], agent
            )

        reloaded = await _reload(session_factory, rma.id)
        assert [line.ordered_qty for line in reloaded.lines] == [10]

    @pytest.mark.asyncio
    async def test_split_needs_two_targets(self, lifecycle, agent):
        rma = await lifecycle.create_draft(BRANCH_A, [make_line(ordered_qty=10)], agent)

        with pytest.raises(PreconditionFailedException):
            await lifecycle.split_line(rma.id, rma.lines[0].id, [{"ordered_qty": 10}], agent)


# ---------------------------------------------------------------------------
# Receipt and QC
# ---------------------------------------------------------------------------


class TestReceipt:
    @pytest.mark.asyncio
    async def test_first_receipt_transitions_once(
        self, lifecycle, agent, manager, warehouse, session_factory
    ):
        rma = await _approved(lifecycle, agent, manager, [make_line(), make_line("P2", 3)])
        first, second = rma.lines

        rma = await lifecycle.record_receipt(rma.id, first.id, 5, warehouse)
        assert rma.status == RmaStatus.RECEIVED

        rma = await lifecycle.record_receipt(rma.id, second.id, 3, warehouse)
        rma = await lifecycle.record_receipt(rma.id, first.id, 4, warehouse)
        assert rma.status == RmaStatus.RECEIVED

        events = await _audit_events(session_factory, rma.id)
        transitions = [
            e for e in events if e.from_status == "APPROVED" and e.to_status == "RECEIVED"
        ]
        assert len(transitions) == 1
        assert transitions[0].action == AuditAction.RMA_RECEIVED
        assert transitions[0].rma_line_id == first.id

    @pytest.mark.asyncio
    async def test_zero_receipt_does_not_transition(
        self, lifecycle, agent, manager, warehouse, session_factory
    ):
        rma = await _approved(lifecycle, agent, manager)
        line_id = rma.lines[0].id

        rma = await lifecycle.record_receipt(rma.id, line_id, 0, warehouse)

        assert rma.status == RmaStatus.APPROVED
        assert rma.lines[0].received_qty == 0
        assert await _audit_events(session_factory, rma.id, AuditAction.RMA_RECEIVED) == []
        assert len(await _audit_events(session_factory, rma.id, AuditAction.LINE_UPDATED)) == 1

        rma = await lifecycle.record_receipt(rma.id, line_id, 2, warehouse)

        assert rma.status == RmaStatus.RECEIVED
        assert len(await _audit_events(session_factory, rma.id, AuditAction.RMA_RECEIVED)) == 1

    @pytest.mark.asyncio
    async def test_over_receipt_allowed(self, lifecycle, agent, manager, warehouse):
        rma = await _approved(lifecycle, agent, manager, [make_line(ordered_qty=10)])

        rma = await lifecycle.record_receipt(rma.id, rma.lines[0].id, 15, warehouse)

        assert rma.lines[0].received_qty == 15

    @pytest.mark.asyncio
    async def test_receipt_requires_approved_or_received(self, lifecycle, agent, warehouse):
        rma = await lifecycle.create_draft(BRANCH_A, [make_line()], agent)
        await lifecycle.submit(rma.id, agent)

        with pytest.raises(PreconditionFailedException):
            await lifecycle.record_receipt(rma.id, rma.lines[0].id, 5, warehouse)

    @pytest.mark.asyncio
    async def test_receipt_cannot_drop_below_inspected(
        self, lifecycle, agent, manager, warehouse, qc, session_factory
    ):
        rma = await _approved(lifecycle, agent, manager)
        line_id = rma.lines[0].id
        await lifecycle.record_receipt(rma.id, line_id, 5, warehouse)
        await lifecycle.record_qc_inspection(rma.id, line_id, 4, qc)

        with pytest.raises(PreconditionFailedException):
            await lifecycle.record_receipt(rma.id, line_id, 3, warehouse)
        with pytest.raises(PreconditionFailedException):
            await lifecycle.record_receipt(rma.id, line_id, -1, warehouse)

        reloaded = await _reload(session_factory, rma.id)
        assert reloaded.lines[0].received_qty == 5
        assert reloaded.lines[0].inspected_qty == 4


class TestQcInspection:
    @pytest.mark.asyncio
    async def test_records_results_and_locks_disposition(
        self, lifecycle, agent, manager, warehouse, qc
    ):
        rma = await _approved(lifecycle, agent, manager)
        line_id = rma.lines[0].id
        await lifecycle.record_receipt(rma.id, line_id, 5, warehouse)

        rma = await lifecycle.record_qc_inspection(
            rma.id,
            line_id,
            5,
            qc,
            qc_pass=False,
            qc_findings="cracked housing",
            qc_disposition_recommendation=DispositionType.SCRAP,
        )

        line = rma.lines[0]
        assert line.inspected_qty == 5
        assert line.qc_inspected_at is not None
        assert line.qc_pass is False
        assert line.qc_findings == "cracked housing"
        assert line.qc_disposition_recommendation == DispositionType.SCRAP

    @pytest.mark.asyncio
    async def test_inspected_cannot_exceed_received(
        self, lifecycle, agent, manager, warehouse, qc, session_factory
    ):
        rma = await _approved(lifecycle, agent, manager)
        line_id = rma.lines[0].id
        await lifecycle.record_receipt(rma.id, line_id, 3, warehouse)

        with pytest.raises(PreconditionFailedException):
            await lifecycle.record_qc_inspection(rma.id, line_id, 4, qc)

        reloaded = await _reload(session_factory, rma.id)
        assert reloaded.lines[0].inspected_qty == 0
        assert reloaded.lines[0].qc_inspected_at is None

    @pytest.mark.asyncio
    async def test_requires_received_status(self, lifecycle, agent, manager, qc):
        rma = await _approved(lifecycle, agent, manager)

        with pytest.raises(PreconditionFailedException):
            await lifecycle.record_qc_inspection(rma.id, rma.lines[0].id, 0, qc)


# ---------------------------------------------------------------------------
# Finance gate, resolve, close
# ---------------------------------------------------------------------------


class TestFinanceAndResolve:
    @pytest.mark.asyncio
    async def test_golden_path(self, lifecycle, agent, manager, warehouse, qc, session_factory):
        rma = await lifecycle.create_draft(BRANCH_A, [make_line("P1", 5, "DEFECTIVE")], agent)
        assert rma.status == RmaStatus.DRAFT
        assert rma.lines[0].received_qty == 0
        line_id = rma.lines[0].id

        assert (await lifecycle.submit(rma.id, agent)).status == RmaStatus.SUBMITTED
        assert (await lifecycle.approve(rma.id, manager)).status == RmaStatus.APPROVED

        rma = await lifecycle.record_receipt(rma.id, line_id, 5, warehouse)
        assert rma.status == RmaStatus.RECEIVED
        assert rma.lines[0].received_qty == 5

        rma = await lifecycle.record_qc_inspection(rma.id, line_id, 5, qc)
        assert rma.lines[0].inspected_qty == 5
        assert rma.lines[0].qc_inspected_at is not None

        assert (await lifecycle.complete_qc(rma.id, qc)).status == RmaStatus.QC_COMPLETE
        assert (await lifecycle.resolve(rma.id, agent)).status == RmaStatus.RESOLVED
        assert (await lifecycle.close(rma.id, agent)).status == RmaStatus.CLOSED

        actions = [e.action for e in await _audit_events(session_factory, rma.id)]
        assert actions == [
            AuditAction.RMA_CREATED,
            AuditAction.RMA_SUBMITTED,
            AuditAction.RMA_APPROVED,
            AuditAction.RMA_RECEIVED,
            AuditAction.LINE_UPDATED,
            AuditAction.STATUS_CHANGED,
            AuditAction.RMA_RESOLVED,
            AuditAction.RMA_CLOSED,
        ]

    @pytest.mark.asyncio
    async def test_resolve_blocked_until_credit_lines_approved(
        self, lifecycle, agent, manager, warehouse, qc, finance, session_factory
    ):
        rma = await _qc_complete(
            lifecycle, agent, manager, warehouse, qc,
            [
                make_line("P1", 2, disposition=DispositionType.CREDIT),
                make_line("P2", 3, disposition=DispositionType.CREDIT),
                make_line("P3", 1, disposition=DispositionType.SCRAP),
            ],
        )
        credit_lines = [line for line in rma.lines if line.disposition == DispositionType.CREDIT]

        with pytest.raises(PreconditionFailedException) as exc_info:
            await lifecycle.resolve(rma.id, agent)
        assert exc_info.value.details[0]["unapprovedCreditLines"] == 2

        await lifecycle.approve_line_credit(rma.id, credit_lines[0].id, finance)
        with pytest.raises(PreconditionFailedException) as exc_info:
            await lifecycle.resolve(rma.id, agent)
        assert exc_info.value.details[0]["unapprovedCreditLines"] == 1

        await lifecycle.approve_line_credit(rma.id, credit_lines[1].id, finance)
        rma = await lifecycle.resolve(rma.id, finance)
        assert rma.status == RmaStatus.RESOLVED

        approvals = await _audit_events(session_factory, rma.id, AuditAction.FINANCE_APPROVED)
        assert len(approvals) == 2

    @pytest.mark.asyncio
    async def test_approve_credit_rejects_non_credit_line(self, lifecycle, agent, finance):
        rma = await lifecycle.create_draft(
            BRANCH_A, [make_line(disposition=DispositionType.SCRAP)], agent
        )
        with pytest.raises(PreconditionFailedException):
            await lifecycle.approve_line_credit(rma.id, rma.lines[0].id, finance)

    @pytest.mark.asyncio
    async def test_resolve_publishes_outbox_event_for_fulfillable_lines(
        self, lifecycle, agent, manager, warehouse, qc, session_factory
    ):
        rma = await _qc_complete(
            lifecycle, agent, manager, warehouse, qc,
            [make_line(disposition=DispositionType.REPLACEMENT)],
        )

        await lifecycle.resolve(rma.id, agent)

        async with session_factory() as session:
            events = (await session.execute(select(EventOutbox))).scalars().all()
        assert len(events) == 1
        assert events[0].event_type == EVENT_RMA_RESOLVED
        assert events[0].aggregate_id == str(rma.id)
        assert events[0].payload["resolved_by_id"] == str(agent.id)

    @pytest.mark.asyncio
    async def test_resolve_without_fulfillable_lines_publishes_nothing(
        self, lifecycle, agent, manager, warehouse, qc, session_factory
    ):
        rma = await _qc_complete(
            lifecycle, agent, manager, warehouse, qc, [make_line(disposition=DispositionType.RTV)]
        )

        await lifecycle.resolve(rma.id, agent)

        async with session_factory() as session:
            assert (await session.execute(select(EventOutbox))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_close_requires_resolved(self, lifecycle, agent, manager):
        rma = await _approved(lifecycle, agent, manager)

        with pytest.raises(InvalidTransitionException):
            await lifecycle.close(rma.id, agent)


# ---------------------------------------------------------------------------
# Atomicity and branch scope
# ---------------------------------------------------------------------------


class TestAtomicity:
    @pytest.mark.asyncio
    async def test_audit_failure_rolls_back_status(self, session_factory, agent, manager):
        lifecycle = RmaLifecycleService(session_factory)
        rma = await lifecycle.create_draft(BRANCH_A, [make_line()], agent)
        await lifecycle.submit(rma.id, agent)

        failing_audit = AuditService()
        failing_audit.log_event = AsyncMock(side_effect=RuntimeError("audit insert failed"))
        broken = RmaLifecycleService(session_factory, audit=failing_audit)

        with pytest.raises(RuntimeError):
            await broken.approve(rma.id, manager)

        assert (await _reload(session_factory, rma.id)).status == RmaStatus.SUBMITTED
        assert await _audit_events(session_factory, rma.id, AuditAction.RMA_APPROVED) == []

    @pytest.mark.asyncio
    async def test_first_receipt_rolls_back_line_and_status_together(
        self, session_factory, agent, manager, warehouse
    ):
        lifecycle = RmaLifecycleService(session_factory)
        rma = await _approved(lifecycle, agent, manager)

        failing_audit = AuditService()
        failing_audit.log_event = AsyncMock(side_effect=RuntimeError("audit insert failed"))
        broken = RmaLifecycleService(session_factory, audit=failing_audit)

        with pytest.raises(RuntimeError):
            await broken.record_receipt(rma.id, rma.lines[0].id, 5, warehouse)

        reloaded = await _reload(session_factory, rma.id)
        assert reloaded.status == RmaStatus.APPROVED
        assert reloaded.lines[0].received_qty == 0


class TestBranchScope:
    @pytest.mark.asyncio
    async def test_operations_outside_scope_are_not_found(self, lifecycle, agent):
        rma = await lifecycle.create_draft(BRANCH_A, [make_line()], agent)
        outsider = make_actor(RmsRole.RETURNS_AGENT, branch_ids=[BRANCH_B])

        with pytest.raises(NotFoundException):
            await lifecycle.submit(rma.id, outsider)

    @pytest.mark.asyncio
    async def test_admin_acts_across_branches(self, lifecycle, agent, admin):
        rma = await lifecycle.create_draft(BRANCH_A, [make_line()], agent)

        rma = await lifecycle.cancel(rma.id, "admin cleanup", admin)

        assert rma.status == RmaStatus.CANCELLED
