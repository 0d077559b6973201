"""Fulfillment trigger — turns a resolved RMA into credit memo / replacement order calls."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rms.database.transaction import unit_of_work
from rms.exceptions import NotFoundException, PreconditionFailedException
from rms.models.enums import DispositionType, RmaStatus
from rms.models.rma import Rma
from rms.models.rma_line import RmaLine
from rms.modules.audit.constants import AuditAction
from rms.modules.audit.service import AuditService
from rms.modules.fulfillment.factory import get_fulfillment_adapter
from rms.modules.fulfillment.schemas import (
    CreditMemoLine,
    CreditMemoPayload,
    FulfillmentResult,
    ReplacementOrderLine,
    ReplacementOrderPayload,
)
from rms.modules.rma.repository import RmaRepository

logger = logging.getLogger(__name__)

_FULFILLABLE_STATUSES = (RmaStatus.RESOLVED, RmaStatus.CLOSED)


def _approved_qty(line: RmaLine) -> int:
    # QC-inspected quantity is what the business accepted back
    return line.inspected_qty


def build_credit_memo_payload(rma: Rma, requested_by: uuid.UUID) -> CreditMemoPayload | None:
    """Credit memo for finance-approved CREDIT lines, or None if there are none."""
    lines = [
        CreditMemoLine(
            line_number=index,
            part_number=line.part_number,
            quantity_approved=_approved_qty(line),
            unit_cost=line.unit_cost,
            credit_reason=line.reason_code,
        )
        for index, line in enumerate(rma.lines, start=1)
        if line.disposition == DispositionType.CREDIT and line.finance_approved_at is not None
    ]
    if not lines:
        return None
    return CreditMemoPayload(
        rma_id=rma.id,
        rma_number=rma.rma_number,
        customer_account_number=rma.customer_id,
        lines=lines,
        requested_by=requested_by,
    )


def build_replacement_order_payload(
    rma: Rma, requested_by: uuid.UUID
) -> ReplacementOrderPayload | None:
    lines = [
        ReplacementOrderLine(
            line_number=index,
            part_number=line.part_number,
            quantity_approved=_approved_qty(line),
            unit_cost=line.unit_cost,
        )
        for index, line in enumerate(rma.lines, start=1)
        if line.disposition == DispositionType.REPLACEMENT
    ]
    if not lines:
        return None
    return ReplacementOrderPayload(
        rma_id=rma.id,
        rma_number=rma.rma_number,
        customer_account_number=rma.customer_id,
        lines=lines,
        requested_by=requested_by,
    )


class FulfillmentService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audit: AuditService | None = None,
        adapter_name: str | None = None,
    ):
        self._session_factory = session_factory
        self._audit = audit or AuditService()
        self._adapter_name = adapter_name

    async def trigger_for_rma(
        self,
        rma_id: uuid.UUID,
        *,
        requested_by: uuid.UUID,
        requested_by_role: str,
    ) -> dict[str, FulfillmentResult | None]:
        """Send the resolved RMA's CREDIT and REPLACEMENT lines to fulfillment.

        Integration log rows and the FULFILLMENT_* audit events commit in one
        transaction of their own, separate from the resolve.
        """
        async with unit_of_work(self._session_factory) as tx:
            rma = await RmaRepository(tx.session).find_by_id(rma_id)
            if rma is None:
                raise NotFoundException(f"RMA {rma_id} not found")
            if rma.status not in _FULFILLABLE_STATUSES:
                raise PreconditionFailedException(
                    f"RMA {rma.rma_number} is {rma.status.value}; only resolved RMAs are fulfilled"
                )

            adapter = get_fulfillment_adapter(tx.session, self._adapter_name)
            results: dict[str, FulfillmentResult | None] = {
                "credit_memo": None,
                "replacement_order": None,
            }

            credit_payload = build_credit_memo_payload(rma, requested_by)
            if credit_payload is not None:
                result = await adapter.create_credit_memo(credit_payload)
                await self._record(
                    tx, rma, AuditAction.FULFILLMENT_CREDIT_TRIGGERED,
                    result, len(credit_payload.lines), requested_by, requested_by_role,
                )
                results["credit_memo"] = result

            replacement_payload = build_replacement_order_payload(rma, requested_by)
            if replacement_payload is not None:
                result = await adapter.create_replacement_order(replacement_payload)
                await self._record(
                    tx, rma, AuditAction.FULFILLMENT_REPLACEMENT_TRIGGERED,
                    result, len(replacement_payload.lines), requested_by, requested_by_role,
                )
                results["replacement_order"] = result

        logger.info(
            "Fulfillment triggered for RMA %s (credit=%s, replacement=%s)",
            rma.rma_number,
            results["credit_memo"] is not None,
            results["replacement_order"] is not None,
        )
        return results

    async def _record(
        self,
        tx,
        rma: Rma,
        action: str,
        result: FulfillmentResult,
        line_count: int,
        actor_id: uuid.UUID,
        actor_role: str,
    ) -> None:
        await self._audit.log_event(
            tx,
            actor_id=actor_id,
            actor_role=actor_role,
            action=action,
            rma_id=rma.id,
            new_value={
                "referenceId": result.reference_id,
                "status": result.status.value,
                "success": result.success,
                "lineCount": line_count,
            },
            metadata={"errorCode": result.error_code} if result.error_code else None,
        )
