"""Stub fulfillment adapter — records every call, talks to nothing."""

from __future__ import annotations

import logging
import time
import uuid

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from rms.models.enums import FulfillmentOperation, FulfillmentStatus
from rms.models.fulfillment_log import FulfillmentIntegrationLog
from rms.modules.fulfillment.base import FulfillmentAdapter
from rms.modules.fulfillment.schemas import (
    CreditMemoPayload,
    FulfillmentResult,
    ReplacementOrderPayload,
)

logger = logging.getLogger(__name__)


class StubFulfillmentAdapter(FulfillmentAdapter):
    """Returns STUB results and writes an integration log row per call.

    The log row is flushed on the caller's session, so it commits with
    whatever the caller commits.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_credit_memo(self, payload: CreditMemoPayload) -> FulfillmentResult:
        logger.info("Fulfillment stub: create_credit_memo for RMA %s", payload.rma_number)
        result = FulfillmentResult(
            success=True,
            reference_id=f"STUB-CM-{int(time.time() * 1000)}",
            status=FulfillmentStatus.STUB,
        )
        await self._log(payload.rma_id, FulfillmentOperation.CREDIT_MEMO, payload, result)
        return result

    async def create_replacement_order(
        self, payload: ReplacementOrderPayload
    ) -> FulfillmentResult:
        logger.info("Fulfillment stub: create_replacement_order for RMA %s", payload.rma_number)
        result = FulfillmentResult(
            success=True,
            reference_id=f"STUB-RO-{int(time.time() * 1000)}",
            status=FulfillmentStatus.STUB,
        )
        await self._log(payload.rma_id, FulfillmentOperation.REPLACEMENT_ORDER, payload, result)
        return result

    async def _log(
        self,
        rma_id: uuid.UUID,
        operation: FulfillmentOperation,
        payload: BaseModel,
        result: FulfillmentResult,
    ) -> None:
        self.session.add(
            FulfillmentIntegrationLog(
                rma_id=rma_id,
                operation_type=operation,
                request_payload=payload.model_dump(mode="json"),
                response_payload=result.model_dump(mode="json"),
                reference_id=result.reference_id,
                status=result.status,
            )
        )
        await self.session.flush()
