"""Branch manager approvals API — queue, approve, reject."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from rms.config import settings
from rms.database.session import get_db
from rms.models.enums import RmaStatus, RmsRole
from rms.modules.rma.dependencies import get_lifecycle_service
from rms.modules.rma.repository import RmaRepository
from rms.modules.rma.schemas import (
    ApprovalQueueResponse,
    ApprovalQueueStatus,
    RejectRequest,
    RmaResponse,
)
from rms.modules.rma.service import RmaLifecycleService
from rms.modules.users.dependencies import require_roles
from rms.modules.users.service import ActorContext

router = APIRouter(prefix="/approvals", tags=["approvals"])


@router.get("/queue", response_model=ApprovalQueueResponse)
async def get_approval_queue(
    status: ApprovalQueueStatus | None = Query(None),
    branch_id: str | None = Query(None),
    take: int | None = Query(None, ge=1, le=200),
    skip: int = Query(0, ge=0),
    actor: ActorContext = Depends(require_roles(RmsRole.BRANCH_MANAGER)),
    db: AsyncSession = Depends(get_db),
):
    """SUBMITTED and CONTESTED RMAs in the caller's branches, oldest first."""
    items = await RmaRepository(db).find_for_approval_queue(
        actor,
        branch_id=branch_id,
        status=RmaStatus(status) if status else None,
        take=take,
        skip=skip,
    )
    return ApprovalQueueResponse(
        items=[RmaResponse.model_validate(rma) for rma in items],
        take=take or settings.approval_queue_page_size,
        skip=skip,
    )


@router.post("/{rma_id}/approve", response_model=RmaResponse)
async def approve_rma(
    rma_id: uuid.UUID,
    actor: ActorContext = Depends(require_roles(RmsRole.BRANCH_MANAGER)),
    svc: RmaLifecycleService = Depends(get_lifecycle_service),
):
    return RmaResponse.model_validate(await svc.approve(rma_id, actor))


@router.post("/{rma_id}/reject", response_model=RmaResponse)
async def reject_rma(
    rma_id: uuid.UUID,
    body: RejectRequest,
    actor: ActorContext = Depends(require_roles(RmsRole.BRANCH_MANAGER)),
    svc: RmaLifecycleService = Depends(get_lifecycle_service),
):
    return RmaResponse.model_validate(await svc.reject(rma_id, body.reason, actor))
