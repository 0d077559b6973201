"""Finance API — credit lines awaiting approval."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from rms.config import settings
from rms.database.session import get_db
from rms.models.enums import RmsRole
from rms.modules.rma.repository import RmaRepository
from rms.modules.rma.schemas import (
    CreditApprovalLineResponse,
    CreditApprovalListResponse,
    RmaLineResponse,
)
from rms.modules.users.dependencies import require_roles
from rms.modules.users.service import ActorContext

router = APIRouter(prefix="/finance", tags=["finance"])


@router.get("/credit-approvals", response_model=CreditApprovalListResponse)
async def list_credit_approvals(
    branch_id: str | None = Query(None),
    take: int | None = Query(None, ge=1, le=500),
    skip: int = Query(0, ge=0),
    actor: ActorContext = Depends(require_roles(RmsRole.FINANCE)),
    db: AsyncSession = Depends(get_db),
):
    """Unapproved CREDIT lines on QC_COMPLETE RMAs, oldest RMA first."""
    lines = await RmaRepository(db).find_credit_approval_lines(
        actor, branch_id=branch_id, take=take, skip=skip
    )
    items = [
        CreditApprovalLineResponse(
            **RmaLineResponse.model_validate(line).model_dump(),
            rma_number=line.rma.rma_number,
            rma_status=line.rma.status,
            branch_id=line.rma.branch_id,
        )
        for line in lines
    ]
    return CreditApprovalListResponse(
        items=items,
        take=take or settings.credit_approval_page_size,
        skip=skip,
    )
