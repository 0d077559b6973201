"""Centralized v1 API router — all module routers are included here."""

from fastapi import APIRouter

from rms.modules.rma.finance_router import router as finance_router
from rms.modules.rma.router import router as rma_router
from rms.modules.rma.workflow_router import router as workflow_router

v1_router = APIRouter(prefix="/api/v1")
v1_router.include_router(rma_router)
v1_router.include_router(workflow_router)
v1_router.include_router(finance_router)
