from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
from uuid import UUID
import logging
import traceback

from app.core.exceptions import ConcurrentModificationError, NoEligibleAgentError
from app.schemas.assignment import (
    AssignmentResult,
    ReassignRequest,
    ClaimRequest,
    AssignmentConfigData,
    AssignmentConfigUpdate,
    AssignmentRuleCreate,
    AssignmentRuleOut,
    AssignmentLogFilters,
    AssignmentLogPage,
    AssignmentLogStats,
    SweepReport,
)
from app.db.session import get_db
from app.scheduler.scheduler import get_scheduler_status
from app.services.engine import get_assignment_router, get_watchdog
from app.services.assignment_router import AssignmentRouter
from app.services.assignment_services import AssignmentServices
from app.services.watchdog import ReassignmentWatchdog

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/assignment", tags=["Assignment"])


def _raise_http(e: Exception, where: str):
    if isinstance(e, (ConcurrentModificationError, NoEligibleAgentError)):
        raise HTTPException(status_code=409, detail=str(e))
    if isinstance(e, LookupError):
        raise HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ValueError):
        raise HTTPException(status_code=400, detail=str(e))
    logger.error("Error in %s: %s\n%s", where, e, traceback.format_exc())
    raise HTTPException(status_code=500, detail="Internal Server Error")


# --- Routing actions ---
@router.post("/leads/{lead_id}/assign", response_model=AssignmentResult, summary="Route (or re-submit) a lead")
async def assign_lead(
    lead_id: UUID,
    assignment: AssignmentRouter = Depends(get_assignment_router),
):
    try:
        return await assignment.assign(lead_id)
    except Exception as e:
        _raise_http(e, "assign_lead")


@router.post("/leads/{lead_id}/reassign", response_model=AssignmentResult, summary="Re-route a lead")
async def reassign_lead(
    lead_id: UUID,
    request: ReassignRequest,
    assignment: AssignmentRouter = Depends(get_assignment_router),
):
    try:
        return await assignment.reassign(lead_id, request.reason, request.target_agent_id)
    except Exception as e:
        _raise_http(e, "reassign_lead")


@router.post("/leads/{lead_id}/claim", response_model=AssignmentResult, summary="Claim a pooled lead")
async def claim_lead(
    lead_id: UUID,
    request: ClaimRequest,
    assignment: AssignmentRouter = Depends(get_assignment_router),
):
    try:
        return await assignment.claim(lead_id, request.agent_id)
    except Exception as e:
        _raise_http(e, "claim_lead")


# --- Tenant config ---
@router.get("/config/{tenant_id}", response_model=AssignmentConfigData)
async def get_config(
    tenant_id: UUID,
    assignment: AssignmentRouter = Depends(get_assignment_router),
):
    try:
        return await assignment.get_config(tenant_id)
    except Exception as e:
        _raise_http(e, "get_config")


@router.put("/config/{tenant_id}", response_model=AssignmentConfigData)
async def update_config(
    tenant_id: UUID,
    request: AssignmentConfigUpdate,
    assignment: AssignmentRouter = Depends(get_assignment_router),
):
    try:
        return await assignment.update_config(tenant_id, request)
    except Exception as e:
        _raise_http(e, "update_config")


# --- Rules ---
@router.post("/rules/{tenant_id}", response_model=AssignmentRuleOut, status_code=201)
async def create_rule(
    tenant_id: UUID,
    request: AssignmentRuleCreate,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await AssignmentServices.create_rule(tenant_id, request, db)
    except Exception as e:
        _raise_http(e, "create_rule")


@router.get("/rules/{tenant_id}", response_model=List[AssignmentRuleOut])
async def list_rules(
    tenant_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await AssignmentServices.list_rules(tenant_id, db)
    except Exception as e:
        _raise_http(e, "list_rules")


@router.delete("/rules/{tenant_id}/{rule_id}", status_code=204)
async def delete_rule(
    tenant_id: UUID,
    rule_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    try:
        await AssignmentServices.delete_rule(tenant_id, rule_id, db)
    except Exception as e:
        _raise_http(e, "delete_rule")
    return Response(status_code=204)


# --- Audit log ---
@router.get("/logs/{tenant_id}", response_model=AssignmentLogPage, summary="Paged assignment history")
async def get_logs(
    tenant_id: UUID,
    filters: AssignmentLogFilters = Depends(),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await AssignmentServices.get_logs(tenant_id, filters, db)
    except Exception as e:
        _raise_http(e, "get_logs")


@router.get("/logs/{tenant_id}/stats", response_model=AssignmentLogStats)
async def get_log_stats(
    tenant_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await AssignmentServices.get_log_stats(tenant_id, db)
    except Exception as e:
        _raise_http(e, "get_log_stats")


# --- Watchdog ---
@router.post("/watchdog/{tenant_id}/sweep", response_model=SweepReport, summary="Run the SLA sweep now")
async def sweep_tenant(
    tenant_id: UUID,
    watchdog: ReassignmentWatchdog = Depends(get_watchdog),
):
    try:
        return await watchdog.sweep_tenant(tenant_id)
    except Exception as e:
        _raise_http(e, "sweep_tenant")


@router.get("/watchdog/status")
async def watchdog_status():
    return get_scheduler_status()
