from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
from uuid import UUID
import logging
import traceback

from app.schemas.agent import AgentCreate, AgentLoad, AvailabilityUpdate
from app.db.session import get_db
from app.services.agent_services import AgentServices
from app.services.assignment_router import AssignmentRouter
from app.services.engine import get_assignment_router

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/agents", tags=["Agents"])


@router.post("/{tenant_id}", response_model=AgentLoad, status_code=201)
async def create_agent(
    tenant_id: UUID,
    request: AgentCreate,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await AgentServices.create_agent(tenant_id, request, db)
    except Exception as e:
        logger.error("Error in create_agent: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/{tenant_id}/load", response_model=List[AgentLoad], summary="Active leads against capacity")
async def get_agent_load(
    tenant_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await AgentServices.get_agent_load(tenant_id, db)
    except Exception as e:
        logger.error("Error in get_agent_load: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post("/{tenant_id}/load/reconcile", response_model=List[AgentLoad])
async def reconcile_agent_load(
    tenant_id: UUID,
    db: AsyncSession = Depends(get_db),
    assignment: AssignmentRouter = Depends(get_assignment_router),
):
    try:
        return await AgentServices.reconcile_load(tenant_id, db, assignment)
    except Exception as e:
        logger.error("Error in reconcile_agent_load: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.put("/{agent_id}/availability", response_model=AgentLoad)
async def set_availability(
    agent_id: UUID,
    request: AvailabilityUpdate,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await AgentServices.set_availability(agent_id, request, db)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in set_availability: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")
