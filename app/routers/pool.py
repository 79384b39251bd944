from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
from uuid import UUID
import logging
import traceback

from app.core.exceptions import ConcurrentModificationError, NoEligibleAgentError
from app.schemas.assignment import AssignmentResult, ClaimRequest
from app.schemas.pool import LeadPoolCreate, LeadPoolOut, PoolMemberOut
from app.db.session import get_db
from app.services.engine import get_assignment_router
from app.services.assignment_router import AssignmentRouter
from app.services.pool_manager import PoolManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/pools", tags=["Pools"])


@router.post("/{tenant_id}", response_model=LeadPoolOut, status_code=201)
async def create_pool(
    tenant_id: UUID,
    request: LeadPoolCreate,
    db: AsyncSession = Depends(get_db),
):
    try:
        pool = await PoolManager(db).create_pool(tenant_id, request)
        await db.commit()
        return LeadPoolOut.model_validate(pool)
    except Exception as e:
        logger.error("Error in create_pool: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/{tenant_id}", response_model=List[LeadPoolOut])
async def list_pools(
    tenant_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await PoolManager(db).list_pools(tenant_id)
    except Exception as e:
        logger.error("Error in list_pools: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/{tenant_id}/{pool_id}/members", response_model=List[PoolMemberOut], summary="Pool queue in FIFO order")
async def list_members(
    tenant_id: UUID,
    pool_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await PoolManager(db).list_members(tenant_id, pool_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in list_members: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.delete("/{tenant_id}/{pool_id}", status_code=204)
async def delete_pool(
    tenant_id: UUID,
    pool_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    try:
        await PoolManager(db).delete_pool(tenant_id, pool_id)
        await db.commit()
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Error in delete_pool: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")
    return Response(status_code=204)


@router.post(
    "/{tenant_id}/{pool_id}/claim-next",
    response_model=AssignmentResult,
    summary="Claim the oldest lead of a pool",
)
async def claim_next(
    tenant_id: UUID,
    pool_id: UUID,
    request: ClaimRequest,
    assignment: AssignmentRouter = Depends(get_assignment_router),
):
    try:
        result = await assignment.claim_next(tenant_id, pool_id, request.agent_id)
    except (ConcurrentModificationError, NoEligibleAgentError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in claim_next: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")

    if result is None:
        raise HTTPException(status_code=404, detail="Pool is empty")
    return result
