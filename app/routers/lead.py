from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID
import logging
import traceback

from app.core.exceptions import ConcurrentModificationError, NoEligibleAgentError
from app.schemas.lead import (
    LeadCreateRequest,
    LeadCaptureResponse,
    LeadOut,
    ActivityRequest,
    ActivityResponse,
    CloseLeadRequest,
)
from app.db.session import get_db
from app.services.engine import get_assignment_router
from app.services.assignment_router import AssignmentRouter
from app.services.lead_services import LeadServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/leads", tags=["Leads"])


@router.post(
    "",
    response_model=LeadCaptureResponse,
    status_code=201,
    summary="Ingest a new lead",
    description="Stores a new lead and routes it to an agent or pool according to the tenant's assignment config."
)
async def capture_lead(
    request: LeadCreateRequest,
    db: AsyncSession = Depends(get_db),
    assignment: AssignmentRouter = Depends(get_assignment_router),
):
    try:
        return await LeadServices.capture_lead_service(request, db, assignment)
    except (ConcurrentModificationError, NoEligibleAgentError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in capture_lead: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/{lead_id}", response_model=LeadOut, summary="Get lead ownership")
async def get_lead(
    lead_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await LeadServices.get_lead_service(lead_id, db)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in get_lead: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post(
    "/{lead_id}/activities",
    response_model=ActivityResponse,
    status_code=201,
    summary="Record contact activity",
    description="Appends a call / email / viewing etc. to the lead timeline; contacted leads are not SLA candidates."
)
async def record_activity(
    lead_id: UUID,
    request: ActivityRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await LeadServices.record_activity_service(lead_id, request, db)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Error in record_activity: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post(
    "/{lead_id}/close",
    response_model=LeadOut,
    summary="Close a lead",
    description="Marks the lead converted or lost; releases agent load and pool membership."
)
async def close_lead(
    lead_id: UUID,
    request: CloseLeadRequest,
    assignment: AssignmentRouter = Depends(get_assignment_router),
):
    try:
        return await LeadServices.close_lead_service(lead_id, request, assignment)
    except ConcurrentModificationError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Error in close_lead: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")
