from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime
import logging

from app.core.exceptions import LeadNotFoundError, InvalidAssignmentError
from app.crud.lead import create_lead, get_lead_by_id, touch_last_contacted
from app.crud.lead_activities import create_activity
from app.models.lead import CLOSED
from app.schemas.lead import (
    LeadCreateRequest,
    LeadCaptureResponse,
    LeadOut,
    ActivityRequest,
    ActivityResponse,
    CloseLeadRequest,
)
from app.services.assignment_router import AssignmentRouter

logger = logging.getLogger(__name__)


class LeadServices:

    @staticmethod
    async def capture_lead_service(
        request: LeadCreateRequest,
        db: AsyncSession,
        router: AssignmentRouter,
    ) -> LeadCaptureResponse:
        """
        Ingestion hook for a newly created lead.

        Workflow:
        1. Insert the lead as `unassigned` and commit, so the assignment
           engine (which works in its own sessions) can see it.
        2. Route it with `AssignmentRouter.assign`. The router always finds
           an owner: an agent, or a pool with an explicit reason. If routing
           fails here the watchdog re-submits the lead after a grace period.

        Args:
            request (LeadCreateRequest): Tenant id plus contact and source attributes.
            db (AsyncSession): Request-scoped session used for the insert.
            router (AssignmentRouter): Shared assignment engine.

        Returns:
            LeadCaptureResponse: The new lead id and the routing decision.
        """
        lead = await create_lead(db, request.tenant_id, request.model_dump(exclude={"tenant_id"}))
        await db.commit()
        logger.info("Lead %s captured for tenant %s", lead.lead_id, request.tenant_id)

        assignment = await router.assign(lead.lead_id)
        return LeadCaptureResponse(success=True, lead_id=lead.lead_id, assignment=assignment)

    @staticmethod
    async def get_lead_service(lead_id: UUID, db: AsyncSession) -> LeadOut:
        lead = await get_lead_by_id(db, lead_id)
        if not lead:
            raise LeadNotFoundError(lead_id)
        return LeadOut.model_validate(lead)

    @staticmethod
    async def record_activity_service(
        lead_id: UUID,
        request: ActivityRequest,
        db: AsyncSession,
    ) -> ActivityResponse:
        """
        Append a contact activity to the lead timeline and stamp
        `last_contacted_at`. A contacted lead is no longer an SLA breach
        candidate for its current assignment.
        """
        lead = await get_lead_by_id(db, lead_id)
        if not lead:
            raise LeadNotFoundError(lead_id)
        if lead.assignment_state == CLOSED:
            raise InvalidAssignmentError(f"Lead {lead_id} is closed")

        now = datetime.utcnow()
        activity = await create_activity(
            db,
            lead_id=lead_id,
            activity_type=request.type,
            agent_id=request.agent_id or lead.assigned_agent_id,
            notes=request.notes,
            outcome=request.outcome,
            created_at=now,
        )
        await touch_last_contacted(db, lead, now)
        await db.commit()
        return ActivityResponse.model_validate(activity)

    @staticmethod
    async def close_lead_service(
        lead_id: UUID,
        request: CloseLeadRequest,
        router: AssignmentRouter,
    ) -> LeadOut:
        lead = await router.close(lead_id, request.status)
        return LeadOut.model_validate(lead)
