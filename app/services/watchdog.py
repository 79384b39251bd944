# app/services/watchdog.py
import logging
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID

from app.core.config import UNASSIGNED_GRACE_SECONDS
from app.core.exceptions import ConfigNotFoundError, ConcurrentModificationError
from app.crud.assignment_config import list_configured_tenants
from app.crud.lead import list_sla_candidates, list_tenants_with_unrouted_leads, list_unrouted_leads
from app.crud.lead_activities import has_contact_activity_since
from app.models.lead import OPEN_STATUSES
from app.schemas.assignment import SweepReport
from app.services.assignment_router import AssignmentRouter, SWEEP_REASSIGNED, SWEEP_ESCALATED

logger = logging.getLogger(__name__)


class ReassignmentWatchdog:
    """
    Periodic SLA sweep.

    The scan runs without the tenant lock and only records ``(lead_id,
    version)`` pairs; each re-route then goes through the router, which
    re-checks the lead under the lock and skips it if the version moved.

    Leads still ``unassigned`` after ``unassigned_grace_seconds`` (capture
    committed but routing failed) are re-submitted to ``router.assign``
    first, whether or not the tenant has a config.
    """

    def __init__(
        self,
        router: AssignmentRouter,
        session_factory,
        unassigned_grace_seconds: int = UNASSIGNED_GRACE_SECONDS,
    ):
        self.router = router
        self.session_factory = session_factory
        self.unassigned_grace = timedelta(seconds=unassigned_grace_seconds)

    async def sweep_tenant(self, tenant_id: UUID, now: Optional[datetime] = None) -> SweepReport:
        now = now or datetime.utcnow()
        report = SweepReport(tenant_id=tenant_id)
        report.resubmitted = await self._resubmit_unrouted(tenant_id, now)

        async with self.session_factory() as db:
            try:
                config = await self.router.config_store.get(db, tenant_id)
            except ConfigNotFoundError:
                return report
            if not config.auto_reassign_enabled:
                return report

            cutoff = now - timedelta(minutes=config.sla_minutes)
            stages = config.reassign_stages or list(OPEN_STATUSES)
            leads = await list_sla_candidates(db, tenant_id, cutoff, stages)
            report.scanned = len(leads)

            stale = []
            for lead in leads:
                if lead.last_contacted_at is not None and lead.last_contacted_at >= lead.assigned_at:
                    report.skipped += 1
                    continue
                if await has_contact_activity_since(db, lead.lead_id, lead.assigned_at):
                    report.skipped += 1
                    continue
                stale.append((lead.lead_id, lead.version))

        for lead_id, version in stale:
            try:
                outcome = await self.router.handle_sla_breach(tenant_id, lead_id, version, now)
            except ConcurrentModificationError as e:
                logger.warning("SLA re-route of lead %s lost the race: %s", lead_id, e)
                outcome = None

            if outcome == SWEEP_REASSIGNED:
                report.reassigned += 1
            elif outcome == SWEEP_ESCALATED:
                report.escalated += 1
            else:
                report.skipped += 1

        if report.reassigned or report.escalated:
            logger.info(
                "Watchdog tenant %s: scanned=%s reassigned=%s escalated=%s skipped=%s",
                tenant_id, report.scanned, report.reassigned, report.escalated, report.skipped,
            )
        return report

    async def sweep_all(self, now: Optional[datetime] = None) -> List[SweepReport]:
        now = now or datetime.utcnow()
        async with self.session_factory() as db:
            tenants = set(await list_configured_tenants(db))
            tenants.update(await list_tenants_with_unrouted_leads(db, now - self.unassigned_grace))

        reports = []
        for tenant_id in sorted(tenants):
            # one broken tenant must not stop the sweep of the others
            try:
                reports.append(await self.sweep_tenant(tenant_id, now))
            except Exception as e:
                logger.error("Watchdog sweep failed for tenant %s: %s", tenant_id, e, exc_info=True)
        return reports

    async def _resubmit_unrouted(self, tenant_id: UUID, now: datetime) -> int:
        async with self.session_factory() as db:
            lead_ids = await list_unrouted_leads(db, tenant_id, now - self.unassigned_grace)

        resubmitted = 0
        for lead_id in lead_ids:
            try:
                await self.router.assign(lead_id)
            except ConcurrentModificationError as e:
                logger.warning("Re-submit of lead %s lost the race: %s", lead_id, e)
                continue
            resubmitted += 1

        if resubmitted:
            logger.warning("Re-submitted %s unrouted leads for tenant %s", resubmitted, tenant_id)
        return resubmitted
