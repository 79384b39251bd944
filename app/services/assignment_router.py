# app/services/assignment_router.py
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, Iterable, List, NamedTuple, Optional, Tuple, TypeVar
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import ASSIGNMENT_MAX_RETRIES
from app.core.exceptions import (
    ConfigNotFoundError,
    ConcurrentModificationError,
    InvalidAssignmentError,
    LeadNotFoundError,
    NoEligibleAgentError,
)
from app.crud import agent as agent_crud
from app.crud import lead as lead_crud
from app.crud import lead_pools as pool_crud
from app.crud.assignment_rules import list_rules
from app.crud.lead_activities import has_contact_activity_since
from app.models import Agent, Lead
from app.models.lead import ASSIGNED, POOLED, ESCALATED, CLOSED, UNASSIGNED
from app.schemas.assignment import AssignmentConfigData, AssignmentConfigUpdate, AssignmentResult
from app.services import rule_matcher
from app.services.audit_logger import AuditLogger
from app.services.config_store import ConfigStore
from app.services.load_tracker import LoadTracker
from app.services.notification_dispatcher import NotificationDispatcher, OwnerChangedEvent
from app.services.pool_manager import PoolManager
from app.services.round_robin import AgentSlot, RoundRobinScheduler
from app.services.tenant_lock import TenantLockManager

logger = logging.getLogger(__name__)

T = TypeVar("T")

AGENT = "agent"
POOL = "pool"

# Reasons that explain a degraded decision and survive a caller-supplied reason
FALLBACK_REASONS = (
    "config_missing",
    "no_agents_available",
    "rule_fallback_pool",
    "rule_fallback_round_robin",
    "rule_target_missing",
)

SWEEP_REASSIGNED = "reassigned"
SWEEP_ESCALATED = "escalated"


class Owner(NamedTuple):
    kind: str
    id: UUID


@dataclass(frozen=True)
class Decision:
    owner: Owner
    decision_source: str
    reason: str
    rule_id: Optional[UUID] = None


def current_owner(lead: Lead) -> Optional[Owner]:
    if lead.assigned_agent_id is not None and lead.assignment_state == ASSIGNED:
        return Owner(AGENT, lead.assigned_agent_id)
    if lead.pool_id is not None and lead.assignment_state in (POOLED, ESCALATED):
        return Owner(POOL, lead.pool_id)
    return None


def is_eligible(agent: Agent, exclude: Iterable[UUID] = ()) -> bool:
    return (
        agent.is_active
        and agent.is_available
        and LoadTracker.has_capacity(agent)
        and agent.agent_id not in set(exclude)
    )


class AssignmentRouter:
    """
    Decides and commits lead ownership.

    Every public operation runs under the tenant lock, in a fresh session
    per attempt. The lead row is written with a compare-and-swap on
    ``Lead.version``; a lost race rolls back and retries against reloaded
    state, up to ``max_retries`` times. Owner-changed events are handed to
    the notification dispatcher only after commit.
    """

    def __init__(
        self,
        session_factory,
        config_store: ConfigStore,
        locks: TenantLockManager,
        dispatcher: Optional[NotificationDispatcher] = None,
        max_retries: int = ASSIGNMENT_MAX_RETRIES,
    ):
        self.session_factory = session_factory
        self.config_store = config_store
        self.locks = locks
        self.dispatcher = dispatcher
        self.max_retries = max(1, max_retries)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------
    async def assign(self, lead_id: UUID) -> AssignmentResult:
        """
        Route a new lead. A lead that already has an owner is returned as
        is, with the reason of its latest decision, and nothing is written.
        """
        tenant_id = await self._tenant_of(lead_id)

        async def step(db: AsyncSession):
            lead = await self._load_lead(db, lead_id)
            if lead.assignment_state == CLOSED:
                raise InvalidAssignmentError(f"Lead {lead_id} is closed")

            owner = current_owner(lead)
            if owner is not None:
                return await self._existing_result(db, lead, owner), []

            decision = await self._decide(db, lead)
            events = await self._apply(db, lead, decision)
            return self._result(lead.lead_id, decision), events

        return await self._run(tenant_id, step)

    async def reassign(
        self,
        lead_id: UUID,
        reason: str = "manual_reassign",
        target_agent_id: Optional[UUID] = None,
    ) -> AssignmentResult:
        """
        Re-route a lead. Without a target the tenant policy decides again,
        excluding the current agent; with a target the lead is handed over.
        """
        tenant_id = await self._tenant_of(lead_id)

        async def step(db: AsyncSession):
            lead = await self._load_lead(db, lead_id)
            if lead.assignment_state == CLOSED:
                raise InvalidAssignmentError(f"Lead {lead_id} is closed")

            if target_agent_id is not None:
                if lead.assigned_agent_id == target_agent_id and lead.assignment_state == ASSIGNED:
                    raise InvalidAssignmentError(f"Agent {target_agent_id} already owns lead {lead_id}")
                await self._require_agent(db, tenant_id, target_agent_id)
                decision = Decision(Owner(AGENT, target_agent_id), "manual", reason)
            else:
                exclude = [lead.assigned_agent_id] if lead.assignment_state == ASSIGNED else []
                decision = await self._decide(db, lead, exclude)
                if decision.reason not in FALLBACK_REASONS:
                    decision = replace(decision, reason=reason)

            events = await self._apply(db, lead, decision)
            return self._result(lead.lead_id, decision), events

        return await self._run(tenant_id, step)

    async def claim(self, lead_id: UUID, agent_id: UUID) -> AssignmentResult:
        """Manual pick of a pooled lead by an agent."""
        tenant_id = await self._tenant_of(lead_id)

        async def step(db: AsyncSession):
            lead = await self._load_lead(db, lead_id)
            if lead.assignment_state not in (POOLED, ESCALATED, UNASSIGNED):
                raise InvalidAssignmentError(f"Lead {lead_id} is not waiting in a pool")
            await self._require_agent(db, tenant_id, agent_id)

            decision = Decision(Owner(AGENT, agent_id), "manual", "manual_claim")
            events = await self._apply(db, lead, decision)
            return self._result(lead.lead_id, decision), events

        return await self._run(tenant_id, step)

    async def claim_next(self, tenant_id: UUID, pool_id: UUID, agent_id: UUID) -> Optional[AssignmentResult]:
        """Hand the oldest lead of a pool to ``agent_id``; ``None`` if the pool is empty."""

        async def step(db: AsyncSession):
            pools = PoolManager(db)
            await pools.get_pool(tenant_id, pool_id)
            await self._require_agent(db, tenant_id, agent_id)

            lead = await pools.dequeue(pool_id)
            if lead is None:
                return None, []

            decision = Decision(Owner(AGENT, agent_id), "manual", "manual_claim")
            events = await self._apply(db, lead, decision)
            return self._result(lead.lead_id, decision), events

        return await self._run(tenant_id, step)

    async def close(self, lead_id: UUID, status: str) -> Lead:
        """Terminal CRM status: release load and pool membership, keep the trail."""
        tenant_id = await self._tenant_of(lead_id)

        async def step(db: AsyncSession):
            lead = await self._load_lead(db, lead_id)
            if lead.assignment_state == CLOSED:
                return lead, []

            owner = current_owner(lead)
            expected = lead.version
            swapped = await lead_crud.compare_and_swap(
                db, lead.lead_id, expected,
                status=status, assignment_state=CLOSED, pool_id=None,
            )
            if not swapped:
                raise ConcurrentModificationError(lead.lead_id, expected)

            if owner and owner.kind == AGENT:
                await LoadTracker(db).decrement(owner.id)
            elif owner and owner.kind == POOL:
                await PoolManager(db).remove(lead)

            logger.info("Lead %s closed as %s", lead.lead_id, status)
            return lead, []

        return await self._run(tenant_id, step)

    async def handle_sla_breach(
        self,
        tenant_id: UUID,
        lead_id: UUID,
        expected_version: int,
        now: Optional[datetime] = None,
    ) -> Optional[str]:
        """
        Re-route one lead found stale by the watchdog.

        The lead is skipped (``None``) when it changed since the scan, got
        contacted, or is no longer past its SLA. Once ``reassignment_count``
        reaches the configured maximum the lead is escalated instead.
        """
        now = now or datetime.utcnow()

        async def step(db: AsyncSession):
            lead = await lead_crud.get_lead_by_id(db, lead_id)
            if lead is None or lead.version != expected_version or lead.assignment_state != ASSIGNED:
                return None, []

            try:
                config = await self.config_store.get(db, tenant_id)
            except ConfigNotFoundError:
                return None, []
            if not config.auto_reassign_enabled:
                return None, []

            if lead.assigned_at is None or lead.assigned_at > now - timedelta(minutes=config.sla_minutes):
                return None, []
            if lead.last_contacted_at is not None and lead.last_contacted_at >= lead.assigned_at:
                return None, []
            if await has_contact_activity_since(db, lead.lead_id, lead.assigned_at):
                return None, []

            if lead.reassignment_count >= config.max_auto_reassignments:
                pool_id = await self._escalation_pool(db, lead, config)
                decision = Decision(Owner(POOL, pool_id), "watchdog", "escalated")
                events = await self._apply(db, lead, decision, pool_state=ESCALATED)
                return SWEEP_ESCALATED, events

            decision = await self._decide(db, lead, exclude=[lead.assigned_agent_id], config=config)
            reason = "sla_breach"
            if decision.reason in FALLBACK_REASONS:
                reason = f"sla_breach:{decision.reason}"
            decision = replace(decision, decision_source="watchdog", reason=reason)
            events = await self._apply(db, lead, decision, bump_reassignment=True)
            return SWEEP_REASSIGNED, events

        return await self._run(tenant_id, step)

    async def get_config(self, tenant_id: UUID) -> AssignmentConfigData:
        async with self.session_factory() as db:
            return await self.config_store.get(db, tenant_id)

    async def update_config(self, tenant_id: UUID, payload: AssignmentConfigUpdate) -> AssignmentConfigData:
        # under the tenant lock so no decision sees a half-applied config
        async with self.locks.hold(tenant_id):
            async with self.session_factory() as db:
                return await self.config_store.update(db, tenant_id, payload)

    async def reconcile_load(self, tenant_id: UUID) -> Dict[UUID, int]:
        """
        Rebuild the tenant's load counters from the leads table. Runs under
        the tenant lock so no assignment commits between the count and the write.
        """
        async with self.locks.hold(tenant_id):
            async with self.session_factory() as db:
                corrected = await LoadTracker(db).reconcile(tenant_id)
                await db.commit()
        if corrected:
            logger.warning("Reconciled %s agent counters for tenant %s", len(corrected), tenant_id)
        return corrected

    # ------------------------------------------------------------------
    # Transaction plumbing
    # ------------------------------------------------------------------
    async def _run(
        self,
        tenant_id: UUID,
        step: Callable[[AsyncSession], Awaitable[Tuple[T, List[OwnerChangedEvent]]]],
    ) -> T:
        async with self.locks.hold(tenant_id):
            for attempt in range(1, self.max_retries + 1):
                async with self.session_factory() as db:
                    try:
                        result, events = await step(db)
                        await db.commit()
                    except ConcurrentModificationError as e:
                        await db.rollback()
                        if attempt == self.max_retries:
                            logger.error("Giving up on lead %s after %s attempts", e.lead_id, attempt)
                            raise
                        logger.warning("%s; retrying (attempt %s/%s)", e, attempt, self.max_retries)
                        continue

                self._notify(events)
                return result

    async def _tenant_of(self, lead_id: UUID) -> UUID:
        async with self.session_factory() as db:
            lead = await lead_crud.get_lead_by_id(db, lead_id)
            if lead is None:
                raise LeadNotFoundError(lead_id)
            return lead.tenant_id

    async def _load_lead(self, db: AsyncSession, lead_id: UUID) -> Lead:
        lead = await lead_crud.get_lead_by_id(db, lead_id)
        if lead is None:
            raise LeadNotFoundError(lead_id)
        return lead

    def _notify(self, events: List[OwnerChangedEvent]) -> None:
        if self.dispatcher is None:
            return
        for event in events:
            self.dispatcher.dispatch(event)

    # ------------------------------------------------------------------
    # Decision
    # ------------------------------------------------------------------
    async def _decide(
        self,
        db: AsyncSession,
        lead: Lead,
        exclude: Iterable[UUID] = (),
        config: Optional[AssignmentConfigData] = None,
    ) -> Decision:
        exclude = [agent_id for agent_id in exclude if agent_id is not None]
        if config is None:
            try:
                config = await self.config_store.get(db, lead.tenant_id)
            except ConfigNotFoundError as e:
                logger.warning("%s; lead %s goes to the pool", e, lead.lead_id)
                return await self._to_pool(db, lead, None, "manual", "config_missing")

        if config.method == "manual":
            return await self._to_pool(db, lead, config, "manual", "manual_pool")

        if config.method == "round_robin":
            return await self._round_robin(db, lead, config, exclude, "round_robin", "round_robin")

        rules = await list_rules(db, lead.tenant_id, enabled_only=True)
        action = rule_matcher.match(lead, rules)
        if action is None:
            if config.rule_fallback == "round_robin":
                return await self._round_robin(db, lead, config, exclude, "round_robin", "rule_fallback_round_robin")
            return await self._to_pool(db, lead, config, "rules", "rule_fallback_pool")
        return await self._apply_rule_action(db, lead, config, action, exclude)

    async def _round_robin(
        self,
        db: AsyncSession,
        lead: Lead,
        config: AssignmentConfigData,
        exclude: List[UUID],
        source: str,
        reason: str,
    ) -> Decision:
        slots = await self._slots(db, config, exclude)
        try:
            agent_id = await RoundRobinScheduler(db).next_agent(lead.tenant_id, slots)
        except NoEligibleAgentError as e:
            logger.info("No agent for lead %s: %s", lead.lead_id, e)
            return await self._to_pool(db, lead, config, source, "no_agents_available")
        return Decision(Owner(AGENT, agent_id), source, reason)

    async def _slots(self, db: AsyncSession, config: AssignmentConfigData, exclude: List[UUID]) -> List[AgentSlot]:
        entries = config.enabled_agents()
        if not entries:
            return []
        directory = {
            agent.agent_id: agent
            for agent in await agent_crud.list_active_agents(db, config.tenant_id, [e.agent_id for e in entries])
        }
        return [
            AgentSlot(entry.agent_id, entry.leads_per_round, is_eligible(directory[entry.agent_id], exclude))
            for entry in entries
            if entry.agent_id in directory
        ]

    async def _apply_rule_action(
        self,
        db: AsyncSession,
        lead: Lead,
        config: AssignmentConfigData,
        action: rule_matcher.RuleAction,
        exclude: List[UUID],
    ) -> Decision:
        reason = f"rule:{action.rule_name}"

        if action.action_type == "assign_pool":
            pool = await pool_crud.get_pool(db, lead.tenant_id, action.target_id)
            if pool is None or not pool.is_active:
                logger.warning("Rule %s targets missing pool %s", action.rule_name, action.target_id)
                return await self._to_pool(db, lead, config, "rules", "rule_target_missing", action.rule_id)
            return Decision(Owner(POOL, pool.pool_id), "rules", reason, action.rule_id)

        if action.action_type == "assign_agent":
            candidates = await agent_crud.list_active_agents(db, lead.tenant_id, [action.target_id])
        else:
            candidates = await agent_crud.list_team_members(db, lead.tenant_id, action.target_id)

        eligible = [agent for agent in candidates if is_eligible(agent, exclude)]
        if not eligible:
            return await self._to_pool(db, lead, config, "rules", "no_agents_available", action.rule_id)

        # team: least loaded member first
        chosen = min(eligible, key=lambda a: (a.active_lead_count, str(a.agent_id)))
        return Decision(Owner(AGENT, chosen.agent_id), "rules", reason, action.rule_id)

    async def _to_pool(
        self,
        db: AsyncSession,
        lead: Lead,
        config: Optional[AssignmentConfigData],
        source: str,
        reason: str,
        rule_id: Optional[UUID] = None,
    ) -> Decision:
        default_pool_id = config.default_pool_id if config else None
        pool_id = await PoolManager(db).resolve_pool(lead, default_pool_id)
        return Decision(Owner(POOL, pool_id), source, reason, rule_id)

    async def _escalation_pool(self, db: AsyncSession, lead: Lead, config: AssignmentConfigData) -> UUID:
        if config.escalation_pool_id is not None:
            pool = await pool_crud.get_pool(db, lead.tenant_id, config.escalation_pool_id)
            if pool is not None and pool.is_active:
                return pool.pool_id
        return await PoolManager(db).resolve_pool(lead, config.default_pool_id)

    async def _require_agent(self, db: AsyncSession, tenant_id: UUID, agent_id: UUID) -> Agent:
        agents = await agent_crud.list_active_agents(db, tenant_id, [agent_id])
        if not agents:
            raise LookupError(f"Agent {agent_id} not found")
        agent = agents[0]
        if not is_eligible(agent):
            raise NoEligibleAgentError(f"Agent {agent_id} is offline or at capacity")
        return agent

    # ------------------------------------------------------------------
    # Commit of a decision
    # ------------------------------------------------------------------
    async def _apply(
        self,
        db: AsyncSession,
        lead: Lead,
        decision: Decision,
        pool_state: str = POOLED,
        bump_reassignment: bool = False,
    ) -> List[OwnerChangedEvent]:
        previous = current_owner(lead)
        previous_agent_id = previous.id if previous and previous.kind == AGENT else None
        expected = lead.version
        owner = decision.owner

        values = {"assigned_at": datetime.utcnow()}
        if owner.kind == AGENT:
            values.update(assigned_agent_id=owner.id, pool_id=None, assignment_state=ASSIGNED)
        else:
            values.update(assigned_agent_id=None, pool_id=owner.id, assignment_state=pool_state)
        if bump_reassignment:
            values["reassignment_count"] = lead.reassignment_count + 1

        if not await lead_crud.compare_and_swap(db, lead.lead_id, expected, **values):
            raise ConcurrentModificationError(lead.lead_id, expected)

        loads = LoadTracker(db)
        pools = PoolManager(db)
        if previous_agent_id is not None:
            await loads.decrement(previous_agent_id)
        elif previous is not None:
            await pools.remove(lead)

        if owner.kind == AGENT:
            await loads.increment(owner.id)
        else:
            await pools.enqueue(lead, owner.id)

        await AuditLogger(db).record(
            lead.tenant_id,
            lead.lead_id,
            tuple(previous) if previous else None,
            tuple(owner),
            decision.decision_source,
            decision.reason,
            decision.rule_id,
        )

        if owner.kind == AGENT:
            return [OwnerChangedEvent(
                tenant_id=lead.tenant_id,
                lead_id=lead.lead_id,
                notification_type="reassignment" if previous_agent_id else "assignment",
                owner_kind=AGENT,
                owner_id=owner.id,
                reason=decision.reason,
                recipient_agent_id=owner.id,
                previous_agent_id=previous_agent_id,
            )]
        if pool_state == ESCALATED:
            return [OwnerChangedEvent(
                tenant_id=lead.tenant_id,
                lead_id=lead.lead_id,
                notification_type="escalation",
                owner_kind=POOL,
                owner_id=owner.id,
                reason=decision.reason,
                previous_agent_id=previous_agent_id,
            )]
        return []

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------
    @staticmethod
    def _result(lead_id: UUID, decision: Decision) -> AssignmentResult:
        return AssignmentResult(
            lead_id=lead_id,
            owner_kind=decision.owner.kind,
            owner_id=decision.owner.id,
            reason=decision.reason,
            decision_source=decision.decision_source,
        )

    async def _existing_result(self, db: AsyncSession, lead: Lead, owner: Owner) -> AssignmentResult:
        latest = await AuditLogger(db).latest_for_lead(lead.lead_id)
        return AssignmentResult(
            lead_id=lead.lead_id,
            owner_kind=owner.kind,
            owner_id=owner.id,
            reason=latest.reason if latest else "existing_owner",
            decision_source=latest.decision_source if latest else "manual",
        )
