# app/services/round_robin.py
"""
Credit-based weighted round robin.

Every enabled agent holds a credit initialised to its ``leads_per_round``.
Each pick takes the available agent with the highest credit (ties by
ascending agent id) and decrements it. Agents skipped for capacity keep
their credit. Once no available agent holds credit, every agent is
refilled to its weight and a new round starts.
"""
import logging
from datetime import datetime
from typing import Dict, List, NamedTuple, Sequence, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NoEligibleAgentError
from app.crud.round_robin_state import get_or_create_state

logger = logging.getLogger(__name__)


class AgentSlot(NamedTuple):
    agent_id: UUID
    weight: int
    available: bool = True


def pick_agent(
    slots: Sequence[AgentSlot],
    credits: Dict[str, int],
    started: bool,
) -> Tuple[UUID, Dict[str, int], bool]:
    """
    Pure selection step.

    Returns ``(agent_id, new_credits, refilled)``. ``credits`` is keyed by
    the string form of the agent id; entries of agents no longer in
    ``slots`` are dropped.
    """
    if not slots:
        raise NoEligibleAgentError("No enabled agents configured")

    weights = {str(slot.agent_id): max(int(slot.weight), 1) for slot in slots}
    available = [str(slot.agent_id) for slot in slots if slot.available]
    if not available:
        raise NoEligibleAgentError("Every enabled agent is at capacity or offline")

    if started:
        # agents that joined mid-round wait for the next refill
        balance = {aid: min(max(int(credits.get(aid, 0)), 0), w) for aid, w in weights.items()}
        refilled = False
    else:
        balance = dict(weights)
        refilled = True

    candidates = [aid for aid in available if balance[aid] > 0]
    if not candidates:
        balance = dict(weights)
        refilled = True
        candidates = available

    chosen = min(candidates, key=lambda aid: (-balance[aid], aid))
    balance[chosen] -= 1
    return UUID(chosen), balance, refilled


class RoundRobinScheduler:
    """Applies ``pick_agent`` to the persisted per-tenant rotation state."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def next_agent(self, tenant_id: UUID, slots: List[AgentSlot]) -> UUID:
        state = await get_or_create_state(self.db, tenant_id)
        started = state.last_reset_at is not None

        if state.cursor is not None and state.cursor not in {slot.agent_id for slot in slots}:
            state.cursor = None

        agent_id, credits, refilled = pick_agent(slots, state.credits or {}, started)

        state.credits = credits
        state.cursor = agent_id
        if refilled:
            state.last_reset_at = datetime.utcnow()
            logger.info("Round robin refilled for tenant %s", tenant_id)
        await self.db.flush()

        logger.debug("Round robin picked %s for tenant %s (credits=%s)", agent_id, tenant_id, credits)
        return agent_id
