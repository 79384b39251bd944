from typing import List, Optional, Literal, Any
from pydantic import BaseModel, Field, field_validator
from uuid import UUID
from datetime import datetime

AssignmentMethod = Literal["manual", "round_robin", "rules"]
RuleFallback = Literal["round_robin", "pool"]
DecisionSource = Literal["manual", "round_robin", "rules", "watchdog"]
OwnerKind = Literal["agent", "pool"]


# --- Routing decision ---
class AssignmentResult(BaseModel):
    lead_id: UUID
    owner_kind: OwnerKind
    owner_id: UUID
    reason: str
    decision_source: DecisionSource

    model_config = {"from_attributes": True}


class ReassignRequest(BaseModel):
    reason: str = Field("manual_reassign", min_length=1, max_length=200)
    target_agent_id: Optional[UUID] = None


class ClaimRequest(BaseModel):
    agent_id: UUID


# --- Tenant config ---
class ConfigAgentEntry(BaseModel):
    agent_id: UUID
    enabled: bool = True
    leads_per_round: int = Field(1, ge=1)

    model_config = {"from_attributes": True}


class AssignmentConfigUpdate(BaseModel):
    method: AssignmentMethod = "manual"
    agents: List[ConfigAgentEntry] = []
    sla_minutes: int = Field(30, gt=0)
    max_auto_reassignments: int = Field(2, ge=0)
    rule_fallback: RuleFallback = "pool"
    default_pool_id: Optional[UUID] = None
    escalation_pool_id: Optional[UUID] = None
    auto_reassign_enabled: bool = True
    reassign_stages: List[str] = []

    @field_validator("agents")
    @classmethod
    def unique_agents(cls, agents: List[ConfigAgentEntry]) -> List[ConfigAgentEntry]:
        ids = [a.agent_id for a in agents]
        if len(ids) != len(set(ids)):
            raise ValueError("agent ids must be unique")
        return agents


class AssignmentConfigData(AssignmentConfigUpdate):
    tenant_id: UUID

    model_config = {"from_attributes": True}

    def enabled_agents(self) -> List[ConfigAgentEntry]:
        return [a for a in self.agents if a.enabled]


# --- Rules ---
RuleField = Literal[
    "campaign", "source", "source_type", "budget", "location",
    "property_type", "language_preference", "status",
]
RuleOperator = Literal["equals", "not_equals", "contains", "greater_than", "less_than", "between", "in"]
RuleActionType = Literal["assign_agent", "assign_team", "assign_pool"]


class RuleCondition(BaseModel):
    field: RuleField
    operator: RuleOperator
    value: Any


class AssignmentRuleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    priority: int = Field(..., ge=0)
    enabled: bool = True
    conditions: List[RuleCondition] = []
    action_type: RuleActionType
    action_target_id: UUID


class AssignmentRuleOut(BaseModel):
    rule_id: UUID
    tenant_id: UUID
    name: str
    priority: int
    enabled: bool
    conditions: List[dict]
    action_type: str
    action_target_id: UUID

    model_config = {"from_attributes": True}


# --- Audit log ---
class AssignmentLogFilters(BaseModel):
    lead_id: Optional[UUID] = None
    agent_id: Optional[UUID] = None
    decision_source: Optional[DecisionSource] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    page: int = Field(1, ge=1)
    page_size: int = Field(50, ge=1, le=200)


class AssignmentLogEntry(BaseModel):
    log_id: UUID
    tenant_id: UUID
    lead_id: UUID
    previous_owner_kind: Optional[OwnerKind] = None
    previous_owner_id: Optional[UUID] = None
    new_owner_kind: OwnerKind
    new_owner_id: UUID
    decision_source: DecisionSource
    reason: str
    rule_id: Optional[UUID] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class AssignmentLogPage(BaseModel):
    items: List[AssignmentLogEntry]
    total: int
    page: int
    page_size: int


class AssignmentLogStats(BaseModel):
    total: int
    by_source: dict[str, int]
    to_agent: int
    to_pool: int
    reassigned: int
    escalated: int


class SweepReport(BaseModel):
    tenant_id: UUID
    scanned: int = 0
    reassigned: int = 0
    escalated: int = 0
    skipped: int = 0
    resubmitted: int = 0
