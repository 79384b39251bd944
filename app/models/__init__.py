from .agent import Agent, Team
from .lead import Lead
from .lead_activities import LeadActivity
from .lead_pool import LeadPool, LeadPoolMember
from .assignment_config import AssignmentConfig, AssignmentConfigAgent
from .assignment_rule import AssignmentRule
from .round_robin_state import RoundRobinState
from .assignment_log import AssignmentLog
from .assignment_notification import AssignmentNotification

__all__ = [
    "Agent",
    "Team",
    "Lead",
    "LeadActivity",
    "LeadPool",
    "LeadPoolMember",
    "AssignmentConfig",
    "AssignmentConfigAgent",
    "AssignmentRule",
    "RoundRobinState",
    "AssignmentLog",
    "AssignmentNotification",
]
