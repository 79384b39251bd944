# app/core/exceptions.py
"""
Error taxonomy of the assignment engine.

Only LeadNotFoundError, InvalidAssignmentError and an exhausted
ConcurrentModificationError ever reach API callers. The others are
recovered inside the engine and degrade to the pool with a logged reason.
"""


class AssignmentError(Exception):
    """Base class for every assignment engine error."""


class ConfigNotFoundError(AssignmentError, LookupError):
    def __init__(self, tenant_id):
        super().__init__(f"No assignment config for tenant {tenant_id}")
        self.tenant_id = tenant_id


class LeadNotFoundError(AssignmentError, LookupError):
    def __init__(self, lead_id):
        super().__init__(f"Lead {lead_id} not found")
        self.lead_id = lead_id


class NoEligibleAgentError(AssignmentError):
    """No enabled agent with spare capacity is left for this decision."""


class RuleEvaluationError(AssignmentError):
    def __init__(self, rule_name: str, detail: str):
        super().__init__(f"Rule '{rule_name}' could not be evaluated: {detail}")
        self.rule_name = rule_name


class ConcurrentModificationError(AssignmentError):
    def __init__(self, lead_id, expected_version):
        super().__init__(f"Lead {lead_id} changed since version {expected_version}")
        self.lead_id = lead_id
        self.expected_version = expected_version


class NotificationDeliveryError(AssignmentError):
    def __init__(self, channel: str, detail: str):
        super().__init__(f"Delivery via {channel} failed: {detail}")
        self.channel = channel


class InvalidAssignmentError(AssignmentError, ValueError):
    """Request is well-formed but not allowed in the lead's current state."""
