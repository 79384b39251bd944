# models/assignment_rule.py
from sqlalchemy import Column, String, Integer, Boolean, CheckConstraint, UniqueConstraint, Index, JSON, Uuid
from uuid import uuid4
from app.db.base_class import Base


class AssignmentRule(Base):
    __tablename__ = "assignment_rules"

    rule_id = Column(Uuid, primary_key=True, default=uuid4)
    tenant_id = Column(Uuid, nullable=False)
    name = Column(String(100), nullable=False)
    priority = Column(Integer, nullable=False)  # lower = evaluated first
    enabled = Column(Boolean, nullable=False, default=True)
    conditions = Column(JSON, nullable=False, default=list)  # [{field, operator, value}, ...] AND-combined
    action_type = Column(String(20), nullable=False)
    action_target_id = Column(Uuid, nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "priority", name="uq_rule_tenant_priority"),
        CheckConstraint(
            "action_type IN ('assign_agent','assign_team','assign_pool')",
            name="chk_rule_action_type"
        ),
        Index("idx_rule_tenant", "tenant_id"),
    )
