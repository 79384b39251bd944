# models/assignment_log.py
from sqlalchemy import Column, String, Text, DateTime, Index, CheckConstraint, Uuid, event
from uuid import uuid4
from datetime import datetime
from app.db.base_class import Base


class AssignmentLog(Base):
    __tablename__ = "assignment_log"

    log_id = Column(Uuid, primary_key=True, default=uuid4)
    tenant_id = Column(Uuid, nullable=False)
    lead_id = Column(Uuid, nullable=False)  # no FK: the trail outlives the lead
    previous_owner_kind = Column(String(10), nullable=True)
    previous_owner_id = Column(Uuid, nullable=True)
    new_owner_kind = Column(String(10), nullable=False)
    new_owner_id = Column(Uuid, nullable=False)
    decision_source = Column(String(20), nullable=False)
    reason = Column(Text, nullable=False)
    rule_id = Column(Uuid, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(
            "decision_source IN ('manual','round_robin','rules','watchdog')",
            name="chk_log_decision_source"
        ),
        CheckConstraint("new_owner_kind IN ('agent','pool')", name="chk_log_new_owner_kind"),
        Index("idx_log_tenant_time", "tenant_id", "created_at"),
        Index("idx_log_lead", "lead_id"),
        Index("idx_log_new_owner", "new_owner_id"),
    )


@event.listens_for(AssignmentLog, "before_update")
def _refuse_update(mapper, connection, target):
    raise PermissionError("assignment_log is append-only")


@event.listens_for(AssignmentLog, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise PermissionError("assignment_log is append-only")
