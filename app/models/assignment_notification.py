# models/assignment_notification.py
from sqlalchemy import Column, String, Text, Boolean, DateTime, Integer, Index, CheckConstraint, Uuid
from uuid import uuid4
from app.db.base_class import Base


class AssignmentNotification(Base):
    __tablename__ = "assignment_notifications"

    notification_id = Column(Uuid, primary_key=True, default=uuid4)
    tenant_id = Column(Uuid, nullable=False)
    lead_id = Column(Uuid, nullable=False)
    recipient_agent_id = Column(Uuid, nullable=True)  # NULL = tenant manager
    notification_type = Column(String(20), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "notification_type IN ('assignment','reassignment','escalation')",
            name="chk_notification_type"
        ),
        Index("idx_notification_tenant", "tenant_id", "is_read"),
    )
