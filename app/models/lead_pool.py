# models/lead_pool.py
from sqlalchemy import Column, String, Text, Integer, Boolean, DateTime, ForeignKey, Index, JSON, Uuid
from uuid import uuid4
from datetime import datetime
from app.db.base_class import Base


class LeadPool(Base):
    __tablename__ = "lead_pools"

    pool_id = Column(Uuid, primary_key=True, default=uuid4)
    tenant_id = Column(Uuid, nullable=False)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    color = Column(String(7), nullable=False, default="#3B82F6")
    is_active = Column(Boolean, nullable=False, default=True)
    is_default = Column(Boolean, nullable=False, default=False)
    conditions = Column(JSON, nullable=True)  # optional membership predicate

    __table_args__ = (
        Index("idx_pool_tenant", "tenant_id"),
    )


class LeadPoolMember(Base):
    __tablename__ = "lead_pool_members"

    # autoincrement id doubles as the FIFO position
    member_id = Column(Integer, primary_key=True, autoincrement=True)
    pool_id = Column(Uuid, ForeignKey("lead_pools.pool_id", ondelete="CASCADE"), nullable=False)
    lead_id = Column(Uuid, ForeignKey("leads.lead_id", ondelete="CASCADE"), nullable=False, unique=True)
    enqueued_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_pool_member_pool", "pool_id", "member_id"),
    )
