# models/round_robin_state.py
from sqlalchemy import Column, DateTime, JSON, Uuid
from app.db.base_class import Base


class RoundRobinState(Base):
    __tablename__ = "round_robin_state"

    tenant_id = Column(Uuid, primary_key=True)
    cursor = Column(Uuid, nullable=True)                    # last agent served
    credits = Column(JSON, nullable=False, default=dict)    # {agent_id: remaining credit}
    last_reset_at = Column(DateTime, nullable=True)         # NULL until the first round starts
