import uuid
from sqlalchemy import Column, String, Integer, TIMESTAMP, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.sql import func
from reward_engine.db import Base


class BudgetReset(Base):
    __tablename__ = "budget_resets"

    __table_args__ = (
        UniqueConstraint("reward_program_id", "period_key", name="uq_budget_resets_program_period"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    reward_program_id = Column(Uuid, ForeignKey("reward_programs.id"), nullable=False)
    period_key = Column(String(50), nullable=False)

    budget = Column(Integer, nullable=False)
    wallets_reset = Column(Integer, nullable=False, default=0)

    created_at = Column(TIMESTAMP, server_default=func.now())
