import uuid
from sqlalchemy import Column, String, Integer, TIMESTAMP, ForeignKey, UniqueConstraint, CheckConstraint, Uuid
from sqlalchemy.sql import func
from reward_engine.db import Base


class UserWallet(Base):
    __tablename__ = "user_wallets"

    __table_args__ = (
        UniqueConstraint("user_id", "reward_program_id", name="uq_user_wallets_user_program"),
        CheckConstraint("personal_point >= 0", name="ck_user_wallets_personal_point_non_negative"),
        CheckConstraint("manager_giving_budget >= 0", name="ck_user_wallets_budget_non_negative"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    user_id = Column(String(100), nullable=False)
    reward_program_id = Column(Uuid, ForeignKey("reward_programs.id"), nullable=False)

    role = Column(String(20), nullable=False, default="EMPLOYEE")  # EMPLOYEE / MANAGER

    personal_point = Column(Integer, nullable=False, default=0)
    manager_giving_budget = Column(Integer, nullable=False, default=0)

    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())
