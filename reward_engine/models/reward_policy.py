import uuid
from sqlalchemy import Column, String, Integer, TIMESTAMP, ForeignKey, UniqueConstraint, CheckConstraint, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from reward_engine.db import Base


class RewardPolicy(Base):
    __tablename__ = "reward_policies"

    __table_args__ = (
        UniqueConstraint("reward_program_id", "policy_type", name="uq_reward_policies_program_type"),
        CheckConstraint("unit_value >= 1", name="ck_reward_policies_unit_value_positive"),
        CheckConstraint("points_per_unit >= 0", name="ck_reward_policies_points_non_negative"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    reward_program_id = Column(Uuid, ForeignKey("reward_programs.id"), nullable=False)

    policy_type = Column(String(30), nullable=False)
    # OVERTIME (minutes) | NOT_LATE (days) | FULL_ATTENDANCE (days)

    unit_value = Column(Integer, nullable=False)
    points_per_unit = Column(Integer, nullable=False)

    position = Column(Integer, nullable=False, default=0)

    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    program = relationship("RewardProgram", back_populates="policies")
