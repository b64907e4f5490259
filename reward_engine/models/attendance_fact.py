import uuid
from sqlalchemy import Column, String, Integer, TIMESTAMP, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.sql import func
from reward_engine.db import Base


class AttendanceFact(Base):
    __tablename__ = "attendance_facts"

    # natural key: a fact is accrued at most once
    __table_args__ = (
        UniqueConstraint(
            "employee_id",
            "reward_program_id",
            "policy_type",
            "period_key",
            name="uq_attendance_facts_natural_key",
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    employee_id = Column(String(100), nullable=False)
    reward_program_id = Column(Uuid, ForeignKey("reward_programs.id"), nullable=False)

    policy_type = Column(String(30), nullable=False)
    period_key = Column(String(50), nullable=False)

    magnitude = Column(Integer, nullable=False)

    point_transaction_id = Column(Uuid, nullable=True)

    created_at = Column(TIMESTAMP, server_default=func.now())
