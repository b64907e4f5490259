import uuid
from sqlalchemy import Column, String, Integer, TIMESTAMP, Index, CheckConstraint, Uuid, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from reward_engine.db import Base


class RewardProgram(Base):
    __tablename__ = "reward_programs"

    __table_args__ = (
        CheckConstraint("default_giving_budget >= 0", name="ck_reward_programs_budget_non_negative"),
        # at most one ACTIVE program
        Index(
            "uq_reward_programs_single_active",
            "status",
            unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
            sqlite_where=text("status = 'ACTIVE'"),
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    name = Column(String(200), nullable=False)
    description = Column(String(2000))

    start_date = Column(TIMESTAMP, nullable=True)
    end_date = Column(TIMESTAMP, nullable=True)

    status = Column(String(20), nullable=False, default="PENDING")
    # PENDING | ACTIVE | INACTIVE (terminal)

    default_giving_budget = Column(Integer, nullable=False, default=0)

    banner_url = Column(String(500))

    activated_at = Column(TIMESTAMP, nullable=True)
    deactivated_at = Column(TIMESTAMP, nullable=True)

    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    policies = relationship(
        "RewardPolicy",
        back_populates="program",
        order_by="RewardPolicy.position",
        cascade="save-update, merge",
    )
    items = relationship(
        "RewardItem",
        back_populates="program",
        order_by="RewardItem.position",
        cascade="save-update, merge",
    )
