import uuid

from sqlalchemy import Boolean, Column, ForeignKey, Index, JSON, String, TIMESTAMP, Uuid
from sqlalchemy.sql import func

from reward_engine.db import Base


class ScheduledJob(Base):
    __tablename__ = "scheduled_jobs"

    __table_args__ = (Index("ix_scheduled_jobs_next_run_at", "next_run_at"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    job_key = Column(String(100), nullable=False, unique=True)
    job_type = Column(String(50), nullable=False, default="RESET_BUDGETS")

    # NULL = whichever program is ACTIVE when the job runs
    reward_program_id = Column(Uuid, ForeignKey("reward_programs.id"), nullable=True)

    schedule = Column(JSON, nullable=True)

    active = Column(Boolean, default=True)

    next_run_at = Column(TIMESTAMP, nullable=True)
    last_run_at = Column(TIMESTAMP, nullable=True)

    locked_at = Column(TIMESTAMP, nullable=True)
    locked_by = Column(String(100), nullable=True)

    last_status = Column(String(20), nullable=True)
    last_error = Column(String(2000), nullable=True)

    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())
