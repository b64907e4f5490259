from datetime import datetime
from typing import Any, Dict, Optional

from uuid import UUID

from pydantic import BaseModel, Field

from reward_engine.models.enums import JobType


class ScheduledJobCreate(BaseModel):
    job_key: str = Field(min_length=1, max_length=100)
    job_type: JobType = JobType.RESET_BUDGETS
    reward_program_id: Optional[UUID] = None

    # {"type": "cron", "cron": "0 0 1 * *", "timezone": "UTC"}
    schedule: Dict[str, Any]

    active: bool = True


class ScheduledJobUpdate(BaseModel):
    reward_program_id: Optional[UUID] = None
    schedule: Optional[Dict[str, Any]] = None
    active: Optional[bool] = None


class ScheduledJobOut(BaseModel):
    id: UUID
    job_key: str
    job_type: str
    reward_program_id: Optional[UUID] = None
    schedule: Optional[Dict[str, Any]] = None
    active: bool

    next_run_at: Optional[datetime] = None
    last_run_at: Optional[datetime] = None
    last_status: Optional[str] = None
    last_error: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ScheduledJobRunOut(BaseModel):
    job_id: UUID
    reward_program_id: Optional[UUID] = None
    period_key: Optional[str] = None
    wallets_reset: int = 0
    already_applied: bool = False
