from typing import List, Optional

from uuid import UUID

from pydantic import BaseModel, Field

from reward_engine.models.enums import PolicyType


class AttendanceFactIn(BaseModel):
    employee_id: str = Field(min_length=1, max_length=100)
    reward_program_id: UUID
    policy_type: PolicyType
    # minutes for OVERTIME, day count (or true/false) for NOT_LATE / FULL_ATTENDANCE
    magnitude: int | bool
    period_key: str = Field(min_length=1, max_length=50)


class AccrualOut(BaseModel):
    accrued: bool
    transaction_id: Optional[UUID] = None
    amount: int = 0


class AccrualBatchIn(BaseModel):
    facts: List[AttendanceFactIn]


class AccrualFailureOut(BaseModel):
    index: int
    employee_id: Optional[str] = None
    policy_type: Optional[str] = None
    period_key: Optional[str] = None
    code: str
    message: str
    details: dict = Field(default_factory=dict)

    class Config:
        from_attributes = True


class AccrualBatchOut(BaseModel):
    processed: int
    accrued: int
    skipped: int
    duplicates: int
    failed: int
    transaction_ids: List[UUID] = Field(default_factory=list)
    failures: List[AccrualFailureOut] = Field(default_factory=list)
