from datetime import datetime
from typing import List, Optional

from uuid import UUID

from pydantic import BaseModel, Field

from reward_engine.models.enums import PolicyType, ProgramStatus


class RewardPolicyCreate(BaseModel):
    policy_type: PolicyType
    unit_value: int = Field(ge=1)
    points_per_unit: int = Field(ge=0)


class RewardPolicyUpdate(BaseModel):
    unit_value: Optional[int] = Field(default=None, ge=1)
    points_per_unit: Optional[int] = Field(default=None, ge=0)


class RewardPolicyOut(BaseModel):
    id: UUID
    reward_program_id: UUID
    policy_type: PolicyType
    unit_value: int
    points_per_unit: int
    position: int

    class Config:
        from_attributes = True


class RewardItemCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    required_points: int = Field(ge=0)
    # -1 = unlimited
    quantity: int = Field(default=-1, ge=-1)
    image_url: Optional[str] = None


class RewardItemUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    required_points: Optional[int] = Field(default=None, ge=0)
    quantity: Optional[int] = Field(default=None, ge=-1)
    image_url: Optional[str] = None


class RewardItemOut(BaseModel):
    id: UUID
    reward_program_id: UUID
    name: str
    required_points: int
    quantity: int
    unlimited: bool = False
    image_url: Optional[str] = None
    position: int

    class Config:
        from_attributes = True


class RewardProgramCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None

    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    # PENDING or ACTIVE; ACTIVE goes through activation
    status: ProgramStatus = ProgramStatus.PENDING

    default_giving_budget: int = Field(default=0, ge=0)
    banner_url: Optional[str] = None

    policies: List[RewardPolicyCreate] = Field(default_factory=list)
    items: List[RewardItemCreate] = Field(default_factory=list)


class RewardProgramUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None

    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    default_giving_budget: Optional[int] = Field(default=None, ge=0)
    banner_url: Optional[str] = None


class RewardProgramOut(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None

    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    status: ProgramStatus
    default_giving_budget: int
    banner_url: Optional[str] = None

    activated_at: Optional[datetime] = None
    deactivated_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RewardProgramDetailOut(RewardProgramOut):
    policies: List[RewardPolicyOut] = Field(default_factory=list)
    items: List[RewardItemOut] = Field(default_factory=list)
