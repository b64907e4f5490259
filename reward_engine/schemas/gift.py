from typing import List, Optional

from uuid import UUID

from pydantic import BaseModel, Field

from reward_engine.schemas.transaction import PointTransactionOut


class GiftRecipient(BaseModel):
    employee_id: str = Field(min_length=1, max_length=100)
    amount: int


class GiftCreate(BaseModel):
    manager_wallet_id: UUID
    recipients: List[GiftRecipient]
    reason: Optional[str] = Field(default=None, max_length=500)


class GiftOut(BaseModel):
    transactions: List[PointTransactionOut]
    total_points_deducted: int
    remaining_budget: int


class GiftedPointStatOut(BaseModel):
    employee_id: str
    wallet_id: UUID
    total_points: int
    gift_count: int
