from datetime import datetime
from typing import Optional

from uuid import UUID

from pydantic import BaseModel, Field


class BudgetResetCreate(BaseModel):
    # YYYY-MM; defaults to the current month
    period_key: Optional[str] = Field(default=None, min_length=1, max_length=50)


class BudgetResetOut(BaseModel):
    id: UUID
    reward_program_id: UUID
    period_key: str
    budget: int
    wallets_reset: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
