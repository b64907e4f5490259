from datetime import datetime
from typing import Optional

from uuid import UUID

from pydantic import BaseModel, Field

from reward_engine.models.enums import WalletRole


class WalletCreate(BaseModel):
    user_id: str = Field(min_length=1, max_length=100)
    reward_program_id: UUID
    role: Optional[WalletRole] = None


class WalletOut(BaseModel):
    id: UUID
    user_id: str
    reward_program_id: UUID
    role: WalletRole

    personal_point: int
    manager_giving_budget: int

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class WalletReconciliationOut(BaseModel):
    wallet_id: UUID
    stored_balance: int
    ledger_balance: int
    reconciled: bool
