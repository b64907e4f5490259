from typing import List

from uuid import UUID

from pydantic import BaseModel


class RedeemLine(BaseModel):
    reward_item_id: UUID
    quantity: int


class RedeemCreate(BaseModel):
    wallet_id: UUID
    items: List[RedeemLine]
