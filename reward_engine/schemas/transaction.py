from datetime import datetime
from typing import Generic, List, Literal, Optional, TypeVar

from uuid import UUID

from pydantic import BaseModel, Field

from reward_engine.models.enums import TransactionType


T = TypeVar("T")


class TransactionLineItemOut(BaseModel):
    reward_item_id: UUID
    reward_item_name: Optional[str] = None
    quantity: int
    unit_points: int
    total_points: int

    class Config:
        from_attributes = True


class PointTransactionOut(BaseModel):
    id: UUID
    type: TransactionType
    amount: int

    reward_program_id: UUID
    source_wallet_id: Optional[UUID] = None
    destination_wallet_id: Optional[UUID] = None

    reason: Optional[str] = None

    policy_id: Optional[UUID] = None
    policy_type: Optional[str] = None
    unit_value: Optional[int] = None
    points_per_unit: Optional[int] = None
    units: Optional[int] = None

    created_at: Optional[datetime] = None

    line_items: List[TransactionLineItemOut] = Field(default_factory=list)

    class Config:
        from_attributes = True


class TransactionFilter(BaseModel):
    type: Optional[TransactionType] = None
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, ge=1, le=200)
    sort_direction: Literal["ASC", "DESC"] = "DESC"


class Page(BaseModel, Generic[T]):
    items: List[T]
    total_items: int
    page: int
    page_size: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool

    @classmethod
    def build(cls, items, *, total_items: int, page: int, page_size: int):
        total_pages = max(1, -(-total_items // page_size))
        return cls(
            items=items,
            total_items=total_items,
            page=page,
            page_size=page_size,
            total_pages=total_pages,
            has_next_page=page < total_pages,
            has_previous_page=page > 1,
        )
