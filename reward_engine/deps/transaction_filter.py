from datetime import datetime
from typing import Literal

from reward_engine.deps.pagination import get_page_params
from reward_engine.models.enums import TransactionType
from reward_engine.schemas.transaction import TransactionFilter


def get_transaction_filter(
    type: TransactionType | None = None,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    sort_direction: Literal["ASC", "DESC"] = "DESC",
    page: int = 1,
    page_size: int = 10,
) -> TransactionFilter:
    paging = get_page_params(page, page_size)
    return TransactionFilter(
        type=type,
        from_date=from_date,
        to_date=to_date,
        sort_direction=sort_direction,
        page=paging.page,
        page_size=paging.page_size,
    )
