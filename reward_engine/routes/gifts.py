from uuid import UUID
from typing import Literal

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from reward_engine.db import get_db, utcnow
from reward_engine.deps.pagination import PageParams, get_page_params
from reward_engine.schemas.gift import GiftCreate, GiftOut, GiftedPointStatOut
from reward_engine.schemas.transaction import Page, PointTransactionOut
from reward_engine.services import ledger_service
from reward_engine.services.wallet_service import gift_points, period_key_for


router = APIRouter(prefix="/gifts", tags=["gifts"])


@router.post("", response_model=GiftOut, status_code=201)
def create_gift(payload: GiftCreate, db: Session = Depends(get_db)):
    result = gift_points(db, payload.manager_wallet_id, payload.recipients, reason=payload.reason)
    return GiftOut(
        transactions=[PointTransactionOut.model_validate(tx) for tx in result.transactions],
        total_points_deducted=result.total_points_deducted,
        remaining_budget=result.remaining_budget,
    )


@router.get("/stats", response_model=Page[GiftedPointStatOut])
def gifted_point_stats(
    manager_wallet_id: UUID,
    month: str | None = None,
    keyword: str | None = None,
    sort_direction: Literal["ASC", "DESC"] = "DESC",
    paging: PageParams = Depends(get_page_params),
    db: Session = Depends(get_db),
):
    return ledger_service.gifted_point_stats(
        db,
        manager_wallet_id,
        month=month or period_key_for(utcnow()),
        keyword=keyword,
        page=paging.page,
        page_size=paging.page_size,
        sort_direction=sort_direction,
    )
