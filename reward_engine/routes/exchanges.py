from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from reward_engine.db import get_db
from reward_engine.schemas.exchange import RedeemCreate
from reward_engine.schemas.transaction import PointTransactionOut
from reward_engine.services.exchange_service import redeem


router = APIRouter(prefix="/exchanges", tags=["exchanges"])


@router.post("", response_model=PointTransactionOut, status_code=201)
def create_exchange(payload: RedeemCreate, db: Session = Depends(get_db)):
    return redeem(db, payload.wallet_id, payload.items)
