from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from reward_engine.db import get_db
from reward_engine.deps.transaction_filter import get_transaction_filter
from reward_engine.schemas.transaction import Page, PointTransactionOut, TransactionFilter
from reward_engine.services import ledger_service


router = APIRouter(tags=["transactions"])


@router.get("/reward-programs/{program_id}/transactions", response_model=Page[PointTransactionOut])
def list_program_transactions(
    program_id: UUID,
    filter: TransactionFilter = Depends(get_transaction_filter),
    db: Session = Depends(get_db),
):
    return ledger_service.list_by_program(db, program_id, filter)


@router.get("/transactions/{transaction_id}", response_model=PointTransactionOut)
def get_transaction(transaction_id: UUID, db: Session = Depends(get_db)):
    return ledger_service.get_transaction(db, transaction_id)
