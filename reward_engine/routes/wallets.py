from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from reward_engine.db import get_db
from reward_engine.deps.pagination import PageParams, get_page_params
from reward_engine.deps.transaction_filter import get_transaction_filter
from reward_engine.models.enums import WalletRole
from reward_engine.schemas.transaction import Page, PointTransactionOut, TransactionFilter
from reward_engine.schemas.wallet import WalletCreate, WalletOut, WalletReconciliationOut
from reward_engine.services import ledger_service, wallet_service


router = APIRouter(prefix="/wallets", tags=["wallets"])


@router.post("", response_model=WalletOut)
def get_or_create_wallet(payload: WalletCreate, db: Session = Depends(get_db)):
    try:
        wallet = wallet_service.get_or_create_wallet(db, payload.user_id, payload.reward_program_id, role=payload.role)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(wallet)
    return wallet


@router.get("", response_model=Page[WalletOut])
def list_wallets(
    reward_program_id: UUID,
    role: WalletRole | None = None,
    paging: PageParams = Depends(get_page_params),
    db: Session = Depends(get_db),
):
    return wallet_service.list_wallets(
        db,
        reward_program_id,
        role=role,
        page=paging.page,
        page_size=paging.page_size,
    )


@router.get("/{wallet_id}", response_model=WalletOut)
def read_wallet(wallet_id: UUID, db: Session = Depends(get_db)):
    return wallet_service.get_wallet(db, wallet_id)


@router.get("/{wallet_id}/transactions", response_model=Page[PointTransactionOut])
def list_wallet_transactions(
    wallet_id: UUID,
    filter: TransactionFilter = Depends(get_transaction_filter),
    db: Session = Depends(get_db),
):
    return ledger_service.list_by_wallet(db, wallet_id, filter)


@router.get("/{wallet_id}/reconciliation", response_model=WalletReconciliationOut)
def reconcile_wallet(wallet_id: UUID, db: Session = Depends(get_db)):
    stored, derived, ok = ledger_service.reconcile_wallet(db, wallet_id)
    return WalletReconciliationOut(
        wallet_id=wallet_id,
        stored_balance=stored,
        ledger_balance=derived,
        reconciled=ok,
    )
