from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from reward_engine.db import SessionLocal, get_db
from reward_engine.schemas.attendance import (
    AccrualBatchIn,
    AccrualBatchOut,
    AccrualFailureOut,
    AccrualOut,
    AttendanceFactIn,
)
from reward_engine.services.policy_engine import accrue_batch, accrue_with_outcome


router = APIRouter(prefix="/attendance-facts", tags=["attendance"])


def get_session_factory():
    return SessionLocal


@router.post("", response_model=AccrualOut)
def submit_attendance_fact(fact: AttendanceFactIn, db: Session = Depends(get_db)):
    outcome = accrue_with_outcome(db, fact)
    tx = outcome.transaction
    return AccrualOut(
        accrued=tx is not None,
        transaction_id=tx.id if tx is not None else None,
        amount=tx.amount if tx is not None else 0,
    )


@router.post("/batch", response_model=AccrualBatchOut)
def submit_attendance_batch(payload: AccrualBatchIn, session_factory=Depends(get_session_factory)):
    stats = accrue_batch(payload.facts, session_factory=session_factory)
    return AccrualBatchOut(
        processed=stats.processed,
        accrued=stats.accrued,
        skipped=stats.skipped,
        duplicates=stats.duplicates,
        failed=stats.failed,
        transaction_ids=stats.transaction_ids,
        failures=[AccrualFailureOut.model_validate(f) for f in stats.failures],
    )
