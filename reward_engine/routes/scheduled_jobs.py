from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from reward_engine.db import get_db, utcnow
from reward_engine.models.scheduled_job import ScheduledJob
from reward_engine.schemas.scheduled_job import (
    ScheduledJobCreate,
    ScheduledJobOut,
    ScheduledJobRunOut,
    ScheduledJobUpdate,
)
from reward_engine.services.job_scheduler import (
    compute_next_run_at_from_schedule,
    run_job_once,
    validate_schedule,
)
from reward_engine.services.program_service import get_program


router = APIRouter(prefix="/admin/scheduled-jobs", tags=["admin-scheduled-jobs"])


def _get_job(db: Session, job_id: UUID) -> ScheduledJob:
    job = db.query(ScheduledJob).filter(ScheduledJob.id == job_id).first()
    if not job:
        raise HTTPException(status_code=404, detail="Scheduled job not found")
    return job


@router.get("", response_model=list[ScheduledJobOut])
def list_scheduled_jobs(active: bool | None = None, db: Session = Depends(get_db)):
    q = db.query(ScheduledJob)
    if active is not None:
        q = q.filter(ScheduledJob.active.is_(active))
    return q.order_by(ScheduledJob.created_at.desc()).all()


@router.post("", response_model=ScheduledJobOut, status_code=201)
def create_scheduled_job(payload: ScheduledJobCreate, db: Session = Depends(get_db)):
    schedule = validate_schedule(payload.schedule)
    if payload.reward_program_id is not None:
        get_program(db, payload.reward_program_id)

    if db.query(ScheduledJob.id).filter(ScheduledJob.job_key == payload.job_key).first():
        raise HTTPException(status_code=400, detail="job_key already exists")

    job = ScheduledJob(
        job_key=payload.job_key,
        job_type=payload.job_type.value,
        reward_program_id=payload.reward_program_id,
        schedule=schedule,
        active=payload.active,
    )
    if payload.active:
        job.next_run_at = compute_next_run_at_from_schedule(base_utc=utcnow(), schedule=schedule)

    db.add(job)
    db.commit()
    db.refresh(job)
    return job


@router.get("/{job_id}", response_model=ScheduledJobOut)
def get_scheduled_job(job_id: UUID, db: Session = Depends(get_db)):
    return _get_job(db, job_id)


@router.patch("/{job_id}", response_model=ScheduledJobOut)
def update_scheduled_job(job_id: UUID, payload: ScheduledJobUpdate, db: Session = Depends(get_db)):
    job = _get_job(db, job_id)
    data = payload.model_dump(exclude_unset=True)

    if data.get("schedule") is not None:
        validate_schedule(data["schedule"])
    if data.get("reward_program_id") is not None:
        get_program(db, data["reward_program_id"])

    for k, v in data.items():
        setattr(job, k, v)

    if "schedule" in data or "active" in data:
        if job.active and job.schedule:
            job.next_run_at = compute_next_run_at_from_schedule(base_utc=utcnow(), schedule=job.schedule)
        else:
            job.next_run_at = None

    db.commit()
    db.refresh(job)
    return job


@router.delete("/{job_id}")
def delete_scheduled_job(job_id: UUID, db: Session = Depends(get_db)):
    job = _get_job(db, job_id)
    db.delete(job)
    db.commit()
    return {"deleted": True}


@router.post("/{job_id}/run", response_model=ScheduledJobRunOut)
def run_scheduled_job(job_id: UUID, db: Session = Depends(get_db)):
    job = _get_job(db, job_id)
    if not job.active:
        raise HTTPException(status_code=400, detail="Scheduled job is inactive")

    now = utcnow()
    schedule = job.schedule
    try:
        result = run_job_once(db, job=job, now=now)
        job = _get_job(db, job_id)
        job.last_status = "SUCCESS"
        job.last_error = None
    except Exception as e:
        db.rollback()
        job = _get_job(db, job_id)
        job.last_status = "FAILED"
        job.last_error = str(e)[:2000]
        raise
    finally:
        job.last_run_at = now
        job.next_run_at = compute_next_run_at_from_schedule(base_utc=now, schedule=schedule)
        db.commit()

    return ScheduledJobRunOut(
        job_id=job_id,
        reward_program_id=result.reward_program_id,
        period_key=result.period_key,
        wallets_reset=result.wallets_reset,
        already_applied=result.already_applied,
    )
