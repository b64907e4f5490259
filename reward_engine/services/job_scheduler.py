from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from reward_engine.db import SessionLocal, utcnow
from reward_engine.errors import ValidationError
from reward_engine.models.enums import JobType, ProgramStatus
from reward_engine.models.reward_program import RewardProgram
from reward_engine.models.scheduled_job import ScheduledJob
from reward_engine.services.wallet_service import reset_budgets


logger = logging.getLogger(__name__)


@dataclass
class JobRunResult:
    reward_program_id: object | None
    period_key: str | None
    wallets_reset: int
    already_applied: bool


def _as_utc_aware(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=ZoneInfo("UTC"))
    return dt.astimezone(ZoneInfo("UTC"))


def _to_utc_naive(dt: datetime) -> datetime:
    return _as_utc_aware(dt).replace(tzinfo=None)


def validate_schedule(schedule: dict | None) -> dict:
    if not schedule or not isinstance(schedule, dict):
        raise ValidationError("schedule is required")
    if schedule.get("type") != "cron":
        raise ValidationError("Unsupported schedule.type (expected 'cron')")

    cron_expr = schedule.get("cron")
    if not cron_expr or not croniter.is_valid(cron_expr):
        raise ValidationError("schedule.cron must be a valid cron expression")

    try:
        ZoneInfo(schedule.get("timezone") or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError("schedule.timezone is not a known timezone")
    return schedule


def compute_next_run_at_from_schedule(*, base_utc: datetime, schedule: dict | None) -> datetime | None:
    if not schedule or not isinstance(schedule, dict):
        return None
    validate_schedule(schedule)

    tz = ZoneInfo(schedule.get("timezone") or "UTC")
    base_local = _as_utc_aware(base_utc).astimezone(tz)
    it = croniter(schedule["cron"], base_local)
    next_local: datetime = it.get_next(datetime)
    return _to_utc_naive(next_local)


def compute_period_key_from_schedule(*, now_utc: datetime, schedule: dict | None) -> str:
    """
    Identify the schedule window ``now_utc`` falls in.

    The key is the window start (the previous cron fire time) in UTC, so any
    number of runs inside one window reset budgets once.
    """
    if not schedule or not isinstance(schedule, dict) or schedule.get("type") != "cron" or not schedule.get("cron"):
        return f"{now_utc.year:04d}-{now_utc.month:02d}"

    tz = ZoneInfo(schedule.get("timezone") or "UTC")
    now_local = _as_utc_aware(now_utc).astimezone(tz)
    # croniter's get_prev excludes an exact match; step forward a second to include it
    it = croniter(schedule["cron"], now_local + timedelta(seconds=1))
    prev_local: datetime = it.get_prev(datetime)
    return _to_utc_naive(prev_local).isoformat()


def run_job_once(db: Session, *, job: ScheduledJob, now: datetime | None = None) -> JobRunResult:
    if now is None:
        now = utcnow()

    if job.job_type != JobType.RESET_BUDGETS.value:
        raise ValidationError(f"Unsupported job_type: {job.job_type}")

    if job.reward_program_id is not None:
        program_id = job.reward_program_id
    else:
        active = (
            db.query(RewardProgram.id)
            .filter(RewardProgram.status == ProgramStatus.ACTIVE.value)
            .first()
        )
        if not active:
            logger.info("no active reward program; budget reset skipped", extra={"job_id": str(job.id)})
            return JobRunResult(reward_program_id=None, period_key=None, wallets_reset=0, already_applied=False)
        program_id = active[0]

    period_key = compute_period_key_from_schedule(now_utc=now, schedule=job.schedule)
    record, applied = reset_budgets(db, program_id, period_key=period_key)

    return JobRunResult(
        reward_program_id=program_id,
        period_key=period_key,
        wallets_reset=record.wallets_reset if applied else 0,
        already_applied=not applied,
    )


RUNNABLE_JOB_TYPES = tuple(t.value for t in JobType)


def _runnable_jobs(db: Session, *columns):
    return (
        db.query(*(columns or (ScheduledJob,)))
        .filter(ScheduledJob.active.is_(True))
        .filter(ScheduledJob.job_type.in_(RUNNABLE_JOB_TYPES))
        .filter(ScheduledJob.schedule.isnot(None))
        .filter(ScheduledJob.next_run_at.isnot(None))
    )


def claim_due_jobs(
    db: Session,
    *,
    now: datetime,
    worker_id: str,
    batch_size: int = 5,
    lock_ttl_seconds: int = 600,
) -> list[ScheduledJob]:
    """
    Lock up to ``batch_size`` due jobs for ``worker_id`` and commit the locks.

    A job is claimable when it is due and either unlocked or its lock is older
    than ``lock_ttl_seconds``. Each claim is a single conditional UPDATE, so two
    workers racing for the same job cannot both win it, even on SQLite where
    row locks are not available. Jobs of a type this worker cannot run are
    left for a worker that can.
    """
    lock_expired_before = now - timedelta(seconds=int(lock_ttl_seconds))
    claimable = or_(ScheduledJob.locked_at.is_(None), ScheduledJob.locked_at < lock_expired_before)

    candidate_ids = [
        row.id
        for row in _runnable_jobs(db, ScheduledJob.id)
        .filter(ScheduledJob.next_run_at <= now, claimable)
        .order_by(ScheduledJob.next_run_at.asc())
        .limit(batch_size)
    ]

    claimed = []
    for job_id in candidate_ids:
        updated = (
            db.query(ScheduledJob)
            .filter(ScheduledJob.id == job_id, claimable)
            .update({"locked_at": now, "locked_by": worker_id}, synchronize_session=False)
        )
        if updated:
            claimed.append(job_id)
        else:
            logger.debug("scheduled job claimed elsewhere", extra={"job_id": str(job_id), "worker_id": worker_id})
    db.commit()

    if not claimed:
        return []
    return (
        db.query(ScheduledJob)
        .filter(ScheduledJob.id.in_(claimed))
        .order_by(ScheduledJob.next_run_at.asc())
        .all()
    )


def run_due_jobs(
    db: Session,
    *,
    worker_id: str,
    now: datetime | None = None,
    batch_size: int = 5,
    lock_ttl_seconds: int = 600,
) -> int:
    """Claim and run every due job once. Returns how many jobs were run."""
    if now is None:
        now = utcnow()

    jobs = claim_due_jobs(
        db,
        now=now,
        worker_id=worker_id,
        batch_size=batch_size,
        lock_ttl_seconds=lock_ttl_seconds,
    )

    if jobs:
        logger.info("claimed due scheduled jobs", extra={"count": len(jobs), "now": now.isoformat()})

    for job in jobs:
        job_id, job_key, schedule = job.id, job.job_key, job.schedule
        run_now = utcnow()
        try:
            logger.info(
                "running scheduled job",
                extra={"job_id": str(job_id), "job_key": job_key, "run_now": run_now.isoformat()},
            )
            result = run_job_once(db, job=job, now=run_now)

            job = db.query(ScheduledJob).filter(ScheduledJob.id == job_id).one()
            job.last_status = "SUCCESS"
            job.last_error = None
            job.last_run_at = run_now
            job.next_run_at = compute_next_run_at_from_schedule(base_utc=run_now, schedule=schedule)

            logger.info(
                "scheduled job success",
                extra={
                    "job_id": str(job_id),
                    "job_key": job_key,
                    "period_key": result.period_key,
                    "wallets_reset": result.wallets_reset,
                    "already_applied": result.already_applied,
                    "next_run_at": (job.next_run_at.isoformat() if job.next_run_at else None),
                },
            )

        except Exception as e:
            db.rollback()
            job = db.query(ScheduledJob).filter(ScheduledJob.id == job_id).one()
            job.last_status = "FAILED"
            job.last_error = str(e)[:2000]

            # keep moving next_run_at forward to avoid a tight retry loop
            job.next_run_at = compute_next_run_at_from_schedule(base_utc=run_now, schedule=schedule)

            logger.exception(
                "scheduled job failed",
                extra={
                    "job_id": str(job_id),
                    "job_key": job_key,
                    "next_run_at": (job.next_run_at.isoformat() if job.next_run_at else None),
                },
            )

        finally:
            job.locked_at = None
            job.locked_by = None
            db.commit()

    return len(jobs)


@dataclass
class SchedulerSettings:
    worker_id: str
    batch_size: int = 5
    lock_ttl_seconds: int = 600
    idle_sleep_seconds: int = 5
    max_sleep_seconds: int = 30

    @classmethod
    def from_env(cls) -> "SchedulerSettings":
        return cls(
            worker_id=os.getenv("SCHEDULER_WORKER_ID") or os.getenv("HOSTNAME") or "worker",
            batch_size=int(os.getenv("SCHEDULER_BATCH_SIZE") or "5"),
            lock_ttl_seconds=int(os.getenv("SCHEDULER_LOCK_TTL_SECONDS") or "600"),
            idle_sleep_seconds=int(os.getenv("SCHEDULER_IDLE_SLEEP_SECONDS") or "5"),
            max_sleep_seconds=int(os.getenv("SCHEDULER_MAX_SLEEP_SECONDS") or "30"),
        )


def seconds_until_next_job(db: Session, *, now: datetime, settings: SchedulerSettings) -> int:
    """How long an idle worker may sleep, capped at ``max_sleep_seconds``."""
    earliest = (
        _runnable_jobs(db, func.min(ScheduledJob.next_run_at))
        .scalar()
    )
    if earliest is None or earliest <= now:
        return settings.idle_sleep_seconds
    wait = int((earliest - now).total_seconds())
    return min(settings.max_sleep_seconds, max(1, wait))


def run_scheduler_loop(settings: SchedulerSettings | None = None):
    settings = settings or SchedulerSettings.from_env()
    logger.info("budget reset scheduler started", extra={"settings": vars(settings)})

    while True:
        now = utcnow()
        db = SessionLocal()
        try:
            ran = run_due_jobs(
                db,
                worker_id=settings.worker_id,
                now=now,
                batch_size=settings.batch_size,
                lock_ttl_seconds=settings.lock_ttl_seconds,
            )
            pause = 0 if ran else seconds_until_next_job(db, now=now, settings=settings)
        finally:
            db.close()

        if pause:
            logger.debug("scheduler idle", extra={"sleep_seconds": pause, "worker_id": settings.worker_id})
            time.sleep(pause)


def main():
    logging.basicConfig(level=os.getenv("LOG_LEVEL") or "INFO")
    run_scheduler_loop(SchedulerSettings.from_env())


if __name__ == "__main__":
    main()
