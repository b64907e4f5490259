from __future__ import annotations

import logging
import os
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from sqlalchemy.exc import IntegrityError as DBIntegrityError
from sqlalchemy.orm import Session

from reward_engine.db import as_uuid
from reward_engine.errors import IntegrityError, RewardEngineError, ValidationError
from reward_engine.models.attendance_fact import AttendanceFact
from reward_engine.models.enums import PolicyType, ProgramStatus, TransactionType
from reward_engine.models.point_transaction import PointTransaction
from reward_engine.models.reward_policy import RewardPolicy
from reward_engine.models.reward_program import RewardProgram
from reward_engine.services.wallet_service import credit, get_or_create_wallet


logger = logging.getLogger(__name__)

ACCRUED = "ACCRUED"
SKIPPED = "SKIPPED"
DUPLICATE = "DUPLICATE"


@dataclass
class AccrualOutcome:
    status: str
    transaction: PointTransaction | None = None


@dataclass
class AccrualFailure:
    index: int
    employee_id: str | None
    policy_type: str | None
    period_key: str | None
    code: str
    message: str
    details: dict = field(default_factory=dict)


@dataclass
class AccrualBatchStats:
    processed: int = 0
    accrued: int = 0
    skipped: int = 0
    duplicates: int = 0
    failed: int = 0
    transaction_ids: list = field(default_factory=list)
    failures: list = field(default_factory=list)

    def merge(self, other: "AccrualBatchStats") -> None:
        self.processed += other.processed
        self.accrued += other.accrued
        self.skipped += other.skipped
        self.duplicates += other.duplicates
        self.failed += other.failed
        self.transaction_ids.extend(other.transaction_ids)
        self.failures.extend(other.failures)


class _DuplicateFact(Exception):
    pass


def _field(fact, name):
    if isinstance(fact, dict):
        return fact.get(name)
    return getattr(fact, name, None)


def _magnitude(value) -> int:
    # NOT_LATE / FULL_ATTENDANCE facts may arrive as booleans
    if isinstance(value, bool):
        return 1 if value else 0
    if not isinstance(value, int):
        raise ValidationError("magnitude must be an integer or a boolean")
    if value < 0:
        raise ValidationError("magnitude must be >= 0")
    return value


def compute_accrual(policy: RewardPolicy, magnitude: int) -> tuple[int, int]:
    """Return (units, points); partial units never round up."""
    units = magnitude // int(policy.unit_value)
    if units < 1:
        return 0, 0
    return units, units * int(policy.points_per_unit)


def _accrue(db: Session, fact, program_id) -> AccrualOutcome:
    employee_id = (_field(fact, "employee_id") or "").strip()
    period_key = (_field(fact, "period_key") or "").strip()
    if not employee_id:
        raise ValidationError("employee_id is required")
    if not period_key:
        raise ValidationError("period_key is required")
    try:
        policy_type = PolicyType(_field(fact, "policy_type"))
    except ValueError:
        raise ValidationError(f"Unknown policy type: {_field(fact, 'policy_type')}")
    magnitude = _magnitude(_field(fact, "magnitude"))

    program = db.query(RewardProgram).filter(RewardProgram.id == program_id).first()
    if not program:
        raise IntegrityError("Reward program not found", reward_program_id=str(program_id))

    if program.status != ProgramStatus.ACTIVE.value:
        logger.debug(
            "attendance fact ignored, program not active",
            extra={"reward_program_id": str(program.id), "employee_id": employee_id},
        )
        return AccrualOutcome(SKIPPED)

    already = (
        db.query(AttendanceFact.id)
        .filter(
            AttendanceFact.employee_id == employee_id,
            AttendanceFact.reward_program_id == program.id,
            AttendanceFact.policy_type == policy_type.value,
            AttendanceFact.period_key == period_key,
        )
        .first()
    )
    if already:
        raise _DuplicateFact()

    recorded = AttendanceFact(
        employee_id=employee_id,
        reward_program_id=program.id,
        policy_type=policy_type.value,
        period_key=period_key,
        magnitude=magnitude,
    )
    db.add(recorded)
    try:
        db.flush()
    except DBIntegrityError:
        raise _DuplicateFact()

    policy = (
        db.query(RewardPolicy)
        .filter(RewardPolicy.reward_program_id == program.id, RewardPolicy.policy_type == policy_type.value)
        .first()
    )
    if not policy:
        return AccrualOutcome(SKIPPED)

    units, points = compute_accrual(policy, magnitude)
    if points <= 0:
        return AccrualOutcome(SKIPPED)

    wallet = get_or_create_wallet(db, employee_id, program.id)
    transaction = credit(
        db,
        wallet.id,
        points,
        TransactionType.POLICY_REWARD,
        policy_id=policy.id,
        policy_type=policy.policy_type,
        unit_value=policy.unit_value,
        points_per_unit=policy.points_per_unit,
        units=units,
        attendance_fact_id=recorded.id,
    )
    recorded.point_transaction_id = transaction.id
    db.flush()

    return AccrualOutcome(ACCRUED, transaction)


def accrue_with_outcome(db: Session, fact, program_id=None) -> AccrualOutcome:
    program_id = as_uuid(program_id or _field(fact, "reward_program_id"), "reward_program_id")

    try:
        outcome = _accrue(db, fact, program_id)
        db.commit()
    except _DuplicateFact:
        db.rollback()
        logger.info(
            "duplicate attendance fact ignored",
            extra={
                "employee_id": _field(fact, "employee_id"),
                "reward_program_id": str(program_id),
                "policy_type": str(_field(fact, "policy_type")),
                "period_key": _field(fact, "period_key"),
            },
        )
        return AccrualOutcome(DUPLICATE)
    except Exception:
        db.rollback()
        raise

    if outcome.transaction is not None:
        logger.info(
            "policy reward accrued",
            extra={
                "transaction_id": str(outcome.transaction.id),
                "employee_id": _field(fact, "employee_id"),
                "amount": outcome.transaction.amount,
            },
        )
    return outcome


# ============================================================
# ACCRUE (single fact)
# ============================================================
def accrue(db: Session, fact, program_id=None) -> PointTransaction | None:
    """
    Turn one finalized attendance fact into a POLICY_REWARD transaction.

    Returns ``None`` when no accrual applies: the program is not ACTIVE, it
    has no policy for the fact's type, the magnitude is below one unit, or
    the fact was already submitted for the same period.
    """
    return accrue_with_outcome(db, fact, program_id).transaction


# ============================================================
# ACCRUE BATCH (parallel across employees, serial per employee)
# ============================================================
def _failure(index: int, fact, code: str, message: str, details: dict | None = None) -> AccrualFailure:
    policy_type = _field(fact, "policy_type")
    return AccrualFailure(
        index=index,
        employee_id=_field(fact, "employee_id"),
        policy_type=getattr(policy_type, "value", policy_type),
        period_key=_field(fact, "period_key"),
        code=code,
        message=message,
        details=details or {},
    )


def _run_group(session_factory, indexed_facts) -> AccrualBatchStats:
    stats = AccrualBatchStats()
    db = session_factory()
    try:
        for index, fact in indexed_facts:
            stats.processed += 1
            try:
                outcome = accrue_with_outcome(db, fact)
            except RewardEngineError as e:
                stats.failed += 1
                stats.failures.append(_failure(index, fact, e.code, e.message, e.details))
                logger.warning(
                    "attendance fact rejected",
                    extra={
                        "index": index,
                        "code": e.code,
                        "employee_id": _field(fact, "employee_id"),
                        "period_key": _field(fact, "period_key"),
                    },
                )
                continue
            except Exception as e:
                stats.failed += 1
                stats.failures.append(_failure(index, fact, "INTERNAL_ERROR", str(e)))
                logger.exception(
                    "attendance fact failed",
                    extra={
                        "index": index,
                        "employee_id": _field(fact, "employee_id"),
                        "period_key": _field(fact, "period_key"),
                    },
                )
                continue

            if outcome.status == ACCRUED:
                stats.accrued += 1
                stats.transaction_ids.append(outcome.transaction.id)
            elif outcome.status == DUPLICATE:
                stats.duplicates += 1
            else:
                stats.skipped += 1
    finally:
        db.close()
    return stats


def accrue_batch(facts, *, session_factory=None, max_workers: int | None = None) -> AccrualBatchStats:
    if session_factory is None:
        from reward_engine.db import SessionLocal

        session_factory = SessionLocal
    if max_workers is None:
        max_workers = int(os.getenv("ACCRUAL_MAX_WORKERS") or "4")

    groups: OrderedDict[str, list] = OrderedDict()
    for index, fact in enumerate(facts):
        groups.setdefault(str(_field(fact, "employee_id") or ""), []).append((index, fact))

    total = AccrualBatchStats()
    if not groups:
        return total

    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(groups)))) as pool:
        for stats in pool.map(lambda group: _run_group(session_factory, group), groups.values()):
            total.merge(stats)
    total.failures.sort(key=lambda f: f.index)

    logger.info(
        "attendance batch processed",
        extra={
            "processed": total.processed,
            "accrued": total.accrued,
            "skipped": total.skipped,
            "duplicates": total.duplicates,
            "failed": total.failed,
        },
    )
    return total
