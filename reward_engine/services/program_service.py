import logging

from sqlalchemy.exc import IntegrityError as DBIntegrityError
from sqlalchemy.orm import Session, selectinload

from reward_engine.db import as_uuid, utcnow
from reward_engine.errors import ConcurrencyConflictError, IntegrityError, ValidationError
from reward_engine.models.enums import ProgramStatus
from reward_engine.models.point_transaction import PointTransaction
from reward_engine.models.reward_item import RewardItem
from reward_engine.models.reward_policy import RewardPolicy
from reward_engine.models.reward_program import RewardProgram
from reward_engine.schemas.program import (
    RewardItemCreate,
    RewardItemUpdate,
    RewardPolicyCreate,
    RewardPolicyUpdate,
    RewardProgramCreate,
    RewardProgramOut,
    RewardProgramUpdate,
)
from reward_engine.schemas.transaction import Page


logger = logging.getLogger(__name__)


def _commit(db: Session) -> None:
    try:
        db.commit()
    except DBIntegrityError as e:
        db.rollback()
        raise ConcurrencyConflictError("A concurrent change conflicted with this one", error=str(e.orig))


def _validate_dates(start_date, end_date) -> None:
    if start_date and end_date and end_date < start_date:
        raise ValidationError("end_date must not precede start_date")


def _ensure_editable(program: RewardProgram) -> None:
    if program.status == ProgramStatus.INACTIVE.value:
        raise ValidationError("Inactive reward programs are read-only", reward_program_id=str(program.id))


def _policy_has_accrued(db: Session, policy_id) -> bool:
    return db.query(PointTransaction.id).filter(PointTransaction.policy_id == policy_id).first() is not None


# ============================================================
# READS
# ============================================================
def get_program(db: Session, program_id, *, for_update: bool = False) -> RewardProgram:
    program_id = as_uuid(program_id, "reward_program_id")
    q = db.query(RewardProgram).filter(RewardProgram.id == program_id)
    if for_update:
        q = q.with_for_update()
    program = q.first()
    if not program:
        raise IntegrityError("Reward program not found", reward_program_id=str(program_id))
    return program


def get_active_program(db: Session) -> RewardProgram | None:
    return (
        db.query(RewardProgram)
        .options(selectinload(RewardProgram.policies), selectinload(RewardProgram.items))
        .filter(RewardProgram.status == ProgramStatus.ACTIVE.value)
        .first()
    )


def list_programs(
    db: Session,
    *,
    status: ProgramStatus | None = None,
    keyword: str | None = None,
    page: int = 1,
    page_size: int = 10,
    sort_direction: str = "DESC",
) -> Page[RewardProgramOut]:
    q = db.query(RewardProgram)
    if status is not None:
        q = q.filter(RewardProgram.status == ProgramStatus(status).value)
    if keyword and keyword.strip():
        q = q.filter(RewardProgram.name.ilike(f"%{keyword.strip()}%"))

    total = q.count()
    start = RewardProgram.start_date.asc() if sort_direction == "ASC" else RewardProgram.start_date.desc()
    rows = (
        q.order_by(
            # undated programs sort last in either direction
            RewardProgram.start_date.is_(None),
            start,
            RewardProgram.created_at.desc(),
            RewardProgram.name.asc(),
        )
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return Page[RewardProgramOut].build(
        [RewardProgramOut.model_validate(p) for p in rows],
        total_items=total,
        page=page,
        page_size=page_size,
    )


def list_items(db: Session, program_id) -> list[RewardItem]:
    program = get_program(db, program_id)
    return (
        db.query(RewardItem)
        .filter(RewardItem.reward_program_id == program.id)
        .order_by(RewardItem.position.asc())
        .all()
    )


# ============================================================
# LIFECYCLE: PENDING -> ACTIVE -> INACTIVE, PENDING -> INACTIVE
# ============================================================
def _activate(db: Session, program: RewardProgram) -> None:
    now = utcnow()

    current = (
        db.query(RewardProgram)
        .filter(RewardProgram.status == ProgramStatus.ACTIVE.value)
        .with_for_update()
        .all()
    )
    for other in current:
        if other.id == program.id:
            continue
        other.status = ProgramStatus.INACTIVE.value
        other.deactivated_at = now
        logger.info(
            "reward program deactivated by activation",
            extra={"reward_program_id": str(other.id), "replaced_by": str(program.id)},
        )
    # the previous ACTIVE row must be gone before the new one appears
    db.flush()

    program.status = ProgramStatus.ACTIVE.value
    program.activated_at = now
    try:
        db.flush()
    except DBIntegrityError:
        raise ConcurrencyConflictError(
            "Another reward program was activated concurrently",
            reward_program_id=str(program.id),
        )


def activate(db: Session, program_id) -> RewardProgram:
    try:
        program = get_program(db, program_id, for_update=True)
        if program.status == ProgramStatus.ACTIVE.value:
            return program
        if program.status == ProgramStatus.INACTIVE.value:
            raise ValidationError("An INACTIVE reward program cannot be activated again", reward_program_id=str(program.id))

        _activate(db, program)
        _commit(db)
    except Exception:
        db.rollback()
        raise

    logger.info("reward program activated", extra={"reward_program_id": str(program.id)})
    return program


def deactivate(db: Session, program_id) -> RewardProgram:
    try:
        program = get_program(db, program_id, for_update=True)
        if program.status == ProgramStatus.INACTIVE.value:
            raise ValidationError("Reward program is already INACTIVE", reward_program_id=str(program.id))

        program.status = ProgramStatus.INACTIVE.value
        program.deactivated_at = utcnow()
        _commit(db)
    except Exception:
        db.rollback()
        raise

    logger.info("reward program deactivated", extra={"reward_program_id": str(program.id)})
    return program


# ============================================================
# CREATE / UPDATE
# ============================================================
def _check_unique_policy_types(policies) -> None:
    seen = set()
    for p in policies:
        if p.policy_type in seen:
            raise ValidationError("Only one policy per policy_type is allowed", policy_type=p.policy_type.value)
        seen.add(p.policy_type)


def create_program(db: Session, payload: RewardProgramCreate) -> RewardProgram:
    if payload.status == ProgramStatus.INACTIVE:
        raise ValidationError("Reward programs are created PENDING or ACTIVE")
    _validate_dates(payload.start_date, payload.end_date)
    _check_unique_policy_types(payload.policies)

    program = RewardProgram(
        name=payload.name.strip(),
        description=payload.description,
        start_date=payload.start_date,
        end_date=payload.end_date,
        status=ProgramStatus.PENDING.value,
        default_giving_budget=payload.default_giving_budget,
        banner_url=payload.banner_url,
    )
    program.policies = [
        RewardPolicy(
            policy_type=p.policy_type.value,
            unit_value=p.unit_value,
            points_per_unit=p.points_per_unit,
            position=i,
        )
        for i, p in enumerate(payload.policies)
    ]
    program.items = [
        RewardItem(
            name=item.name.strip(),
            required_points=item.required_points,
            quantity=item.quantity,
            image_url=item.image_url,
            position=i,
        )
        for i, item in enumerate(payload.items)
    ]

    try:
        db.add(program)
        db.flush()
        if payload.status == ProgramStatus.ACTIVE:
            _activate(db, program)
        _commit(db)
    except Exception:
        db.rollback()
        raise

    logger.info(
        "reward program created",
        extra={"reward_program_id": str(program.id), "status": program.status},
    )
    return program


def update_program(db: Session, program_id, payload: RewardProgramUpdate) -> RewardProgram:
    try:
        program = get_program(db, program_id, for_update=True)
        _ensure_editable(program)

        data = payload.model_dump(exclude_unset=True)
        if "name" in data and data["name"] is None:
            raise ValidationError("name cannot be null")
        if "default_giving_budget" in data and data["default_giving_budget"] is None:
            raise ValidationError("default_giving_budget cannot be null")

        _validate_dates(data.get("start_date", program.start_date), data.get("end_date", program.end_date))

        for k, v in data.items():
            setattr(program, k, v)
        _commit(db)
    except Exception:
        db.rollback()
        raise
    return program


def add_policy(db: Session, program_id, payload: RewardPolicyCreate) -> RewardPolicy:
    try:
        program = get_program(db, program_id, for_update=True)
        _ensure_editable(program)

        existing = (
            db.query(RewardPolicy.id)
            .filter(RewardPolicy.reward_program_id == program.id, RewardPolicy.policy_type == payload.policy_type.value)
            .first()
        )
        if existing:
            raise ValidationError("Only one policy per policy_type is allowed", policy_type=payload.policy_type.value)

        position = db.query(RewardPolicy).filter(RewardPolicy.reward_program_id == program.id).count()
        policy = RewardPolicy(
            reward_program_id=program.id,
            policy_type=payload.policy_type.value,
            unit_value=payload.unit_value,
            points_per_unit=payload.points_per_unit,
            position=position,
        )
        db.add(policy)
        _commit(db)
    except Exception:
        db.rollback()
        raise
    return policy


def update_policy(db: Session, program_id, policy_id, payload: RewardPolicyUpdate) -> RewardPolicy:
    """
    Edit a policy's unit_value / points_per_unit.

    Once points have accrued under a policy it is frozen, so accrued
    transactions always match the policy that produced them.
    """
    try:
        program = get_program(db, program_id, for_update=True)
        _ensure_editable(program)

        policy_id = as_uuid(policy_id, "policy_id")
        policy = (
            db.query(RewardPolicy)
            .filter(RewardPolicy.id == policy_id, RewardPolicy.reward_program_id == program.id)
            .first()
        )
        if not policy:
            raise IntegrityError("Reward policy not found", policy_id=str(policy_id))
        if _policy_has_accrued(db, policy.id):
            raise ValidationError("Policy has accrued points and can no longer be edited", policy_id=str(policy.id))

        data = payload.model_dump(exclude_unset=True)
        for k, v in data.items():
            if v is None:
                raise ValidationError(f"{k} cannot be null")
            setattr(policy, k, v)
        _commit(db)
    except Exception:
        db.rollback()
        raise
    return policy


def add_item(db: Session, program_id, payload: RewardItemCreate) -> RewardItem:
    try:
        program = get_program(db, program_id, for_update=True)
        _ensure_editable(program)

        position = db.query(RewardItem).filter(RewardItem.reward_program_id == program.id).count()
        item = RewardItem(
            reward_program_id=program.id,
            name=payload.name.strip(),
            required_points=payload.required_points,
            quantity=payload.quantity,
            image_url=payload.image_url,
            position=position,
        )
        db.add(item)
        _commit(db)
    except Exception:
        db.rollback()
        raise
    return item


def update_item(db: Session, program_id, item_id, payload: RewardItemUpdate) -> RewardItem:
    try:
        program = get_program(db, program_id)
        _ensure_editable(program)

        item_id = as_uuid(item_id, "reward_item_id")
        item = (
            db.query(RewardItem)
            .filter(RewardItem.id == item_id, RewardItem.reward_program_id == program.id)
            .with_for_update()
            .first()
        )
        if not item:
            raise IntegrityError("Reward item not found", reward_item_id=str(item_id))

        data = payload.model_dump(exclude_unset=True)
        for k, v in data.items():
            if v is None and k != "image_url":
                raise ValidationError(f"{k} cannot be null")
            setattr(item, k, v)
        _commit(db)
    except Exception:
        db.rollback()
        raise
    return item
