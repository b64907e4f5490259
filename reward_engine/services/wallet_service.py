import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.exc import IntegrityError as DBIntegrityError
from sqlalchemy.orm import Session

from reward_engine.db import as_uuid, utcnow
from reward_engine.errors import (
    ConcurrencyConflictError,
    InsufficientBalanceError,
    InsufficientBudgetError,
    IntegrityError,
    ValidationError,
)
from reward_engine.models.budget_reset import BudgetReset
from reward_engine.models.enums import ProgramStatus, TransactionType, WalletRole
from reward_engine.models.point_transaction import PointTransaction
from reward_engine.models.reward_program import RewardProgram
from reward_engine.models.user_wallet import UserWallet
from reward_engine.schemas.transaction import Page
from reward_engine.schemas.wallet import WalletOut
from reward_engine.services.ledger_service import append_transaction


logger = logging.getLogger(__name__)


@dataclass
class GiftResult:
    transactions: list[PointTransaction] = field(default_factory=list)
    total_points_deducted: int = 0
    remaining_budget: int = 0


def _check_amount(amount, *, allow_zero: bool = False) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError("amount must be an integer")
    if amount < 0 or (amount == 0 and not allow_zero):
        raise ValidationError("amount must be >= 0" if allow_zero else "amount must be > 0")
    return amount


def _get_program(db: Session, program_id) -> RewardProgram:
    program_id = as_uuid(program_id, "reward_program_id")
    program = db.query(RewardProgram).filter(RewardProgram.id == program_id).first()
    if not program:
        raise IntegrityError("Reward program not found", reward_program_id=str(program_id))
    return program


def get_wallet(db: Session, wallet_id) -> UserWallet:
    wallet_id = as_uuid(wallet_id, "wallet_id")
    wallet = db.query(UserWallet).filter(UserWallet.id == wallet_id).first()
    if not wallet:
        raise IntegrityError("Wallet not found", wallet_id=str(wallet_id))
    return wallet


def list_wallets(
    db: Session,
    program_id,
    *,
    role: WalletRole | None = None,
    page: int = 1,
    page_size: int = 50,
) -> Page[WalletOut]:
    program = _get_program(db, program_id)

    q = db.query(UserWallet).filter(UserWallet.reward_program_id == program.id)
    if role is not None:
        q = q.filter(UserWallet.role == WalletRole(role).value)

    total = q.count()
    rows = (
        q.order_by(UserWallet.user_id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return Page[WalletOut].build(
        [WalletOut.model_validate(w) for w in rows],
        total_items=total,
        page=page,
        page_size=page_size,
    )


# ============================================================
# GET OR CREATE (lazy, one wallet per user and program)
# ============================================================
def get_or_create_wallet(db: Session, user_id: str, program_id, role: WalletRole | str | None = None) -> UserWallet:
    user_id = (user_id or "").strip() if isinstance(user_id, str) else ""
    if not user_id:
        raise ValidationError("user_id is required")

    program = _get_program(db, program_id)
    role = WalletRole(role) if role is not None else None

    wallet = (
        db.query(UserWallet)
        .filter(UserWallet.user_id == user_id, UserWallet.reward_program_id == program.id)
        .first()
    )

    if wallet:
        if role == WalletRole.MANAGER and wallet.role != WalletRole.MANAGER.value:
            # promotion grants the program's default budget once
            wallet.role = WalletRole.MANAGER.value
            wallet.manager_giving_budget = int(program.default_giving_budget or 0)
            db.flush()
        return wallet

    is_manager = role == WalletRole.MANAGER
    wallet = UserWallet(
        user_id=user_id,
        reward_program_id=program.id,
        role=(WalletRole.MANAGER if is_manager else WalletRole.EMPLOYEE).value,
        personal_point=0,
        manager_giving_budget=int(program.default_giving_budget or 0) if is_manager else 0,
    )
    db.add(wallet)
    try:
        db.flush()
    except DBIntegrityError:
        raise ConcurrencyConflictError(
            "Wallet was created concurrently; retry the operation",
            user_id=user_id,
            reward_program_id=str(program.id),
        )

    logger.info(
        "wallet created",
        extra={"wallet_id": str(wallet.id), "user_id": user_id, "reward_program_id": str(program.id), "role": wallet.role},
    )
    return wallet


# ============================================================
# CREDIT (policy rewards and gifts)
# ============================================================
def credit(db: Session, wallet_id, amount: int, tx_type, **tx_fields) -> PointTransaction:
    """
    Raise a wallet's spendable balance and append the matching transaction.

    Flushes only; the caller commits.
    """
    amount = _check_amount(amount, allow_zero=True)
    tx_type = TransactionType(tx_type)
    if tx_type == TransactionType.EXCHANGE:
        raise ValidationError("EXCHANGE is a debit, not a credit")

    wallet = get_wallet(db, wallet_id)

    updated = (
        db.query(UserWallet)
        .filter(UserWallet.id == wallet.id)
        .update(
            {UserWallet.personal_point: UserWallet.personal_point + amount, UserWallet.updated_at: utcnow()},
            synchronize_session=False,
        )
    )
    if updated != 1:
        raise ConcurrencyConflictError("Wallet changed concurrently", wallet_id=str(wallet.id))
    db.expire(wallet)

    return append_transaction(
        db,
        type=tx_type,
        amount=amount,
        reward_program_id=wallet.reward_program_id,
        destination_wallet_id=wallet.id,
        **tx_fields,
    )


# ============================================================
# DEBIT BALANCE (exchanges)
# ============================================================
def debit_balance(db: Session, wallet_id, amount: int, line_items: list[dict]) -> PointTransaction:
    """
    Lower a wallet's spendable balance by ``amount`` and append the EXCHANGE.

    The decrement only applies while ``personal_point >= amount``, so two
    concurrent debits can never both spend the same points.
    """
    amount = _check_amount(amount, allow_zero=True)
    wallet = get_wallet(db, wallet_id)

    updated = (
        db.query(UserWallet)
        .filter(UserWallet.id == wallet.id, UserWallet.personal_point >= amount)
        .update(
            {UserWallet.personal_point: UserWallet.personal_point - amount, UserWallet.updated_at: utcnow()},
            synchronize_session=False,
        )
    )
    if updated != 1:
        db.refresh(wallet)
        if wallet.personal_point < amount:
            raise InsufficientBalanceError(
                "Not enough points",
                required=amount,
                available=wallet.personal_point,
                wallet_id=str(wallet.id),
            )
        raise ConcurrencyConflictError("Wallet changed concurrently", wallet_id=str(wallet.id))
    db.expire(wallet)

    return append_transaction(
        db,
        type=TransactionType.EXCHANGE,
        amount=amount,
        reward_program_id=wallet.reward_program_id,
        source_wallet_id=wallet.id,
        line_items=line_items,
    )


# ============================================================
# DEBIT BUDGET (manager gifts, all-or-nothing)
# ============================================================
def _normalize_recipients(recipients) -> list[tuple[str, int]]:
    if not recipients:
        raise ValidationError("At least one recipient is required")

    normalized = []
    seen = set()
    for r in recipients:
        if isinstance(r, dict):
            employee_id, amount = r.get("employee_id"), r.get("amount")
        elif isinstance(r, (tuple, list)):
            employee_id, amount = r
        else:
            employee_id, amount = getattr(r, "employee_id", None), getattr(r, "amount", None)

        employee_id = (employee_id or "").strip() if isinstance(employee_id, str) else ""
        if not employee_id:
            raise ValidationError("recipient employee_id is required")
        if employee_id in seen:
            raise ValidationError("Duplicate recipient", employee_id=employee_id)
        seen.add(employee_id)

        normalized.append((employee_id, _check_amount(amount)))
    return normalized


def debit_budget(db: Session, manager_wallet_id, recipients, reason: str | None = None) -> list[PointTransaction]:
    """
    Move points from a manager's giving budget to each recipient's wallet.

    The whole batch is checked against the budget before anything changes;
    one GIFT transaction is appended per recipient. Flushes only.
    """
    lines = _normalize_recipients(recipients)
    total = sum(amount for _, amount in lines)

    manager = get_wallet(db, manager_wallet_id)
    if manager.role != WalletRole.MANAGER.value:
        raise ValidationError("Only manager wallets can gift points", wallet_id=str(manager.id))

    program = _get_program(db, manager.reward_program_id)
    if program.status != ProgramStatus.ACTIVE.value:
        raise ValidationError("Gifting requires an ACTIVE reward program", reward_program_id=str(program.id))

    if any(employee_id == manager.user_id for employee_id, _ in lines):
        raise ValidationError("Managers cannot gift points to themselves")

    if manager.manager_giving_budget < total:
        raise InsufficientBudgetError(
            "Not enough giving budget",
            required=total,
            available=manager.manager_giving_budget,
            wallet_id=str(manager.id),
        )

    recipient_wallets = [(get_or_create_wallet(db, employee_id, program.id), amount) for employee_id, amount in lines]

    # every wallet of the batch is locked in one statement, in id order
    wallet_ids = sorted({manager.id, *(w.id for w, _ in recipient_wallets)})
    db.query(UserWallet).filter(UserWallet.id.in_(wallet_ids)).order_by(UserWallet.id).with_for_update().all()

    updated = (
        db.query(UserWallet)
        .filter(UserWallet.id == manager.id, UserWallet.manager_giving_budget >= total)
        .update(
            {
                UserWallet.manager_giving_budget: UserWallet.manager_giving_budget - total,
                UserWallet.updated_at: utcnow(),
            },
            synchronize_session=False,
        )
    )
    if updated != 1:
        db.refresh(manager)
        if manager.manager_giving_budget < total:
            raise InsufficientBudgetError(
                "Not enough giving budget",
                required=total,
                available=manager.manager_giving_budget,
                wallet_id=str(manager.id),
            )
        raise ConcurrencyConflictError("Manager wallet changed concurrently", wallet_id=str(manager.id))
    db.expire(manager)

    by_wallet = {}
    for wallet, amount in sorted(recipient_wallets, key=lambda pair: pair[0].id):
        by_wallet[wallet.id] = credit(
            db,
            wallet.id,
            amount,
            TransactionType.GIFT,
            source_wallet_id=manager.id,
            reason=reason,
        )

    return [by_wallet[wallet.id] for wallet, _ in recipient_wallets]


def gift_points(db: Session, manager_wallet_id, recipients, reason: str | None = None) -> GiftResult:
    try:
        transactions = debit_budget(db, manager_wallet_id, recipients, reason=reason)
        db.commit()
    except Exception:
        db.rollback()
        raise

    manager = get_wallet(db, manager_wallet_id)
    total = sum(tx.amount for tx in transactions)

    logger.info(
        "points gifted",
        extra={
            "manager_wallet_id": str(manager.id),
            "recipients": len(transactions),
            "total_points": total,
            "remaining_budget": manager.manager_giving_budget,
        },
    )
    return GiftResult(
        transactions=transactions,
        total_points_deducted=total,
        remaining_budget=manager.manager_giving_budget,
    )


# ============================================================
# RESET BUDGETS (scheduled, idempotent per period)
# ============================================================
def period_key_for(as_of: datetime) -> str:
    return f"{as_of.year:04d}-{as_of.month:02d}"


def reset_budgets(
    db: Session,
    program_id,
    *,
    as_of: datetime | None = None,
    period_key: str | None = None,
) -> tuple[BudgetReset, bool]:
    """
    Put every manager wallet of the program back to the default giving budget.

    Applied at most once per (program, period_key): a rerun for a period that
    was already reset returns the stored record and touches no wallet. The
    second element of the result tells whether this call applied the reset.
    """
    program = _get_program(db, program_id)
    if program.status == ProgramStatus.INACTIVE.value:
        raise ValidationError("Inactive reward programs are read-only", reward_program_id=str(program.id))

    if period_key is None:
        period_key = period_key_for(as_of or utcnow())
    period_key = period_key.strip()
    if not period_key:
        raise ValidationError("period_key is required")

    existing = (
        db.query(BudgetReset)
        .filter(BudgetReset.reward_program_id == program.id, BudgetReset.period_key == period_key)
        .first()
    )
    if existing:
        logger.info(
            "budget reset already applied",
            extra={"reward_program_id": str(program.id), "period_key": period_key},
        )
        return existing, False

    budget = int(program.default_giving_budget or 0)
    try:
        count = (
            db.query(UserWallet)
            .filter(
                UserWallet.reward_program_id == program.id,
                UserWallet.role == WalletRole.MANAGER.value,
            )
            .update(
                {UserWallet.manager_giving_budget: budget, UserWallet.updated_at: utcnow()},
                synchronize_session=False,
            )
        )
        record = BudgetReset(
            reward_program_id=program.id,
            period_key=period_key,
            budget=budget,
            wallets_reset=int(count or 0),
        )
        db.add(record)
        db.flush()
        db.commit()
    except DBIntegrityError:
        # another worker applied the same period first
        db.rollback()
        existing = (
            db.query(BudgetReset)
            .filter(BudgetReset.reward_program_id == program.id, BudgetReset.period_key == period_key)
            .one()
        )
        return existing, False
    except Exception:
        db.rollback()
        raise

    logger.info(
        "manager budgets reset",
        extra={
            "reward_program_id": str(program.id),
            "period_key": period_key,
            "budget": budget,
            "wallets_reset": record.wallets_reset,
        },
    )
    return record, True
