from datetime import datetime

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, selectinload

from reward_engine.db import as_uuid
from reward_engine.errors import IntegrityError, ValidationError
from reward_engine.models.enums import TransactionType
from reward_engine.models.point_transaction import PointTransaction, PointTransactionItem
from reward_engine.models.reward_program import RewardProgram
from reward_engine.models.user_wallet import UserWallet
from reward_engine.schemas.transaction import Page, PointTransactionOut, TransactionFilter
from reward_engine.schemas.gift import GiftedPointStatOut


_CREDIT_TYPES = (TransactionType.POLICY_REWARD.value, TransactionType.GIFT.value)


def _as_transaction_type(value) -> TransactionType:
    try:
        return TransactionType(value)
    except ValueError:
        raise ValidationError(f"Unknown transaction type: {value}")


def _require_wallet(db: Session, wallet_id, program_id, role: str) -> UserWallet:
    wallet = db.query(UserWallet).filter(UserWallet.id == wallet_id).first()
    if not wallet:
        raise IntegrityError(f"{role} wallet not found", wallet_id=str(wallet_id))
    if wallet.reward_program_id != program_id:
        raise IntegrityError(
            f"{role} wallet belongs to another reward program",
            wallet_id=str(wallet_id),
        )
    return wallet


# ============================================================
# APPEND (the only write path)
# ============================================================
def append_transaction(
    db: Session,
    *,
    type,
    amount: int,
    reward_program_id,
    source_wallet_id=None,
    destination_wallet_id=None,
    line_items: list[dict] | None = None,
    **snapshot,
) -> PointTransaction:
    """
    Append one immutable transaction to the ledger.

    The caller owns the database transaction: the row is flushed, never
    committed, so it lands or disappears together with the wallet / stock
    mutation it records.
    """
    tx_type = _as_transaction_type(type)

    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError("amount must be an integer")
    if amount < 0:
        raise ValidationError("amount must be >= 0")
    if reward_program_id is None:
        raise ValidationError("reward_program_id is required")
    reward_program_id = as_uuid(reward_program_id, "reward_program_id")
    if source_wallet_id is not None:
        source_wallet_id = as_uuid(source_wallet_id, "source_wallet_id")
    if destination_wallet_id is not None:
        destination_wallet_id = as_uuid(destination_wallet_id, "destination_wallet_id")

    if tx_type == TransactionType.GIFT:
        if source_wallet_id is None or destination_wallet_id is None:
            raise ValidationError("GIFT requires source_wallet_id and destination_wallet_id")
    elif tx_type == TransactionType.POLICY_REWARD:
        if destination_wallet_id is None:
            raise ValidationError("POLICY_REWARD requires destination_wallet_id")
        if source_wallet_id is not None:
            raise ValidationError("POLICY_REWARD has no source wallet")
    elif tx_type == TransactionType.EXCHANGE:
        if source_wallet_id is None:
            raise ValidationError("EXCHANGE requires source_wallet_id")
        if not line_items:
            raise ValidationError("EXCHANGE requires line_items")

    if line_items and tx_type != TransactionType.EXCHANGE:
        raise ValidationError(f"{tx_type.value} does not carry line_items")

    if source_wallet_id is not None:
        _require_wallet(db, source_wallet_id, reward_program_id, "Source")
    if destination_wallet_id is not None:
        _require_wallet(db, destination_wallet_id, reward_program_id, "Destination")

    rows = []
    for position, line in enumerate(line_items or []):
        quantity = line.get("quantity")
        unit_points = line.get("unit_points")
        if line.get("reward_item_id") is None or quantity is None or unit_points is None:
            raise ValidationError("line item requires reward_item_id, quantity and unit_points")
        if quantity < 1 or unit_points < 0:
            raise ValidationError("line item quantity must be >= 1 and unit_points >= 0")
        rows.append(
            PointTransactionItem(
                reward_item_id=line["reward_item_id"],
                reward_item_name=line.get("reward_item_name"),
                quantity=quantity,
                unit_points=unit_points,
                total_points=quantity * unit_points,
                position=position,
            )
        )

    if rows and sum(r.total_points for r in rows) != amount:
        raise ValidationError("EXCHANGE amount does not match the line item total")

    # line items must be attached before the first flush: the row is never updated
    transaction = PointTransaction(
        type=tx_type.value,
        amount=amount,
        reward_program_id=reward_program_id,
        source_wallet_id=source_wallet_id,
        destination_wallet_id=destination_wallet_id,
        line_items=rows,
        **snapshot,
    )
    db.add(transaction)
    db.flush()

    return transaction


# ============================================================
# READS
# ============================================================
def get_transaction(db: Session, transaction_id) -> PointTransaction:
    transaction_id = as_uuid(transaction_id, "transaction_id")
    tx = (
        db.query(PointTransaction)
        .options(selectinload(PointTransaction.line_items))
        .filter(PointTransaction.id == transaction_id)
        .first()
    )
    if not tx:
        raise IntegrityError("Transaction not found", transaction_id=str(transaction_id))
    return tx


def _page(q, filter: TransactionFilter) -> Page[PointTransactionOut]:
    if filter.type is not None:
        q = q.filter(PointTransaction.type == filter.type.value)
    if filter.from_date is not None:
        q = q.filter(PointTransaction.created_at >= filter.from_date)
    if filter.to_date is not None:
        q = q.filter(PointTransaction.created_at <= filter.to_date)

    total = q.order_by(None).count()

    if filter.sort_direction == "ASC":
        q = q.order_by(PointTransaction.created_at.asc(), PointTransaction.id.asc())
    else:
        q = q.order_by(PointTransaction.created_at.desc(), PointTransaction.id.desc())

    rows = (
        q.options(selectinload(PointTransaction.line_items))
        .offset((filter.page - 1) * filter.page_size)
        .limit(filter.page_size)
        .all()
    )

    return Page[PointTransactionOut].build(
        [PointTransactionOut.model_validate(r) for r in rows],
        total_items=total,
        page=filter.page,
        page_size=filter.page_size,
    )


def list_by_wallet(db: Session, wallet_id, filter: TransactionFilter | None = None) -> Page[PointTransactionOut]:
    wallet_id = as_uuid(wallet_id, "wallet_id")
    if not db.query(UserWallet.id).filter(UserWallet.id == wallet_id).first():
        raise IntegrityError("Wallet not found", wallet_id=str(wallet_id))

    q = db.query(PointTransaction).filter(
        or_(
            PointTransaction.source_wallet_id == wallet_id,
            PointTransaction.destination_wallet_id == wallet_id,
        )
    )
    return _page(q, filter or TransactionFilter())


def list_by_program(db: Session, program_id, filter: TransactionFilter | None = None) -> Page[PointTransactionOut]:
    program_id = as_uuid(program_id, "reward_program_id")
    if not db.query(RewardProgram.id).filter(RewardProgram.id == program_id).first():
        raise IntegrityError("Reward program not found", reward_program_id=str(program_id))

    q = db.query(PointTransaction).filter(PointTransaction.reward_program_id == program_id)
    return _page(q, filter or TransactionFilter())


# ============================================================
# RECONCILIATION
# ============================================================
def ledger_balance(db: Session, wallet_id) -> int:
    wallet_id = as_uuid(wallet_id, "wallet_id")
    credits = (
        db.query(func.coalesce(func.sum(PointTransaction.amount), 0))
        .filter(
            PointTransaction.destination_wallet_id == wallet_id,
            PointTransaction.type.in_(_CREDIT_TYPES),
        )
        .scalar()
    )
    debits = (
        db.query(func.coalesce(func.sum(PointTransaction.amount), 0))
        .filter(
            PointTransaction.source_wallet_id == wallet_id,
            PointTransaction.type == TransactionType.EXCHANGE.value,
        )
        .scalar()
    )
    return int(credits or 0) - int(debits or 0)


def reconcile_wallet(db: Session, wallet_id) -> tuple[int, int, bool]:
    wallet_id = as_uuid(wallet_id, "wallet_id")
    wallet = db.query(UserWallet).filter(UserWallet.id == wallet_id).first()
    if not wallet:
        raise IntegrityError("Wallet not found", wallet_id=str(wallet_id))

    derived = ledger_balance(db, wallet.id)
    stored = int(wallet.personal_point)
    return stored, derived, stored == derived


# ============================================================
# GIFTED POINT STATS (per recipient, per month)
# ============================================================
def _month_bounds(month: str) -> tuple[datetime, datetime]:
    try:
        start = datetime.strptime(month, "%Y-%m")
    except (TypeError, ValueError):
        raise ValidationError("month must be formatted YYYY-MM")
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


def gifted_point_stats(
    db: Session,
    manager_wallet_id,
    *,
    month: str,
    keyword: str | None = None,
    page: int = 1,
    page_size: int = 10,
    sort_direction: str = "DESC",
) -> Page[GiftedPointStatOut]:
    manager_wallet_id = as_uuid(manager_wallet_id, "manager_wallet_id")
    if not db.query(UserWallet.id).filter(UserWallet.id == manager_wallet_id).first():
        raise IntegrityError("Wallet not found", wallet_id=str(manager_wallet_id))

    start, end = _month_bounds(month)

    total_points = func.sum(PointTransaction.amount).label("total_points")
    gift_count = func.count(PointTransaction.id).label("gift_count")

    q = (
        db.query(UserWallet.user_id, UserWallet.id, total_points, gift_count)
        .select_from(PointTransaction)
        .join(UserWallet, UserWallet.id == PointTransaction.destination_wallet_id)
        .filter(PointTransaction.type == TransactionType.GIFT.value)
        .filter(PointTransaction.source_wallet_id == manager_wallet_id)
        .filter(PointTransaction.created_at >= start, PointTransaction.created_at < end)
    )

    normalized = (keyword or "").strip().lower()
    if normalized:
        q = q.filter(func.lower(UserWallet.user_id).contains(normalized))

    q = q.group_by(UserWallet.user_id, UserWallet.id)

    total = q.order_by(None).count()

    order = total_points.asc() if sort_direction == "ASC" else total_points.desc()
    rows = (
        q.order_by(order, UserWallet.user_id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )

    stats = [
        GiftedPointStatOut(
            employee_id=user_id,
            wallet_id=wallet_id,
            total_points=int(points or 0),
            gift_count=int(count or 0),
        )
        for user_id, wallet_id, points, count in rows
    ]
    return Page[GiftedPointStatOut].build(stats, total_items=total, page=page, page_size=page_size)
