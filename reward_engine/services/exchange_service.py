import logging

from sqlalchemy.orm import Session

from reward_engine.db import as_uuid, utcnow
from reward_engine.errors import (
    ConcurrencyConflictError,
    InsufficientBalanceError,
    InsufficientStockError,
    IntegrityError,
    ValidationError,
)
from reward_engine.models.enums import ProgramStatus, UNLIMITED_QUANTITY
from reward_engine.models.point_transaction import PointTransaction
from reward_engine.models.reward_item import RewardItem
from reward_engine.models.reward_program import RewardProgram
from reward_engine.models.user_wallet import UserWallet
from reward_engine.services.wallet_service import debit_balance


logger = logging.getLogger(__name__)


def _field(line, name):
    if isinstance(line, dict):
        return line.get(name)
    return getattr(line, name, None)


def _merge_lines(items) -> dict:
    """Validate requested lines and merge repeats of the same item."""
    if not items:
        raise ValidationError("At least one item is required")

    merged = {}
    for line in items:
        item_id = as_uuid(_field(line, "reward_item_id"), "reward_item_id")
        quantity = _field(line, "quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError("quantity must be a positive integer", reward_item_id=str(item_id))
        merged[item_id] = merged.get(item_id, 0) + quantity
    return merged


def _insufficient_stock(item: RewardItem, requested: int) -> InsufficientStockError:
    return InsufficientStockError(
        f"Not enough stock for {item.name}",
        required=requested,
        available=max(0, item.quantity),
        reward_item_id=str(item.id),
    )


def _redeem(db: Session, wallet_id, items) -> PointTransaction:
    requested = _merge_lines(items)
    wallet_id = as_uuid(wallet_id, "wallet_id")

    # lock order: wallet first, then items by id
    wallet = db.query(UserWallet).filter(UserWallet.id == wallet_id).with_for_update().first()
    if not wallet:
        raise IntegrityError("Wallet not found", wallet_id=str(wallet_id))

    program = db.query(RewardProgram).filter(RewardProgram.id == wallet.reward_program_id).one()
    if program.status != ProgramStatus.ACTIVE.value:
        raise ValidationError("Redemption requires an ACTIVE reward program", reward_program_id=str(program.id))

    item_ids = sorted(requested)
    rows = (
        db.query(RewardItem)
        .filter(RewardItem.id.in_(item_ids))
        .order_by(RewardItem.id)
        .with_for_update()
        .all()
    )
    by_id = {item.id: item for item in rows}

    # every check happens before any mutation
    for item_id in item_ids:
        item = by_id.get(item_id)
        if item is None:
            raise IntegrityError("Reward item not found", reward_item_id=str(item_id))
        if item.reward_program_id != wallet.reward_program_id:
            raise IntegrityError("Reward item belongs to another reward program", reward_item_id=str(item_id))

    total_cost = sum(requested[item_id] * by_id[item_id].required_points for item_id in item_ids)

    if wallet.personal_point < total_cost:
        raise InsufficientBalanceError(
            "Not enough points",
            required=total_cost,
            available=wallet.personal_point,
            wallet_id=str(wallet.id),
        )

    for item_id in item_ids:
        item = by_id[item_id]
        if item.quantity != UNLIMITED_QUANTITY and item.quantity < requested[item_id]:
            raise _insufficient_stock(item, requested[item_id])

    # mutations: stock, then balance + ledger
    for item_id in item_ids:
        item = by_id[item_id]
        if item.quantity == UNLIMITED_QUANTITY:
            continue
        quantity = requested[item_id]
        updated = (
            db.query(RewardItem)
            .filter(RewardItem.id == item_id, RewardItem.quantity >= quantity)
            .update(
                {RewardItem.quantity: RewardItem.quantity - quantity, RewardItem.updated_at: utcnow()},
                synchronize_session=False,
            )
        )
        if updated != 1:
            db.refresh(item)
            if item.quantity != UNLIMITED_QUANTITY and item.quantity < quantity:
                raise _insufficient_stock(item, quantity)
            raise ConcurrencyConflictError("Reward item changed concurrently", reward_item_id=str(item_id))
        db.expire(item)

    line_items = [
        {
            "reward_item_id": item_id,
            "reward_item_name": by_id[item_id].name,
            "quantity": requested[item_id],
            "unit_points": by_id[item_id].required_points,
        }
        for item_id in item_ids
    ]
    return debit_balance(db, wallet.id, total_cost, line_items)


# ============================================================
# REDEEM (one atomic unit, never partial)
# ============================================================
def redeem(db: Session, wallet_id, items) -> PointTransaction:
    """
    Spend a wallet's points on one or more catalog items.

    Either every line is honoured (balance and finite stocks decremented, a
    single EXCHANGE transaction appended) or nothing changes and the first
    failing check is raised.
    """
    try:
        transaction = _redeem(db, wallet_id, items)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "points redeemed",
        extra={
            "transaction_id": str(transaction.id),
            "wallet_id": str(transaction.source_wallet_id),
            "amount": transaction.amount,
        },
    )
    return transaction
