import uuid
from sqlalchemy import Column, String, Integer, TIMESTAMP, ForeignKey, CheckConstraint, Index, Uuid, event
from sqlalchemy.orm import relationship
from reward_engine.db import Base, utcnow


class PointTransaction(Base):
    __tablename__ = "point_transactions"

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_point_transactions_amount_non_negative"),
        Index("ix_point_transactions_source_wallet", "source_wallet_id", "created_at"),
        Index("ix_point_transactions_destination_wallet", "destination_wallet_id", "created_at"),
        Index("ix_point_transactions_program", "reward_program_id", "created_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    type = Column(String(20), nullable=False)  # POLICY_REWARD / GIFT / EXCHANGE

    # magnitude only, the effect on a wallet follows from type
    amount = Column(Integer, nullable=False)

    reward_program_id = Column(Uuid, ForeignKey("reward_programs.id"), nullable=False)

    source_wallet_id = Column(Uuid, ForeignKey("user_wallets.id"), nullable=True)
    destination_wallet_id = Column(Uuid, ForeignKey("user_wallets.id"), nullable=True)

    reason = Column(String(500))

    # POLICY_REWARD: policy values in effect when the points accrued
    policy_id = Column(Uuid, ForeignKey("reward_policies.id"), nullable=True)
    policy_type = Column(String(30))
    unit_value = Column(Integer)
    points_per_unit = Column(Integer)
    units = Column(Integer)
    attendance_fact_id = Column(Uuid, nullable=True)

    created_at = Column(TIMESTAMP, nullable=False, default=utcnow)

    line_items = relationship(
        "PointTransactionItem",
        back_populates="transaction",
        order_by="PointTransactionItem.position",
    )


class PointTransactionItem(Base):
    __tablename__ = "point_transaction_items"

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_point_transaction_items_quantity_positive"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    transaction_id = Column(Uuid, ForeignKey("point_transactions.id"), nullable=False)
    reward_item_id = Column(Uuid, ForeignKey("reward_items.id"), nullable=False)

    reward_item_name = Column(String(200))

    quantity = Column(Integer, nullable=False)
    unit_points = Column(Integer, nullable=False)
    total_points = Column(Integer, nullable=False)

    position = Column(Integer, nullable=False, default=0)

    transaction = relationship("PointTransaction", back_populates="line_items")


class LedgerImmutableError(Exception):
    pass


def _reject_change(mapper, connection, target):
    raise LedgerImmutableError(f"{type(target).__name__} rows are append-only")


for _model in (PointTransaction, PointTransactionItem):
    event.listen(_model, "before_update", _reject_change)
    event.listen(_model, "before_delete", _reject_change)
