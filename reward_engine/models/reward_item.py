import uuid
from sqlalchemy import Column, String, Integer, TIMESTAMP, ForeignKey, CheckConstraint, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from reward_engine.db import Base


class RewardItem(Base):
    __tablename__ = "reward_items"

    __table_args__ = (
        CheckConstraint("required_points >= 0", name="ck_reward_items_required_points_non_negative"),
        CheckConstraint("quantity >= -1", name="ck_reward_items_quantity_valid"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    reward_program_id = Column(Uuid, ForeignKey("reward_programs.id"), nullable=False)

    name = Column(String(200), nullable=False)

    required_points = Column(Integer, nullable=False)

    # -1 = unlimited stock
    quantity = Column(Integer, nullable=False, default=-1)

    image_url = Column(String(500))

    position = Column(Integer, nullable=False, default=0)

    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    program = relationship("RewardProgram", back_populates="items")

    @property
    def unlimited(self) -> bool:
        return self.quantity == -1
