from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Text
from sqlalchemy.sql import func

from ..database import Base

ACTION_IN = "in"
ACTION_OUT = "out"
ACTION_SET = "set"
ACTIONS = (ACTION_IN, ACTION_OUT, ACTION_SET)


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        CheckConstraint("action IN ('in', 'out', 'set')", name="action_known"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)

    part_id = Column(
        Integer,
        ForeignKey("parts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    location_id = Column(
        Integer,
        ForeignKey("locations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # in/out: unsigned magnitude, sign comes from `action`.
    # set: signed correction (after - before).
    qty = Column(Integer, nullable=False)
    action = Column(Text, nullable=False)
    username = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)


def signed_delta(action: str, qty: int) -> int:
    if action == ACTION_OUT:
        return -int(qty)
    return int(qty)
