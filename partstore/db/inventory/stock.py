from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, UniqueConstraint

from ..database import Base


class StockEntry(Base):
    __tablename__ = "stock"
    __table_args__ = (
        UniqueConstraint("part_id", "location_id", name="ux_stock_part_location"),
        CheckConstraint("qty >= 0", name="qty_non_negative"),
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

    qty = Column(Integer, nullable=False, default=0)
