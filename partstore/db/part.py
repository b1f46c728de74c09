from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, Text

from .database import Base


class Part(Base):
    __tablename__ = "parts"
    __table_args__ = (CheckConstraint("min_qty >= 0", name="min_qty_non_negative"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    part_number = Column(Text, nullable=False, unique=True, index=True)
    description = Column(Text, nullable=False, default="")
    min_qty = Column(Integer, nullable=False, default=0)

    # At most one location; cleared (not cascaded) when that location is deleted.
    fixed_location_id = Column(
        Integer,
        ForeignKey("locations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )


class PartAlias(Base):
    """Secondary barcode that resolves to a canonical part number."""

    __tablename__ = "part_aliases"

    id = Column(Integer, primary_key=True, autoincrement=True)
    alias = Column(Text, nullable=False, unique=True, index=True)
    part_id = Column(Integer, ForeignKey("parts.id", ondelete="CASCADE"), nullable=False, index=True)
