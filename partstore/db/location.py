from sqlalchemy import Column, Integer, Text

from .database import Base


class Location(Base):
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False, unique=True)
    barcode = Column(Text, nullable=False, unique=True, index=True)
