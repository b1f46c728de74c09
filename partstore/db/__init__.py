from .database import Base
from .location import Location
from .part import Part, PartAlias
from .inventory.stock import StockEntry
from .inventory.movement import Transaction

__all__ = ["Base", "Location", "Part", "PartAlias", "StockEntry", "Transaction"]
