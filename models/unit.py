from sqlalchemy import Column, Integer, Numeric, String, Text
from .base import Base


class Unit(Base):
    """Inventory unit. The table belongs to the inventory database; read-only here."""
    __tablename__ = "Units"

    id = Column("UnitID", Integer, primary_key=True)
    name = Column("Name", String(255))
    model = Column("Model", String(255))
    year = Column("Year", Integer)
    price = Column("Price", Numeric(18, 2))
    description = Column("Description", Text)
    status = Column("UnitStatus", String(50))
    vin = Column("VIN", String(64))         # natural key; image folder name in blob storage
