# services/unit_service.py
import logging
from typing import Optional

from sqlalchemy.exc import OperationalError, InterfaceError

from db import SessionLocal
from models import Unit
from services.errors import StoreUnavailable

logger = logging.getLogger(__name__)


def get_vin_for_unit(unit_id: int) -> Optional[str]:
    """Natural key (VIN) of a unit, or None when the unit is missing or has no VIN."""
    db = SessionLocal()
    try:
        vin = db.query(Unit.vin).filter(Unit.id == unit_id).scalar()
    except (OperationalError, InterfaceError) as e:
        logger.error("Inventory database unavailable looking up unit %s: %s", unit_id, e)
        raise StoreUnavailable("Inventory database unavailable") from e
    finally:
        db.close()
    if not vin or not vin.strip():
        return None
    return vin.strip()
