### models/__init__.py
from .base import Base
from .unit import Unit
