"""
Core module - settings, database session, auth, permissions and shared services.
"""

from permission_slips.core.config import get_settings, settings
from permission_slips.core.database import Base, get_db

__all__ = [
    "settings",
    "get_settings",
    "Base",
    "get_db",
]
