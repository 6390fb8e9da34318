"""
Schools module - School tenant management.
"""

from permission_slips.modules.schools.models import School
from permission_slips.modules.schools.repository import SchoolRepository

__all__ = ["School", "SchoolRepository"]
