"""
Users module - accounts for every role.
"""

from permission_slips.modules.users.models import ADMIN_ROLES, User, UserRole
from permission_slips.modules.users.repository import UserRepository

__all__ = ["ADMIN_ROLES", "User", "UserRole", "UserRepository"]
