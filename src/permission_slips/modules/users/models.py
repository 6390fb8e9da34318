"""
User Models

One account table for every role. Staff (teachers, reviewers, admins)
arrive through invites; parents are linked to students via ParentLink.
"""

from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import ENUM, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from permission_slips.modules.shared import BaseModel

if TYPE_CHECKING:
    from permission_slips.modules.schools.models import School


class UserRole(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    TEACHER = "TEACHER"
    REVIEWER = "REVIEWER"
    PARENT = "PARENT"


# Roles with school-wide administrative rights
ADMIN_ROLES = frozenset({UserRole.ADMIN, UserRole.SUPER_ADMIN})


class User(BaseModel):
    """
    Account of any role.

    school_id is NULL for SUPER_ADMIN (platform level) and may be NULL for
    parents, whose school is implied by their children.
    """

    __tablename__ = "users"

    school_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("schools.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    # Stored lower-cased; lookups lower-case their input
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        ENUM(UserRole, name="user_role", create_type=True),
        nullable=False,
        default=UserRole.PARENT,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    school: Mapped["School | None"] = relationship("School", lazy="selectin")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<User(id={self.id}, role={self.role.value})>"
