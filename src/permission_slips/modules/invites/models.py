"""
Invite Model

Single-use invitations that let a staff member create their own account
with a pre-assigned role and school.
"""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import ENUM, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from permission_slips.modules.shared import BaseModel
from permission_slips.modules.users.models import UserRole

if TYPE_CHECKING:
    from permission_slips.modules.schools.models import School


class Invite(BaseModel):
    """
    Account invitation.

    Only the SHA-256 hash of the token is stored; the plain token exists
    only in the invitation email.
    """

    __tablename__ = "invites"

    email: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        ENUM(UserRole, name="user_role", create_type=False),
        nullable=False,
    )
    school_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("schools.id", ondelete="CASCADE"),
        nullable=True,
    )
    token: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_by: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    school: Mapped["School | None"] = relationship("School", lazy="selectin")

    __table_args__ = (Index("ix_invites_email", "email"),)

    def __repr__(self) -> str:
        return f"<Invite(id={self.id}, email={self.email}, role={self.role})>"
