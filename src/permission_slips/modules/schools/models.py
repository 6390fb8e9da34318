"""
School Models

A school is the tenant boundary. Staff accounts, students and forms carry
a school_id, and every cross-school read is refused by the services.
"""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from permission_slips.modules.shared import BaseModel


class School(BaseModel):
    """School tenant. Its name is printed on every signed permission PDF."""

    __tablename__ = "schools"

    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<School(id={self.id}, name={self.name})>"
