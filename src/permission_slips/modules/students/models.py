"""
Student Models

Students, their links to parent accounts, and named groups (cohorts)
used to target distribution.
"""

from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from permission_slips.modules.shared import BaseModel

if TYPE_CHECKING:
    from permission_slips.modules.users.models import User


class Student(BaseModel):
    """A student, optionally attached to a school."""

    __tablename__ = "students"

    school_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("schools.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    grade: Mapped[str] = mapped_column(String(20), nullable=False)

    parent_links: Mapped[list["ParentLink"]] = relationship(
        "ParentLink",
        back_populates="student",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<Student(id={self.id}, name={self.full_name})>"


class ParentLink(BaseModel):
    """
    Relationship between a parent account and a student.

    At most one link per (parent, student) pair.
    """

    __tablename__ = "parent_links"

    parent_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    student_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
    )
    # e.g. "Mother", "Father", "Guardian"
    relationship_label: Mapped[str] = mapped_column(
        "relationship", String(50), nullable=False, default="Parent"
    )

    student: Mapped["Student"] = relationship("Student", back_populates="parent_links")
    parent: Mapped["User"] = relationship("User", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("parent_id", "student_id", name="uq_parent_links_parent_student"),
        Index("ix_parent_links_student_id", "student_id"),
    )


class Group(BaseModel):
    """A named cohort of students within a school."""

    __tablename__ = "groups"

    school_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("schools.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)


class GroupMember(BaseModel):
    """Membership of one student in one group."""

    __tablename__ = "group_members"

    group_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
    )
    student_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("group_id", "student_id", name="uq_group_members_group_student"),
    )
