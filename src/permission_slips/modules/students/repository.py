"""
Students Repository

Read-side queries over students, parent links and groups used by
distribution, signing and reminders.
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from permission_slips.modules.students.models import GroupMember, ParentLink, Student
from permission_slips.modules.users.models import User


def _apply_target_filters(stmt, school_id: str | None, group_ids: list[str] | None):
    if school_id is not None:
        stmt = stmt.where(Student.school_id == school_id)
    if group_ids:
        members = select(GroupMember.student_id).where(GroupMember.group_id.in_(group_ids))
        stmt = stmt.where(Student.id.in_(members))
    return stmt


async def get_student(db: AsyncSession, student_id: str) -> Student | None:
    """Get student by ID."""
    return await db.get(Student, student_id)


async def get_parent_link(
    db: AsyncSession,
    parent_id: str,
    student_id: str,
) -> ParentLink | None:
    """Get the link between a parent and a student, if any."""
    result = await db.execute(
        select(ParentLink).where(
            ParentLink.parent_id == parent_id,
            ParentLink.student_id == student_id,
        )
    )
    return result.scalar_one_or_none()


async def list_students_for_parent(db: AsyncSession, parent_id: str) -> list[Student]:
    """All students linked to a parent, ordered by name."""
    result = await db.execute(
        select(Student)
        .join(ParentLink, ParentLink.student_id == Student.id)
        .where(ParentLink.parent_id == parent_id)
        .order_by(Student.last_name, Student.first_name)
    )
    return list(result.scalars().all())


async def count_students(db: AsyncSession, school_id: str | None) -> int:
    """Count every student of a school, linked or not, ignoring group selection."""
    stmt = _apply_target_filters(select(func.count(Student.id)), school_id, None)
    result = await db.execute(stmt)
    return result.scalar() or 0


async def get_linked_pairs(
    db: AsyncSession,
    school_id: str | None,
    group_ids: list[str] | None = None,
) -> list[tuple[Student, User]]:
    """
    Get every (student, parent) pair in the distribution target set.

    Students without a parent link are excluded by the inner join. A
    student with two linked parents yields two pairs.

    Args:
        db: Database session
        school_id: Restrict to students of this school (None = no school filter)
        group_ids: Restrict to members of any of these groups

    Returns:
        List of (student, parent user) tuples
    """
    stmt = (
        select(Student, User)
        .join(ParentLink, ParentLink.student_id == Student.id)
        .join(User, User.id == ParentLink.parent_id)
    )
    stmt = _apply_target_filters(stmt, school_id, group_ids)
    stmt = stmt.order_by(Student.last_name, Student.first_name)

    result = await db.execute(stmt)
    return [(row[0], row[1]) for row in result.all()]
