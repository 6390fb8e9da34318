"""
Students module - Students, parent links and groups.
"""

from permission_slips.modules.students.models import Group, GroupMember, ParentLink, Student

__all__ = ["Group", "GroupMember", "ParentLink", "Student"]
