"""
Model registry.

Importing this module registers every table on Base.metadata and lets
SQLAlchemy resolve string relationship targets across modules. Used by
Alembic and by anything that needs the full mapper configuration.
"""

from permission_slips.modules.audit.models import AuditLog
from permission_slips.modules.forms.models import (
    FieldResponse,
    FormDocument,
    FormField,
    FormReviewLog,
    FormShare,
    FormSubmission,
    PermissionForm,
)
from permission_slips.modules.invites.models import Invite
from permission_slips.modules.schools.models import School
from permission_slips.modules.students.models import Group, GroupMember, ParentLink, Student
from permission_slips.modules.users.models import User

__all__ = [
    "AuditLog",
    "FieldResponse",
    "FormDocument",
    "FormField",
    "FormReviewLog",
    "FormShare",
    "FormSubmission",
    "Group",
    "GroupMember",
    "Invite",
    "ParentLink",
    "PermissionForm",
    "School",
    "Student",
    "User",
]
