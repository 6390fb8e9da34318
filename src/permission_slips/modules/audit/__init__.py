"""
Audit module - Append-only compliance trail.
"""

from permission_slips.modules.audit.models import AuditLog
from permission_slips.modules.audit.service import (
    ACTION_SEVERITY,
    AuditAction,
    AuditSeverity,
    get_request_context,
    mask_ip_address,
    record,
    truncate_user_agent,
)

__all__ = [
    "ACTION_SEVERITY",
    "AuditAction",
    "AuditLog",
    "AuditSeverity",
    "get_request_context",
    "mask_ip_address",
    "record",
    "truncate_user_agent",
]
