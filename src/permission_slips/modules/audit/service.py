"""
Audit Trail Service

Records security and compliance relevant actions (who did what, to which
record, when, and from where). Schools must be able to show who accessed
or changed student data, so every significant action is written here.

Contract:
- record() never raises: persistence failures are logged and swallowed so
  an audit problem can never abort the caller's primary operation
- record() writes through its own session, independent of the caller's
  transaction
- IP addresses are masked before storage (last two octets / six groups)
- User agents are truncated to 200 characters
- There is no update or delete operation
"""

import logging
from enum import Enum
from typing import Any

from fastapi import Request

from permission_slips.core.database import async_session_maker
from permission_slips.modules.audit import repository

logger = logging.getLogger(__name__)

USER_AGENT_MAX_LENGTH = 200


class AuditAction(str, Enum):
    """Audited actions."""

    # Authentication / accounts
    USER_LOGIN = "USER_LOGIN"
    USER_CREATED_VIA_INVITE = "USER_CREATED_VIA_INVITE"
    INVITE_CREATE = "INVITE_CREATE"
    # Forms
    FORM_CREATE = "FORM_CREATE"
    FORM_UPDATE = "FORM_UPDATE"
    FORM_DELETE = "FORM_DELETE"
    FORM_DUPLICATE = "FORM_DUPLICATE"
    FORM_SHARE = "FORM_SHARE"
    FORM_VIEW = "FORM_VIEW"
    FORM_DISTRIBUTE = "FORM_DISTRIBUTE"
    FORM_CLOSED = "FORM_CLOSED"
    FORM_REOPENED = "FORM_REOPENED"
    # Review
    FORM_SUBMITTED_FOR_REVIEW = "FORM_SUBMITTED_FOR_REVIEW"
    FORM_APPROVED = "FORM_APPROVED"
    FORM_REVISION_REQUESTED = "FORM_REVISION_REQUESTED"
    # Signatures
    SIGNATURE_SUBMIT = "SIGNATURE_SUBMIT"
    SIGNATURE_VIEW = "SIGNATURE_VIEW"
    # Data export
    DATA_EXPORT = "DATA_EXPORT"


class AuditSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


ACTION_SEVERITY: dict[AuditAction, AuditSeverity] = {
    AuditAction.USER_LOGIN: AuditSeverity.LOW,
    AuditAction.USER_CREATED_VIA_INVITE: AuditSeverity.MEDIUM,
    AuditAction.INVITE_CREATE: AuditSeverity.MEDIUM,
    AuditAction.FORM_CREATE: AuditSeverity.LOW,
    AuditAction.FORM_UPDATE: AuditSeverity.MEDIUM,
    AuditAction.FORM_DELETE: AuditSeverity.HIGH,
    AuditAction.FORM_DUPLICATE: AuditSeverity.LOW,
    AuditAction.FORM_SHARE: AuditSeverity.MEDIUM,
    AuditAction.FORM_VIEW: AuditSeverity.LOW,
    AuditAction.FORM_DISTRIBUTE: AuditSeverity.MEDIUM,
    AuditAction.FORM_CLOSED: AuditSeverity.MEDIUM,
    AuditAction.FORM_REOPENED: AuditSeverity.MEDIUM,
    AuditAction.FORM_SUBMITTED_FOR_REVIEW: AuditSeverity.LOW,
    AuditAction.FORM_APPROVED: AuditSeverity.MEDIUM,
    AuditAction.FORM_REVISION_REQUESTED: AuditSeverity.MEDIUM,
    AuditAction.SIGNATURE_SUBMIT: AuditSeverity.HIGH,
    AuditAction.SIGNATURE_VIEW: AuditSeverity.LOW,
    AuditAction.DATA_EXPORT: AuditSeverity.CRITICAL,
}


def mask_ip_address(ip: str | None) -> str | None:
    """
    Mask an IP address for privacy, keeping enough for coarse geo-location.

    IPv4 keeps the first two octets, IPv6 the first two groups.

    Examples:
        >>> mask_ip_address("203.0.113.42")
        '203.0.xxx.xxx'
        >>> mask_ip_address("2001:db8::1")
        '2001:db8:xxxx:xxxx:xxxx:xxxx:xxxx:xxxx'
    """
    if not ip:
        return None
    if "." in ip:
        parts = ip.split(".")
        return f"{parts[0]}.{parts[1]}.xxx.xxx" if len(parts) >= 2 else "unknown"
    if ":" in ip:
        parts = ip.split(":")
        return f"{parts[0]}:{parts[1]}:xxxx:xxxx:xxxx:xxxx:xxxx:xxxx"
    return "unknown"


def truncate_user_agent(user_agent: str | None) -> str | None:
    if not user_agent:
        return None
    if len(user_agent) > USER_AGENT_MAX_LENGTH:
        return user_agent[:USER_AGENT_MAX_LENGTH] + "..."
    return user_agent


def get_request_context(request: Request) -> tuple[str, str]:
    """
    Extract (ip_address, user_agent) from a request.

    The IP is the first X-Forwarded-For entry when behind a proxy,
    otherwise the direct client host.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip_address = forwarded.split(",")[0].strip() or "unknown"
    elif request.client and request.client.host:
        ip_address = request.client.host
    else:
        ip_address = "unknown"

    user_agent = request.headers.get("user-agent") or "unknown"
    return ip_address, user_agent


def build_entry_metadata(
    action: AuditAction,
    *,
    metadata: dict[str, Any] | None,
    user_email: str | None,
    user_role: str | None,
    user_agent: str | None,
    success: bool,
    error_message: str | None,
) -> dict[str, Any]:
    """Merge caller metadata with the standard audit context fields."""
    entry: dict[str, Any] = dict(metadata or {})
    entry.update(
        {
            "severity": ACTION_SEVERITY.get(action, AuditSeverity.LOW).value,
            "success": success,
        }
    )
    if user_email:
        entry["userEmail"] = user_email
    if user_role:
        entry["userRole"] = user_role
    if error_message:
        entry["errorMessage"] = error_message
    truncated = truncate_user_agent(user_agent)
    if truncated:
        entry["userAgent"] = truncated
    return entry


async def record(
    action: AuditAction,
    *,
    actor: Any = None,
    user_id: str | None = None,
    user_email: str | None = None,
    user_role: str | None = None,
    resource_type: str | None = None,
    resource_id: str | None = None,
    metadata: dict[str, Any] | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    success: bool = True,
    error_message: str | None = None,
) -> None:
    """
    Record an audit event. Never raises.

    Args:
        action: What happened
        actor: Optional CurrentUser; fills user_id/user_email/user_role
        user_id: Acting user's ID (None for system actions)
        user_email: Acting user's email
        user_role: Acting user's role
        resource_type: Entity type (e.g. "PermissionForm")
        resource_id: Entity ID
        metadata: Extra JSON-serialisable context
        ip_address: Raw client IP (masked before storage)
        user_agent: Raw user agent (truncated before storage)
        success: Whether the audited action succeeded
        error_message: Failure detail when success is False
    """
    try:
        if actor is not None:
            user_id = user_id or actor.id
            user_email = user_email or actor.email
            user_role = user_role or actor.role

        entry_metadata = build_entry_metadata(
            action,
            metadata=metadata,
            user_email=user_email,
            user_role=user_role,
            user_agent=user_agent,
            success=success,
            error_message=error_message,
        )
        masked_ip = mask_ip_address(ip_address)

        log = logger.info if success else logger.warning
        log(
            f"AUDIT: {action.value} user={user_id} "
            f"resource={resource_type or 'System'}:{resource_id} severity={entry_metadata['severity']}"
        )

        async with async_session_maker() as session:
            await repository.add_entry(
                session,
                action=action.value,
                user_id=user_id,
                entity=resource_type or "System",
                entity_id=resource_id,
                metadata=entry_metadata,
                ip_address=masked_ip,
            )
            await session.commit()
    except Exception as e:
        logger.error(f"Failed to persist audit log for {action.value}: {e}", exc_info=True)
