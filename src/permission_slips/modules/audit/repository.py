"""
Audit Log Repository

Insert-only access to the audit_logs table.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from permission_slips.modules.audit.models import AuditLog


async def add_entry(
    db: AsyncSession,
    *,
    action: str,
    user_id: str | None,
    entity: str,
    entity_id: str | None,
    metadata: dict,
    ip_address: str | None,
) -> AuditLog:
    """
    Stage an audit row in the given session.

    The caller owns the commit, so the entry can join a larger transaction.
    """
    entry = AuditLog(
        action=action,
        user_id=user_id,
        entity=entity,
        entity_id=entity_id,
        metadata_=metadata,
        ip_address=ip_address,
    )
    db.add(entry)
    await db.flush()
    return entry
