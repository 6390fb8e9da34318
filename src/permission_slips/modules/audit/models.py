"""
Audit Log Model

Append-only, system-wide compliance log. Rows are inserted by the audit
service and never updated or deleted by application code.
"""

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from permission_slips.modules.shared import BaseModel


class AuditLog(BaseModel):
    """One audited action."""

    __tablename__ = "audit_logs"

    # Actor (nullable for system actions); kept when the user is deleted
    user_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    action: Mapped[str] = mapped_column(String(100), nullable=False)
    entity: Mapped[str] = mapped_column(String(50), nullable=False, default="System")
    entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Free-form context: severity, actor email/role, success flag, user agent, ...
    metadata_: Mapped[dict] = mapped_column("metadata", JSONB, nullable=False, default=dict)

    # Masked before storage (see service.mask_ip_address)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        Index("ix_audit_logs_user_id", "user_id"),
        Index("ix_audit_logs_action", "action"),
        Index("ix_audit_logs_entity", "entity", "entity_id"),
        Index("ix_audit_logs_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, action={self.action}, entity={self.entity})>"
