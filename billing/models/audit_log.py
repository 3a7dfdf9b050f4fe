"""Audit log model for tracking ledger mutations."""

from typing import Any

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from billing.models import Base, BaseModel


class AuditLog(Base, BaseModel):
    """Immutable audit entry for a ledger mutation.

    Records who (actor_id, actor_role) did what (action) to which entity
    (entity_type, entity_id), a one-line summary, and a JSON before/after
    payload (changes).
    """

    __tablename__ = "audit_logs"

    entity_type: Mapped[str] = mapped_column(String(50), index=True)
    """Entity type being audited: "payment", "allocation", "invoice"."""

    entity_id: Mapped[str] = mapped_column(String(50), index=True)
    """Primary key of the audited entity, as text."""

    action: Mapped[str] = mapped_column(String(50), index=False)
    """Action performed: "allocation_added", "allocations_replaced", ..."""

    actor_id: Mapped[int | None] = mapped_column(nullable=True, index=False)
    """User who performed the action. None for system actions."""

    actor_role: Mapped[str | None] = mapped_column(String(50), nullable=True)

    correlation_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    summary: Mapped[str | None] = mapped_column(String(500), nullable=True)

    changes: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True, index=False)
    """JSON snapshot: {"before": [...], "after": [...]}."""

    def __repr__(self) -> str:
        return (
            f"<AuditLog(id={self.id}, entity_type={self.entity_type}, entity_id={self.entity_id}, "
            f"action={self.action}, actor_id={self.actor_id}, created_at={self.created_at})>"
        )


__all__ = ["AuditLog"]
