"""Audit sink contract and its database implementation.

Every ledger mutation records one audit entry in the same unit of work as the
data write. The sink is a write-only observer: it never influences ledger
behavior, but if it raises, the mutation is rolled back.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing.models.audit_log import AuditLog

MAX_RECENT_ENTRIES = 50


@dataclass(frozen=True)
class AuditActor:
    """Who performed a mutation."""

    user_id: int | None = None
    role: str | None = None
    correlation_id: str | None = None


SYSTEM_ACTOR = AuditActor(role="system")


def to_json_safe(value: Any) -> Any:
    """Convert Decimal, date and enum values in a payload into JSON-friendly types."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): to_json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_safe(v) for v in value]
    return value


class AuditSink(ABC):
    """Outbound audit contract consumed by the ledger services."""

    @abstractmethod
    def record(
        self,
        actor: AuditActor,
        action: str,
        entity_type: str,
        entity_id: int | str,
        summary: str,
        changes: dict | None = None,
    ) -> None:
        """Record one mutation. Raising aborts the mutation."""


class AuditService(AuditSink):
    """Audit sink writing AuditLog rows into the caller's session."""

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        actor: AuditActor,
        action: str,
        entity_type: str,
        entity_id: int | str,
        summary: str,
        changes: dict | None = None,
    ) -> AuditLog:
        if actor is None:
            raise ValueError("Audit actor is required")
        return AuditService.log(
            self.db,
            entity_type,
            entity_id,
            action,
            actor=actor,
            summary=summary,
            changes=changes,
        )

    @staticmethod
    def log(
        db: Session,
        entity_type: str,
        entity_id: int | str,
        action: str,
        actor: AuditActor | None = None,
        summary: str | None = None,
        changes: dict | None = None,
    ) -> AuditLog:
        """Create audit log entry (one-liner).

        Args:
            db: Database session
            entity_type: Type of entity ("payment", "allocation", "invoice")
            entity_id: Primary key of the entity
            action: Action performed ("allocation_added", "status_set", ...)
            actor: Who performed the action (None for system actions)
            summary: Human-readable one-line description
            changes: Optional before/after snapshot

        Returns:
            Created AuditLog object (added to the session, not committed)
        """
        actor = actor or SYSTEM_ACTOR
        audit = AuditLog(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action,
            actor_id=actor.user_id,
            actor_role=actor.role,
            correlation_id=actor.correlation_id,
            summary=summary,
            changes=to_json_safe(changes) if changes is not None else None,
        )
        db.add(audit)
        return audit

    @staticmethod
    def get_recent(db: Session, limit: int = 20) -> list[AuditLog]:
        """Latest audit entries, newest first; limit is clamped to 1..50."""
        limit = min(max(limit, 1), MAX_RECENT_ENTRIES)
        stmt = (
            select(AuditLog)
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .limit(limit)
        )
        return list(db.execute(stmt).scalars().all())


__all__ = ["AuditActor", "AuditService", "AuditSink", "SYSTEM_ACTOR", "to_json_safe"]
