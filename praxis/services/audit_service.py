from __future__ import annotations

import logging

from praxis.models.audit_log import AuditLog
from praxis.repositories.base import AuditLogRepository

logger = logging.getLogger(__name__)

ACTIVITY_LIMIT = 20


class AuditService:
    def __init__(self, repo: AuditLogRepository) -> None:
        self.repo = repo

    def log(
        self,
        event_type: str,
        *,
        actor_id: int | None = None,
        actor_username: str = "",
        source: str = "",
        entity_type: str = "",
        entity_id: int | None = None,
        entity_uuid: str = "",
        previous_state: dict | None = None,
        new_state: dict | None = None,
        metadata: dict | None = None,
    ) -> AuditLog:
        """Write an audit entry. Raises on failure."""
        entry = self.repo.create(
            AuditLog(
                event_type=event_type,
                actor_id=actor_id,
                actor_username=actor_username,
                source=source,
                entity_type=entity_type,
                entity_id=entity_id,
                entity_uuid=entity_uuid,
                previous_state=previous_state,
                new_state=new_state,
                metadata=metadata or {},
            )
        )
        logger.info("Audit %s by %s on %s/%s", event_type, actor_username or actor_id, entity_type, entity_id)
        return entry

    def safe_log(self, *args, **kwargs) -> AuditLog | None:
        """Write an audit entry; a storage failure is logged, never raised."""
        try:
            return self.log(*args, **kwargs)
        except Exception:
            logger.exception("Failed to write audit log")
            return None

    def security_event(
        self,
        event_type: str,
        user_id: int | None,
        *,
        username: str = "",
        source: str = "web",
        metadata: dict | None = None,
    ) -> AuditLog | None:
        """Record an event about the acting user's own account."""
        return self.safe_log(
            event_type,
            actor_id=user_id,
            actor_username=username,
            source=source,
            entity_type="user",
            entity_id=user_id,
            metadata=metadata,
        )

    def activity(self, user_id: int, limit: int = ACTIVITY_LIMIT) -> list[AuditLog]:
        return self.repo.list_for_user(user_id, limit)

    def list_recent(self, limit: int = 50, event_type: str | None = None) -> list[AuditLog]:
        return self.repo.list_recent(limit, event_type)
