from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from orchestrator.models.audit import AuditEvent


def log_event(
    *,
    session: Session,
    workspace_id: UUID,
    actor_user_id: UUID | None,
    event_type: str,
    event_data: dict,
) -> AuditEvent:
    evt = AuditEvent(
        workspace_id=workspace_id,
        actor_user_id=actor_user_id,
        event_type=event_type,
        event_data=event_data,
    )
    session.add(evt)
    session.flush()
    return evt
