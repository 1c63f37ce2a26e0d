from __future__ import annotations

import threading
from uuid import UUID

from sqlalchemy.orm import Session

from orchestrator.models.enums import JobType
from orchestrator.providers.registry import ProviderRegistry
from orchestrator.worker.jobs.publish_post_variant import publish_post_variant


def handle_job(
    *,
    session: Session,
    job_id: UUID,
    job_type: JobType,
    payload: dict,
    registry: ProviderRegistry | None = None,
    cancel_event: threading.Event | None = None,
) -> None:
    _ = job_id
    if job_type == JobType.publish_post_variant:
        publish_post_variant(
            session=session, payload=payload, registry=registry, cancel_event=cancel_event
        )
        return

    raise NotImplementedError(f"Job type not implemented: {job_type.value}")
