from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from sqlalchemy.orm import sessionmaker

from orchestrator.core.config import get_settings
from orchestrator.db.session import get_sessionmaker
from orchestrator.models.enums import JobType
from orchestrator.worker.queue import enqueue_job


class PublishScheduler(Protocol):
    """Hands variant ids to the background publisher (at-least-once)."""

    def enqueue(self, variant_id: UUID) -> None: ...

    def schedule(self, variant_id: UUID, *, run_at: datetime) -> None: ...


def publish_dedupe_key(variant_id: UUID) -> str:
    return f"{JobType.publish_post_variant.value}:{variant_id}"


def publish_job_payload(variant_id: UUID) -> dict:
    return {"post_variant_id": str(variant_id)}


class BgJobPublishScheduler:
    """Persists publish jobs to `bg_jobs` in a transaction of its own."""

    def __init__(self, session_factory: sessionmaker | None = None) -> None:
        self._session_factory = session_factory

    def enqueue(self, variant_id: UUID) -> None:
        self._insert(variant_id, run_at=None)

    def schedule(self, variant_id: UUID, *, run_at: datetime) -> None:
        self._insert(variant_id, run_at=run_at)

    def _insert(self, variant_id: UUID, *, run_at: datetime | None) -> None:
        factory = self._session_factory or get_sessionmaker()
        settings = get_settings()
        with factory() as session:
            enqueue_job(
                session=session,
                job_type=JobType.publish_post_variant,
                workspace_id=None,
                payload=publish_job_payload(variant_id),
                dedupe_key=publish_dedupe_key(variant_id),
                run_at=run_at,
                max_attempts=settings.PUBLISH_JOB_MAX_ATTEMPTS,
            )
            session.commit()


def get_publish_scheduler() -> PublishScheduler:
    return BgJobPublishScheduler()
