from __future__ import annotations

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from orchestrator.models.enums import JobStatus, JobType
from orchestrator.models.jobs import BgJob

LIVE_JOB_STATUSES = (JobStatus.queued, JobStatus.running)


def enqueue_job(
    *,
    session: Session,
    job_type: JobType,
    workspace_id: UUID | None,
    payload: dict,
    dedupe_key: str | None,
    run_at: datetime | None = None,
    max_attempts: int = 10,
) -> UUID | None:
    """Insert a queued job; returns None if a live job with the same dedupe key exists."""
    if dedupe_key is not None and has_live_job(session=session, dedupe_key=dedupe_key):
        return None

    now = datetime.now(UTC)
    job = BgJob(
        workspace_id=workspace_id,
        type=job_type,
        status=JobStatus.queued,
        run_at=run_at or now,
        attempts=0,
        max_attempts=max_attempts,
        dedupe_key=dedupe_key,
        payload=payload,
        created_at=now,
        updated_at=now,
    )
    session.add(job)
    session.flush()
    return job.id


def has_live_job(*, session: Session, dedupe_key: str) -> bool:
    row = (
        session.execute(
            select(BgJob.id).where(
                BgJob.dedupe_key == dedupe_key,
                BgJob.status.in_(LIVE_JOB_STATUSES),
            )
        )
        .scalars()
        .first()
    )
    return row is not None
