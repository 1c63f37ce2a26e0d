from __future__ import annotations

import json
import logging
import socket
import threading
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from orchestrator.core.config import Settings
from orchestrator.db.session import get_sessionmaker
from orchestrator.models.enums import JobStatus, JobType, PostState
from orchestrator.models.jobs import BgJob
from orchestrator.models.posts import PostVariant
from orchestrator.providers.base import PublishCancelled
from orchestrator.providers.registry import ProviderRegistry
from orchestrator.services.scheduling import publish_dedupe_key, publish_job_payload
from orchestrator.worker.errors import PermanentJobError
from orchestrator.worker.handlers import handle_job
from orchestrator.worker.queue import enqueue_job

logger = logging.getLogger("orchestrator.worker")

OVERDUE_SWEEP_BATCH_SIZE = 500


@dataclass(frozen=True)
class WorkerConfig:
    poll_interval_seconds: float = 0.5
    overdue_sweep_interval_seconds: float = 60.0
    publish_job_max_attempts: int = 10
    job_lease_seconds: float = 600.0
    worker_id: str = socket.gethostname()
    # Set to stop the loop; also handed to publishers as their cancellation signal.
    stop_event: threading.Event = field(default_factory=threading.Event)

    @classmethod
    def from_settings(cls, settings: Settings) -> WorkerConfig:
        return cls(
            poll_interval_seconds=settings.WORKER_POLL_INTERVAL_SECONDS,
            overdue_sweep_interval_seconds=settings.OVERDUE_SWEEP_INTERVAL_SECONDS,
            publish_job_max_attempts=settings.PUBLISH_JOB_MAX_ATTEMPTS,
            job_lease_seconds=settings.WORKER_JOB_LEASE_SECONDS,
        )


def run_worker_forever(config: WorkerConfig, *, registry: ProviderRegistry | None = None) -> None:
    last_sweep = float("-inf")
    while not config.stop_event.is_set():
        if time.monotonic() - last_sweep >= config.overdue_sweep_interval_seconds:
            run_overdue_sweep(config=config)
            last_sweep = time.monotonic()

        ran = run_one_job(config=config, registry=registry)
        if not ran:
            config.stop_event.wait(config.poll_interval_seconds)


def run_one_job(
    *,
    config: WorkerConfig,
    registry: ProviderRegistry | None = None,
    now: datetime | None = None,
) -> bool:
    session = get_sessionmaker()()
    try:
        job = _claim_next_job(session=session, worker_id=config.worker_id, now=now)
        # Handlers commit their own work, so the claim is made durable first.
        session.commit()
        if job is None:
            return False

        job_id = job.id
        job_type = job.type
        try:
            handle_job(
                session=session,
                job_id=job_id,
                job_type=job_type,
                payload=dict(job.payload or {}),
                registry=registry,
                cancel_event=config.stop_event,
            )
        except PublishCancelled:
            session.rollback()
            _release(session=session, job_id=job_id)
        except PermanentJobError as e:
            session.rollback()
            _mark_failed(session=session, job_id=job_id, error=str(e), permanent=True)
        except Exception as e:
            session.rollback()
            _mark_failed(
                session=session,
                job_id=job_id,
                error=str(e) or type(e).__name__,
                permanent=False,
            )
        else:
            _mark_succeeded(session=session, job_id=job_id)

        session.commit()
        return True
    finally:
        session.close()


def run_overdue_sweep(*, config: WorkerConfig, now: datetime | None = None) -> int:
    session = get_sessionmaker()()
    try:
        # Reclaim first so a variant held by an abandoned job is not enqueued twice.
        reclaim_stale_jobs(session=session, now=now, lease_seconds=config.job_lease_seconds)
        count = enqueue_overdue_variants(
            session=session, now=now, max_attempts=config.publish_job_max_attempts
        )
        session.commit()
        return count
    finally:
        session.close()


def reclaim_stale_jobs(
    *,
    session: Session,
    now: datetime | None = None,
    lease_seconds: float = 600.0,
) -> int:
    """Requeue running jobs whose lock outlived the lease; the holder is presumed dead.

    The abandoned run counts as an attempt, so a job that keeps killing its worker
    still ends up failed.
    """
    ts = now or datetime.now(UTC)
    stale = (
        session.execute(
            select(BgJob)
            .where(
                BgJob.status == JobStatus.running,
                BgJob.locked_at <= ts - timedelta(seconds=lease_seconds),
            )
            .order_by(BgJob.locked_at.asc())
            .limit(OVERDUE_SWEEP_BATCH_SIZE)
            .with_for_update(skip_locked=True)
        )
        .scalars()
        .all()
    )

    for job in stale:
        attempts = int(job.attempts) + 1
        held_by = job.locked_by
        job.attempts = attempts
        job.last_error = f"lease expired while held by {held_by}"
        job.locked_at = None
        job.locked_by = None
        job.updated_at = ts
        if attempts >= int(job.max_attempts):
            job.status = JobStatus.failed
        else:
            job.status = JobStatus.queued
            job.run_at = ts
        logger.warning(
            json.dumps(
                {
                    "event": "worker.job_reclaimed",
                    "job_id": str(job.id),
                    "locked_by": held_by,
                    "attempts": attempts,
                    "status": job.status.value,
                },
                separators=(",", ":"),
                sort_keys=True,
            )
        )

    session.flush()
    return len(stale)


def enqueue_overdue_variants(
    *,
    session: Session,
    now: datetime | None = None,
    max_attempts: int = 10,
) -> int:
    """Queue a publish job for every overdue scheduled variant that has none live."""
    ts = now or datetime.now(UTC)
    variant_ids = (
        session.execute(
            select(PostVariant.id)
            .where(
                PostVariant.state == PostState.scheduled,
                PostVariant.scheduled_at_utc <= ts,
            )
            .order_by(PostVariant.scheduled_at_utc.asc())
            .limit(OVERDUE_SWEEP_BATCH_SIZE)
        )
        .scalars()
        .all()
    )

    enqueued = 0
    for variant_id in variant_ids:
        job_id = enqueue_job(
            session=session,
            job_type=JobType.publish_post_variant,
            workspace_id=None,
            payload=publish_job_payload(variant_id),
            dedupe_key=publish_dedupe_key(variant_id),
            run_at=ts,
            max_attempts=max_attempts,
        )
        if job_id is not None:
            enqueued += 1

    if enqueued:
        logger.info(
            json.dumps(
                {"event": "worker.overdue_sweep", "enqueued": enqueued},
                separators=(",", ":"),
                sort_keys=True,
            )
        )
    return enqueued


def _claim_next_job(*, session: Session, worker_id: str, now: datetime | None) -> BgJob | None:
    ts = now or datetime.now(UTC)
    job = (
        session.execute(
            select(BgJob)
            .where(BgJob.status == JobStatus.queued, BgJob.run_at <= ts)
            .order_by(BgJob.run_at.asc())
            .limit(1)
            .with_for_update(skip_locked=True)
        )
        .scalars()
        .first()
    )
    if job is None:
        return None

    job.status = JobStatus.running
    job.locked_at = ts
    job.locked_by = worker_id
    job.updated_at = ts
    session.flush()
    return job


def _load_for_update(*, session: Session, job_id: UUID) -> BgJob | None:
    return (
        session.execute(select(BgJob).where(BgJob.id == job_id).with_for_update())
        .scalars()
        .first()
    )


def _mark_succeeded(*, session: Session, job_id: UUID) -> None:
    job = _load_for_update(session=session, job_id=job_id)
    if job is None:
        return
    job.status = JobStatus.succeeded
    job.updated_at = datetime.now(UTC)


def _release(*, session: Session, job_id: UUID) -> None:
    job = _load_for_update(session=session, job_id=job_id)
    if job is None:
        return
    now = datetime.now(UTC)
    job.status = JobStatus.queued
    job.locked_at = None
    job.locked_by = None
    job.updated_at = now
    logger.info(
        json.dumps(
            {"event": "worker.job_released", "job_id": str(job_id), "attempts": job.attempts},
            separators=(",", ":"),
            sort_keys=True,
        )
    )


def _mark_failed(*, session: Session, job_id: UUID, error: str, permanent: bool) -> None:
    job = _load_for_update(session=session, job_id=job_id)
    if job is None:
        return
    now = datetime.now(UTC)
    attempts = int(job.attempts) + 1

    job.attempts = attempts
    job.last_error = error
    job.locked_at = None
    job.locked_by = None
    job.updated_at = now

    if permanent or attempts >= int(job.max_attempts):
        job.status = JobStatus.failed
        logger.warning(
            json.dumps(
                {
                    "event": "worker.job_failed",
                    "job_id": str(job_id),
                    "job_type": job.type.value,
                    "attempts": attempts,
                    "permanent": permanent,
                    "error": error,
                },
                separators=(",", ":"),
                sort_keys=True,
            )
        )
        return

    backoff_seconds = min(60.0, 0.5 * (2 ** min(attempts, 8)))
    job.status = JobStatus.queued
    job.run_at = now + timedelta(seconds=backoff_seconds)
