from __future__ import annotations

import json
import logging
import threading
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from orchestrator.core.metrics import observe_publish_outcome
from orchestrator.models.enums import PostState
from orchestrator.models.posts import PostVariant
from orchestrator.models.social import AuthToken, SocialAccount
from orchestrator.providers.base import PublishCancelled, raise_if_cancelled
from orchestrator.providers.registry import ProviderRegistry

logger = logging.getLogger("orchestrator.publishing")


class PublishOutcome(StrEnum):
    published = "published"
    failed = "failed"
    skipped = "skipped"


def publish_post_variant(
    *,
    session: Session,
    registry: ProviderRegistry,
    variant_id: UUID,
    cancel_event: threading.Event | None = None,
    now: datetime | None = None,
) -> PublishOutcome:
    """Publish one scheduled variant and record the terminal state.

    Provider exceptions other than PublishCancelled are recorded as a failure and
    re-raised so the caller can retry. A cancelled attempt leaves the row untouched.
    """
    variant = (
        session.execute(
            select(PostVariant)
            .where(PostVariant.id == variant_id)
            .with_for_update(skip_locked=True)
        )
        .scalars()
        .first()
    )
    if variant is None or variant.state != PostState.scheduled:
        session.rollback()
        _log(
            "publish.skipped",
            variant_id=variant_id,
            state=None if variant is None else variant.state.value,
        )
        return PublishOutcome.skipped

    account = session.get(SocialAccount, variant.social_account_id)
    if account is None:
        return _finish_failed(
            session=session,
            variant=variant,
            network=None,
            error="account not found for post variant",
            now=now,
        )
    network = account.network_type.value

    token = (
        session.execute(select(AuthToken).where(AuthToken.social_account_id == account.id))
        .scalars()
        .first()
    )
    if token is None:
        return _finish_failed(
            session=session,
            variant=variant,
            network=network,
            error="no auth token available",
            now=now,
        )

    publisher = registry.publisher(account.network_type)
    if publisher is None:
        return _finish_failed(
            session=session,
            variant=variant,
            network=network,
            error="no publisher configured for this network",
            now=now,
        )

    try:
        raise_if_cancelled(cancel_event)
        result = publisher.publish(variant, account, token, cancel_event)
    except PublishCancelled:
        session.rollback()
        _log("publish.cancelled", variant_id=variant_id, network=network)
        raise
    except Exception as e:
        _finish_failed(
            session=session,
            variant=variant,
            network=network,
            error=str(e) or type(e).__name__,
            now=now,
        )
        raise

    if not result.success:
        return _finish_failed(
            session=session,
            variant=variant,
            network=network,
            error=result.error_message or "publish rejected by provider",
            now=now,
        )

    ts = now or datetime.now(UTC)
    applied = _transition(
        session=session,
        variant_id=variant.id,
        values={
            "state": PostState.published,
            "published_at_utc": ts,
            "provider_post_id": result.provider_post_id,
            "last_error_message": None,
            "updated_at": ts,
        },
    )
    if not applied:
        _log("publish.already_finished", variant_id=variant_id, network=network)
        observe_publish_outcome(network=network, outcome=PublishOutcome.skipped.value)
        return PublishOutcome.skipped

    _log(
        "publish.published",
        variant_id=variant_id,
        network=network,
        provider_post_id=result.provider_post_id,
    )
    observe_publish_outcome(network=network, outcome=PublishOutcome.published.value)
    return PublishOutcome.published


def _finish_failed(
    *,
    session: Session,
    variant: PostVariant,
    network: str | None,
    error: str,
    now: datetime | None,
) -> PublishOutcome:
    ts = now or datetime.now(UTC)
    applied = _transition(
        session=session,
        variant_id=variant.id,
        values={"state": PostState.failed, "last_error_message": error[:2000], "updated_at": ts},
    )
    if not applied:
        _log("publish.already_finished", variant_id=variant.id, network=network)
        observe_publish_outcome(network=network, outcome=PublishOutcome.skipped.value)
        return PublishOutcome.skipped

    logger.warning(
        json.dumps(
            {
                "event": "publish.failed",
                "post_variant_id": str(variant.id),
                "network": network,
                "error": error,
            },
            separators=(",", ":"),
            sort_keys=True,
        )
    )
    observe_publish_outcome(network=network, outcome=PublishOutcome.failed.value)
    return PublishOutcome.failed


def _transition(*, session: Session, variant_id: UUID, values: dict[str, Any]) -> bool:
    try:
        res = session.execute(
            update(PostVariant)
            .where(PostVariant.id == variant_id, PostVariant.state == PostState.scheduled)
            .values(**values)
        )
        session.commit()
    except Exception:
        session.rollback()
        raise
    return res.rowcount == 1


def _log(event: str, *, variant_id: UUID, **fields: Any) -> None:
    payload = {"event": event, "post_variant_id": str(variant_id)}
    payload.update({k: v for k, v in fields.items() if v is not None})
    logger.info(json.dumps(payload, separators=(",", ":"), sort_keys=True))
