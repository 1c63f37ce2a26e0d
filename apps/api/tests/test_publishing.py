from __future__ import annotations

import threading
from datetime import UTC, datetime
from uuid import UUID, uuid4

import httpx
import pytest
from sqlalchemy import delete, update
from sqlalchemy.orm import Session

from fakes import RecordingPublisher
from orchestrator.db.session import get_sessionmaker
from orchestrator.models import AuthToken, Post, PostVariant
from orchestrator.models.enums import PostState, PostType, SocialNetworkType
from orchestrator.providers.base import PublishCancelled, PublishResult
from orchestrator.providers.registry import ProviderRegistry
from orchestrator.services.publishing import PublishOutcome, publish_post_variant

NOW = datetime(2025, 7, 1, 13, 0, tzinfo=UTC)


def _scheduled_variant(
    db_session: Session, *, workspace_id: UUID, user_id: UUID, account_id: UUID
) -> UUID:
    post = Post(workspace_id=workspace_id, title="Launch", created_by_user_id=user_id)
    post.variants.append(
        PostVariant(
            social_account_id=account_id,
            type=PostType.status,
            text="Hello world",
            state=PostState.scheduled,
            scheduled_at_utc=NOW,
        )
    )
    db_session.add(post)
    db_session.commit()
    return post.variants[0].id


def _registry(publisher: RecordingPublisher | None = None) -> ProviderRegistry:
    registry = ProviderRegistry()
    if publisher is not None:
        registry.register_publisher(publisher)
    return registry


@pytest.fixture()
def variant_id(db_session: Session, make_workspace, make_account) -> UUID:
    workspace_id, user_id = make_workspace()
    account_id = make_account(workspace_id)
    return _scheduled_variant(
        db_session, workspace_id=workspace_id, user_id=user_id, account_id=account_id
    )


def _reload(db_session: Session, variant_id: UUID) -> PostVariant:
    db_session.expire_all()
    variant = db_session.get(PostVariant, variant_id)
    assert variant is not None
    return variant


def test_success_marks_published(db_session: Session, variant_id: UUID) -> None:
    publisher = RecordingPublisher()

    outcome = publish_post_variant(
        session=db_session, registry=_registry(publisher), variant_id=variant_id, now=NOW
    )

    assert outcome == PublishOutcome.published
    variant = _reload(db_session, variant_id)
    assert variant.state == PostState.published
    assert variant.provider_post_id == "fb_123"
    assert variant.published_at_utc == NOW
    assert variant.last_error_message is None


def test_repeat_publish_is_a_no_op(db_session: Session, variant_id: UUID) -> None:
    publisher = RecordingPublisher()
    registry = _registry(publisher)

    publish_post_variant(session=db_session, registry=registry, variant_id=variant_id, now=NOW)
    outcome = publish_post_variant(session=db_session, registry=registry, variant_id=variant_id)

    assert outcome == PublishOutcome.skipped
    assert len(publisher.calls) == 1
    assert _reload(db_session, variant_id).published_at_utc == NOW


@pytest.mark.parametrize(
    "result",
    [PublishResult.published("fb_late"), PublishResult.rejected("duplicate status")],
)
def test_variant_finished_by_another_delivery_mid_call_is_skipped(
    db_session: Session, variant_id: UUID, result: PublishResult
) -> None:
    earlier = datetime(2025, 7, 1, 12, 59, tzinfo=UTC)

    def _other_delivery_finishes() -> None:
        with get_sessionmaker()() as other:
            other.execute(
                update(PostVariant)
                .where(PostVariant.id == variant_id)
                .values(
                    state=PostState.published,
                    published_at_utc=earlier,
                    provider_post_id="fb_first",
                )
            )
            other.commit()

    publisher = RecordingPublisher(result=result, during_call=_other_delivery_finishes)

    outcome = publish_post_variant(
        session=db_session, registry=_registry(publisher), variant_id=variant_id, now=NOW
    )

    assert outcome == PublishOutcome.skipped
    assert publisher.calls == [variant_id]
    variant = _reload(db_session, variant_id)
    assert variant.state == PostState.published
    assert variant.published_at_utc == earlier
    assert variant.provider_post_id == "fb_first"
    assert variant.last_error_message is None


def test_unknown_variant_is_skipped(db_session: Session) -> None:
    outcome = publish_post_variant(
        session=db_session, registry=_registry(RecordingPublisher()), variant_id=uuid4()
    )
    assert outcome == PublishOutcome.skipped


def test_draft_variant_is_skipped(db_session: Session, variant_id: UUID) -> None:
    variant = db_session.get(PostVariant, variant_id)
    variant.state = PostState.draft
    db_session.commit()
    publisher = RecordingPublisher()

    outcome = publish_post_variant(
        session=db_session, registry=_registry(publisher), variant_id=variant_id
    )

    assert outcome == PublishOutcome.skipped
    assert publisher.calls == []


def test_provider_rejection_is_recorded_without_raising(
    db_session: Session, variant_id: UUID
) -> None:
    publisher = RecordingPublisher(result=PublishResult.rejected("Duplicate status message"))

    outcome = publish_post_variant(
        session=db_session, registry=_registry(publisher), variant_id=variant_id
    )

    assert outcome == PublishOutcome.failed
    variant = _reload(db_session, variant_id)
    assert variant.state == PostState.failed
    assert variant.last_error_message == "Duplicate status message"
    assert variant.published_at_utc is None


def test_transient_error_is_recorded_and_reraised(db_session: Session, variant_id: UUID) -> None:
    publisher = RecordingPublisher(error=httpx.ConnectError("connection refused"))

    with pytest.raises(httpx.ConnectError):
        publish_post_variant(
            session=db_session, registry=_registry(publisher), variant_id=variant_id
        )

    variant = _reload(db_session, variant_id)
    assert variant.state == PostState.failed
    assert variant.last_error_message == "connection refused"


def test_cancel_before_call_changes_nothing(db_session: Session, variant_id: UUID) -> None:
    publisher = RecordingPublisher()
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(PublishCancelled):
        publish_post_variant(
            session=db_session,
            registry=_registry(publisher),
            variant_id=variant_id,
            cancel_event=cancel,
        )

    assert publisher.calls == []
    variant = _reload(db_session, variant_id)
    assert variant.state == PostState.scheduled
    assert variant.last_error_message is None


def test_cancel_during_call_changes_nothing(db_session: Session, variant_id: UUID) -> None:
    publisher = RecordingPublisher(set_cancel_during_call=True)

    with pytest.raises(PublishCancelled):
        publish_post_variant(
            session=db_session,
            registry=_registry(publisher),
            variant_id=variant_id,
            cancel_event=threading.Event(),
        )

    assert _reload(db_session, variant_id).state == PostState.scheduled


def test_missing_token_fails_the_variant(db_session: Session, variant_id: UUID) -> None:
    db_session.execute(delete(AuthToken))
    db_session.commit()
    publisher = RecordingPublisher()

    outcome = publish_post_variant(
        session=db_session, registry=_registry(publisher), variant_id=variant_id
    )

    assert outcome == PublishOutcome.failed
    assert _reload(db_session, variant_id).last_error_message == "no auth token available"
    assert publisher.calls == []


def test_missing_publisher_fails_the_variant(db_session: Session, variant_id: UUID) -> None:
    outcome = publish_post_variant(session=db_session, registry=_registry(), variant_id=variant_id)

    assert outcome == PublishOutcome.failed
    assert (
        _reload(db_session, variant_id).last_error_message
        == "no publisher configured for this network"
    )


def test_publisher_is_resolved_by_account_network(
    db_session: Session, make_workspace, make_account
) -> None:
    workspace_id, user_id = make_workspace()
    account_id = make_account(workspace_id, network_type=SocialNetworkType.linkedin)
    variant_id = _scheduled_variant(
        db_session, workspace_id=workspace_id, user_id=user_id, account_id=account_id
    )
    facebook = RecordingPublisher()
    linkedin = RecordingPublisher(
        network_type=SocialNetworkType.linkedin, result=PublishResult.published("li_1")
    )
    registry = _registry(facebook)
    registry.register_publisher(linkedin)

    publish_post_variant(session=db_session, registry=registry, variant_id=variant_id)

    assert facebook.calls == []
    assert linkedin.calls == [variant_id]
    assert _reload(db_session, variant_id).provider_post_id == "li_1"
