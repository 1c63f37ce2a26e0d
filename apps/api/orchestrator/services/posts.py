from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from orchestrator.core.errors import NotFoundError, ValidationFailed
from orchestrator.models.enums import PostState
from orchestrator.models.posts import Post, PostVariant
from orchestrator.models.social import SocialAccount
from orchestrator.schemas.posts import (
    Page,
    PostCreateRequest,
    PostDetail,
    PostListItem,
    PostVariantCreateRequest,
    PostVariantSummary,
)
from orchestrator.services.audit import log_event
from orchestrator.services.scheduling import PublishScheduler
from orchestrator.services.time_zones import (
    NonexistentLocalTimeError,
    TimeZoneResolver,
    local_to_utc,
)
from orchestrator.services.workspaces import load_workspace_for_member, require_workspace_member

logger = logging.getLogger("orchestrator.posts")


@dataclass(frozen=True)
class PostListFilters:
    workspace_id: UUID
    user_id: UUID
    page_number: int = 1
    page_size: int = 20
    state: PostState | None = None
    social_account_id: UUID | None = None
    from_utc: datetime | None = None
    to_utc: datetime | None = None


def create_post_with_variants(
    *,
    session: Session,
    scheduler: PublishScheduler,
    tz_resolver: TimeZoneResolver,
    workspace_id: UUID,
    user_id: UUID,
    post: PostCreateRequest,
    variants: list[PostVariantCreateRequest],
    now: datetime | None = None,
) -> PostDetail:
    if not variants:
        raise ValidationFailed("At least one post variant is required")

    workspace = load_workspace_for_member(
        session=session, workspace_id=workspace_id, user_id=user_id
    )

    zone = tz_resolver.resolve(workspace.time_zone)
    if zone is None:
        logger.warning(
            json.dumps(
                {
                    "event": "workspace.time_zone.unresolved",
                    "workspace_id": str(workspace.id),
                    "time_zone": workspace.time_zone,
                    "fallback": "UTC",
                },
                separators=(",", ":"),
                sort_keys=True,
            )
        )
        zone = UTC

    utc_now = now or datetime.now(UTC)

    account_ids = {v.social_account_id for v in variants}
    known_ids = set(
        session.execute(
            select(SocialAccount.id).where(
                SocialAccount.workspace_id == workspace.id,
                SocialAccount.id.in_(account_ids),
            )
        )
        .scalars()
        .all()
    )
    if account_ids - known_ids:
        raise ValidationFailed("One or more social accounts do not belong to the workspace")

    row = Post(
        workspace_id=workspace.id,
        title=post.title,
        notes=post.notes,
        created_by_user_id=user_id,
        created_at=utc_now,
    )
    for req in variants:
        try:
            scheduled_utc = local_to_utc(req.scheduled_at, zone)
        except NonexistentLocalTimeError as e:
            raise ValidationFailed(f"Scheduled time {e}") from e
        row.variants.append(
            PostVariant(
                social_account_id=req.social_account_id,
                type=req.type,
                text=req.text,
                link_url=req.link_url,
                media_asset_id=req.media_asset_id,
                state=PostState.scheduled,
                scheduled_at_utc=scheduled_utc,
                created_at=utc_now,
            )
        )

    try:
        session.add(row)
        session.flush()
        log_event(
            session=session,
            workspace_id=workspace.id,
            actor_user_id=user_id,
            event_type="posts.created",
            event_data={"post_id": str(row.id), "variant_count": len(row.variants)},
        )
        session.commit()
    except Exception:
        session.rollback()
        raise

    # Dispatch only after commit so the worker never sees an uncommitted variant id.
    for variant in row.variants:
        _dispatch_variant(scheduler=scheduler, variant=variant, now=utc_now)

    return _to_detail(row, row.variants)


def _dispatch_variant(*, scheduler: PublishScheduler, variant: PostVariant, now: datetime) -> None:
    try:
        if variant.scheduled_at_utc is not None and variant.scheduled_at_utc > now:
            scheduler.schedule(variant.id, run_at=variant.scheduled_at_utc)
        else:
            scheduler.enqueue(variant.id)
    except Exception:
        # The variant is committed as scheduled; the worker's overdue sweep picks it up.
        logger.exception("publish dispatch failed for post variant %s", variant.id)


def get_post(*, session: Session, workspace_id: UUID, post_id: UUID, user_id: UUID) -> PostDetail:
    require_workspace_member(session=session, workspace_id=workspace_id, user_id=user_id)

    row = (
        session.execute(select(Post).where(Post.id == post_id, Post.workspace_id == workspace_id))
        .scalars()
        .first()
    )
    if row is None:
        raise NotFoundError("Post not found")

    variants = (
        session.execute(
            select(PostVariant)
            .where(PostVariant.post_id == row.id)
            .order_by(
                func.coalesce(PostVariant.scheduled_at_utc, PostVariant.created_at).asc(),
                PostVariant.id.asc(),
            )
        )
        .scalars()
        .all()
    )
    return _to_detail(row, list(variants))


def list_posts(*, session: Session, filters: PostListFilters) -> Page[PostListItem]:
    if filters.page_number <= 0 or filters.page_size <= 0:
        raise ValidationFailed("page_number and page_size must be positive")

    require_workspace_member(
        session=session, workspace_id=filters.workspace_id, user_id=filters.user_id
    )

    conditions = [Post.workspace_id == filters.workspace_id]
    if filters.from_utc is not None:
        conditions.append(Post.created_at >= filters.from_utc)
    if filters.to_utc is not None:
        conditions.append(Post.created_at <= filters.to_utc)
    if filters.state is not None:
        conditions.append(
            select(PostVariant.id)
            .where(PostVariant.post_id == Post.id, PostVariant.state == filters.state)
            .exists()
        )
    if filters.social_account_id is not None:
        conditions.append(
            select(PostVariant.id)
            .where(
                PostVariant.post_id == Post.id,
                PostVariant.social_account_id == filters.social_account_id,
            )
            .exists()
        )

    total = session.execute(select(func.count()).select_from(Post).where(*conditions)).scalar_one()

    posts = (
        session.execute(
            select(Post)
            .where(*conditions)
            .order_by(Post.created_at.desc(), Post.id.desc())
            .offset((filters.page_number - 1) * filters.page_size)
            .limit(filters.page_size)
        )
        .scalars()
        .all()
    )

    counts = _variant_counts(session=session, post_ids=[p.id for p in posts])
    items = []
    for p in posts:
        c = counts.get(p.id, {})
        items.append(
            PostListItem(
                id=p.id,
                title=p.title,
                created_at=p.created_at,
                variant_count=c.get("total", 0),
                published_count=c.get(PostState.published, 0),
                failed_count=c.get(PostState.failed, 0),
                scheduled_count=c.get(PostState.scheduled, 0),
            )
        )

    return Page[PostListItem](
        items=items,
        page_number=filters.page_number,
        page_size=filters.page_size,
        total_count=int(total),
    )


def _variant_counts(*, session: Session, post_ids: list[UUID]) -> dict[UUID, dict]:
    if not post_ids:
        return {}

    def _count_state(state: PostState):  # type: ignore[no-untyped-def]
        return func.sum(case((PostVariant.state == state, 1), else_=0))

    rows = session.execute(
        select(
            PostVariant.post_id,
            func.count(PostVariant.id),
            _count_state(PostState.published),
            _count_state(PostState.failed),
            _count_state(PostState.scheduled),
        )
        .where(PostVariant.post_id.in_(post_ids))
        .group_by(PostVariant.post_id)
    ).all()

    return {
        post_id: {
            "total": int(total or 0),
            PostState.published: int(published or 0),
            PostState.failed: int(failed or 0),
            PostState.scheduled: int(scheduled or 0),
        }
        for post_id, total, published, failed, scheduled in rows
    }


def _to_detail(row: Post, variants: list[PostVariant]) -> PostDetail:
    return PostDetail(
        id=row.id,
        workspace_id=row.workspace_id,
        title=row.title,
        notes=row.notes,
        created_by_user_id=row.created_by_user_id,
        created_at=row.created_at,
        variants=[PostVariantSummary.model_validate(v) for v in variants],
    )
