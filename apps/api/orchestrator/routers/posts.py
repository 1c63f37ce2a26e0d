from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from orchestrator.core.config import get_settings
from orchestrator.core.deps import get_time_zone_resolver, require_user_id
from orchestrator.core.errors import ValidationFailed
from orchestrator.db.session import get_session
from orchestrator.models.enums import PostState
from orchestrator.schemas.posts import CreatePostWithVariantsRequest, Page, PostDetail, PostListItem
from orchestrator.services.posts import (
    PostListFilters,
    create_post_with_variants,
    get_post,
    list_posts,
)
from orchestrator.services.scheduling import PublishScheduler, get_publish_scheduler
from orchestrator.services.time_zones import TimeZoneResolver

router = APIRouter(prefix="/workspaces/{workspace_id}/posts", tags=["posts"])


@router.post("", response_model=PostDetail, status_code=status.HTTP_201_CREATED)
def posts_create(
    workspace_id: UUID,
    payload: CreatePostWithVariantsRequest,
    user_id: UUID = Depends(require_user_id),
    session: Session = Depends(get_session),
    scheduler: PublishScheduler = Depends(get_publish_scheduler),
    tz_resolver: TimeZoneResolver = Depends(get_time_zone_resolver),
) -> PostDetail:
    return create_post_with_variants(
        session=session,
        scheduler=scheduler,
        tz_resolver=tz_resolver,
        workspace_id=workspace_id,
        user_id=user_id,
        post=payload.post,
        variants=payload.variants,
    )


@router.get("", response_model=Page[PostListItem])
def posts_list(
    workspace_id: UUID,
    page_number: int = Query(default=1),
    page_size: int = Query(default=20),
    state: PostState | None = None,
    social_account_id: UUID | None = None,
    from_utc: datetime | None = None,
    to_utc: datetime | None = None,
    user_id: UUID = Depends(require_user_id),
    session: Session = Depends(get_session),
) -> Page[PostListItem]:
    max_page_size = get_settings().POSTS_MAX_PAGE_SIZE
    if page_size > max_page_size:
        raise ValidationFailed(f"page_size must not exceed {max_page_size}")
    for name, value in (("from_utc", from_utc), ("to_utc", to_utc)):
        if value is not None and value.tzinfo is None:
            raise ValidationFailed(f"{name} must include a UTC offset")

    return list_posts(
        session=session,
        filters=PostListFilters(
            workspace_id=workspace_id,
            user_id=user_id,
            page_number=page_number,
            page_size=page_size,
            state=state,
            social_account_id=social_account_id,
            from_utc=from_utc,
            to_utc=to_utc,
        ),
    )


@router.get("/{post_id}", response_model=PostDetail)
def posts_get(
    workspace_id: UUID,
    post_id: UUID,
    user_id: UUID = Depends(require_user_id),
    session: Session = Depends(get_session),
) -> PostDetail:
    return get_post(session=session, workspace_id=workspace_id, post_id=post_id, user_id=user_id)
