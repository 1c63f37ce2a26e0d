from __future__ import annotations

from datetime import datetime
from typing import Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from orchestrator.models.enums import PostState, PostType

T = TypeVar("T")


class PostCreateRequest(BaseModel):
    title: str | None = Field(default=None, max_length=500)
    notes: str | None = None


class PostVariantCreateRequest(BaseModel):
    social_account_id: UUID
    type: PostType = PostType.status
    text: str
    link_url: str | None = None
    media_asset_id: UUID | None = None
    # Wall-clock time in the workspace's time zone; any offset sent is ignored.
    scheduled_at: datetime


class CreatePostWithVariantsRequest(BaseModel):
    post: PostCreateRequest = Field(default_factory=PostCreateRequest)
    variants: list[PostVariantCreateRequest] = Field(default_factory=list)


class PostVariantSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    social_account_id: UUID
    type: PostType
    text: str
    state: PostState
    scheduled_at_utc: datetime | None
    published_at_utc: datetime | None
    last_error_message: str | None


class PostDetail(BaseModel):
    id: UUID
    workspace_id: UUID
    title: str | None
    notes: str | None
    created_by_user_id: UUID
    created_at: datetime
    variants: list[PostVariantSummary]


class PostListItem(BaseModel):
    id: UUID
    title: str | None
    created_at: datetime
    variant_count: int
    published_count: int
    failed_count: int
    scheduled_count: int


class Page(BaseModel, Generic[T]):
    items: list[T]
    page_number: int
    page_size: int
    total_count: int
