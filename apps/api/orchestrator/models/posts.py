from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Enum, ForeignKey, Index, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orchestrator.models.base import Base, UTCDateTime, utcnow
from orchestrator.models.enums import PostState, PostType


class Post(Base):
    __tablename__ = "posts"
    __table_args__ = (Index("posts_workspace_created_idx", "workspace_id", "created_at"),)

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    workspace_id: Mapped[UUID] = mapped_column(
        ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by_user_id: Mapped[UUID] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    variants: Mapped[list[PostVariant]] = relationship(
        back_populates="post",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class PostVariant(Base):
    __tablename__ = "post_variants"
    __table_args__ = (
        Index("post_variants_post_idx", "post_id"),
        Index("post_variants_due_idx", "state", "scheduled_at_utc"),
    )

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    post_id: Mapped[UUID] = mapped_column(ForeignKey("posts.id", ondelete="CASCADE"), nullable=False)
    social_account_id: Mapped[UUID] = mapped_column(
        ForeignKey("social_accounts.id", ondelete="RESTRICT"), nullable=False
    )
    type: Mapped[PostType] = mapped_column(
        Enum(PostType, name="post_type", native_enum=False, length=16), nullable=False
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)
    link_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    media_asset_id: Mapped[UUID | None] = mapped_column(nullable=True)

    state: Mapped[PostState] = mapped_column(
        Enum(PostState, name="post_state", native_enum=False, length=16),
        nullable=False,
        default=PostState.draft,
    )
    scheduled_at_utc: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    published_at_utc: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    provider_post_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    post: Mapped[Post] = relationship(back_populates="variants")
