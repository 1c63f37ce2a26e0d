from __future__ import annotations

import enum


class WorkspaceRole(enum.StrEnum):
    owner = "owner"
    admin = "admin"
    editor = "editor"
    viewer = "viewer"


class SocialNetworkType(enum.StrEnum):
    facebook = "facebook"
    instagram = "instagram"
    twitter = "twitter"
    linkedin = "linkedin"


class PostType(enum.StrEnum):
    status = "status"
    link = "link"
    photo = "photo"
    video = "video"


class PostState(enum.StrEnum):
    draft = "draft"
    scheduled = "scheduled"
    published = "published"
    failed = "failed"
    # Reserved: no current operation moves a variant here.
    cancelled = "cancelled"


class JobStatus(enum.StrEnum):
    queued = "queued"
    running = "running"
    succeeded = "succeeded"
    failed = "failed"
    cancelled = "cancelled"


class JobType(enum.StrEnum):
    publish_post_variant = "publish_post_variant"
