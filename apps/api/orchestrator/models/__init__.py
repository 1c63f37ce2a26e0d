from __future__ import annotations

from orchestrator.models.audit import AuditEvent  # noqa: F401
from orchestrator.models.base import Base as Base  # noqa: F401
from orchestrator.models.enums import (  # noqa: F401
    JobStatus,
    JobType,
    PostState,
    PostType,
    SocialNetworkType,
    WorkspaceRole,
)
from orchestrator.models.jobs import BgJob  # noqa: F401
from orchestrator.models.posts import Post, PostVariant  # noqa: F401
from orchestrator.models.social import AuthToken, SocialAccount  # noqa: F401
from orchestrator.models.workspaces import Workspace, WorkspaceMember  # noqa: F401
