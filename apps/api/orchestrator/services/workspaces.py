from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from orchestrator.core.errors import ForbiddenError, NotFoundError
from orchestrator.models.workspaces import Workspace, WorkspaceMember


def is_workspace_member(*, session: Session, workspace_id: UUID, user_id: UUID) -> bool:
    owner = (
        session.execute(
            select(Workspace.id).where(
                Workspace.id == workspace_id,
                Workspace.owner_user_id == user_id,
            )
        )
        .scalars()
        .first()
    )
    if owner is not None:
        return True

    member = (
        session.execute(
            select(WorkspaceMember.id).where(
                WorkspaceMember.workspace_id == workspace_id,
                WorkspaceMember.user_id == user_id,
            )
        )
        .scalars()
        .first()
    )
    return member is not None


def require_workspace_member(*, session: Session, workspace_id: UUID, user_id: UUID) -> None:
    if not is_workspace_member(session=session, workspace_id=workspace_id, user_id=user_id):
        raise ForbiddenError("User does not belong to the workspace")


def load_workspace_for_member(*, session: Session, workspace_id: UUID, user_id: UUID) -> Workspace:
    workspace = session.get(Workspace, workspace_id)
    if workspace is None:
        raise NotFoundError("Workspace not found")
    require_workspace_member(session=session, workspace_id=workspace_id, user_id=user_id)
    return workspace
