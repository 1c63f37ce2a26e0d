from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from orchestrator.core.deps import require_user_id
from orchestrator.db.session import get_session
from orchestrator.providers.factory import get_provider_registry
from orchestrator.providers.registry import ProviderRegistry
from orchestrator.schemas.social_accounts import SocialAccountSummary
from orchestrator.services.social_accounts import (
    disconnect_social_account,
    list_social_accounts,
)
from orchestrator.services.workspaces import require_workspace_member

router = APIRouter(prefix="/workspaces/{workspace_id}/social-accounts", tags=["social-accounts"])


@router.get("", response_model=list[SocialAccountSummary])
def social_accounts_list(
    workspace_id: UUID,
    user_id: UUID = Depends(require_user_id),
    session: Session = Depends(get_session),
) -> list[SocialAccountSummary]:
    require_workspace_member(session=session, workspace_id=workspace_id, user_id=user_id)
    return list_social_accounts(session=session, workspace_id=workspace_id)


@router.delete("/{social_account_id}", status_code=status.HTTP_204_NO_CONTENT)
def social_account_disconnect(
    workspace_id: UUID,
    social_account_id: UUID,
    user_id: UUID = Depends(require_user_id),
    session: Session = Depends(get_session),
    registry: ProviderRegistry = Depends(get_provider_registry),
) -> Response:
    require_workspace_member(session=session, workspace_id=workspace_id, user_id=user_id)
    disconnect_social_account(
        session=session,
        registry=registry,
        workspace_id=workspace_id,
        social_account_id=social_account_id,
        actor_user_id=user_id,
    )
    session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
