from __future__ import annotations

import html
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from orchestrator.core.deps import require_user_id
from orchestrator.core.errors import NotFoundError, ServiceError
from orchestrator.core.state_tokens import StateTokenSigner, get_state_token_signer
from orchestrator.db.session import get_session
from orchestrator.models.enums import SocialNetworkType
from orchestrator.providers.factory import get_provider_registry
from orchestrator.providers.registry import ProviderRegistry
from orchestrator.schemas.oauth import AuthorizationUrlResponse
from orchestrator.services.social_accounts import connect_or_update_social_account
from orchestrator.services.workspaces import load_workspace_for_member, require_workspace_member

router = APIRouter(prefix="/oauth", tags=["oauth"])
logger = logging.getLogger("orchestrator.api")


@router.get("/{network}/authorize", response_model=AuthorizationUrlResponse)
def oauth_authorize(
    network: SocialNetworkType,
    workspace_id: UUID = Query(...),
    user_id: UUID = Depends(require_user_id),
    session: Session = Depends(get_session),
    registry: ProviderRegistry = Depends(get_provider_registry),
    signer: StateTokenSigner = Depends(get_state_token_signer),
) -> AuthorizationUrlResponse:
    provider = registry.auth_provider(network)
    if provider is None:
        raise NotFoundError(f"OAuth is not available for {network.value}")

    load_workspace_for_member(session=session, workspace_id=workspace_id, user_id=user_id)
    state = signer.create(workspace_id, user_id)
    url = provider.get_authorization_url(workspace_id, user_id, state)
    return AuthorizationUrlResponse(authorization_url=url)


@router.get("/{network}/callback", response_class=HTMLResponse)
def oauth_callback(
    network: str,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    session: Session = Depends(get_session),
    registry: ProviderRegistry = Depends(get_provider_registry),
    signer: StateTokenSigner = Depends(get_state_token_signer),
) -> HTMLResponse:
    # Unknown networks get the HTML error page too.
    try:
        network_type = SocialNetworkType(network)
    except ValueError:
        return _error_page(f"OAuth is not available for {network}.")

    if error:
        return _error_page(f"The provider reported an error: {error}")
    if not (code or "").strip() or not (state or "").strip():
        return _error_page("The authorization response is missing its code or state.")

    provider = registry.auth_provider(network_type)
    if provider is None:
        return _error_page(f"OAuth is not available for {network_type.value}.")

    try:
        workspace_id, user_id = signer.verify(state)
        require_workspace_member(session=session, workspace_id=workspace_id, user_id=user_id)

        result = provider.handle_callback(code, state)
        if not result.is_success:
            return _error_page(result.error_message or "Authorization failed.")

        connect_or_update_social_account(
            session=session,
            workspace_id=workspace_id,
            oauth_result=result,
            actor_user_id=user_id,
        )
        session.commit()
    except ServiceError as e:
        session.rollback()
        logger.info("oauth callback rejected (network=%s code=%s)", network_type.value, e.code)
        return _error_page(str(e.detail))

    return _page(
        "Account connected",
        f"Your {network_type.value.capitalize()} account is connected. You can close this window.",
        status_code=status.HTTP_200_OK,
    )


def _error_page(message: str) -> HTMLResponse:
    return _page("Connection failed", message, status_code=status.HTTP_400_BAD_REQUEST)


def _page(title: str, message: str, *, status_code: int) -> HTMLResponse:
    body = (
        "<!doctype html><html><head><meta charset=\"utf-8\">"
        f"<title>{html.escape(title)}</title></head>"
        f"<body><h1>{html.escape(title)}</h1><p>{html.escape(message)}</p></body></html>"
    )
    return HTMLResponse(content=body, status_code=status_code)
