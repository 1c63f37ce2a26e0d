from __future__ import annotations

import logging
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from orchestrator.core.errors import NotFoundError, ValidationFailed
from orchestrator.models.social import AuthToken, SocialAccount
from orchestrator.providers.base import OAuthCallbackResult
from orchestrator.providers.registry import ProviderRegistry
from orchestrator.schemas.social_accounts import SocialAccountSummary
from orchestrator.services.audit import log_event

logger = logging.getLogger("orchestrator.social_accounts")


def list_social_accounts(*, session: Session, workspace_id: UUID) -> list[SocialAccountSummary]:
    rows = (
        session.execute(
            select(SocialAccount)
            .where(SocialAccount.workspace_id == workspace_id)
            .order_by(SocialAccount.name.asc(), SocialAccount.created_at.asc())
        )
        .scalars()
        .all()
    )
    return [SocialAccountSummary.model_validate(row) for row in rows]


def connect_or_update_social_account(
    *,
    session: Session,
    workspace_id: UUID,
    oauth_result: OAuthCallbackResult,
    actor_user_id: UUID | None = None,
) -> SocialAccountSummary:
    if not oauth_result.is_success:
        raise ValidationFailed(oauth_result.error_message or "OAuth authorization failed")
    if not (oauth_result.external_account_id or "").strip():
        raise ValidationFailed("External account id is missing from OAuth result")
    if not (oauth_result.account_name or "").strip():
        raise ValidationFailed("Account name is missing from OAuth result")

    try:
        account, created = _upsert_account_and_token(
            session=session, workspace_id=workspace_id, oauth_result=oauth_result
        )
    except IntegrityError:
        # A concurrent connect for the same external account committed first.
        # Re-run against the winning row; the last writer's name and token stick.
        session.rollback()
        logger.info(
            "social account connect raced; retrying as update (workspace_id=%s network=%s)",
            workspace_id,
            oauth_result.network_type.value,
        )
        account, created = _upsert_account_and_token(
            session=session, workspace_id=workspace_id, oauth_result=oauth_result
        )

    log_event(
        session=session,
        workspace_id=workspace_id,
        actor_user_id=actor_user_id,
        event_type="social_accounts.connected",
        event_data={
            "social_account_id": str(account.id),
            "network_type": account.network_type.value,
            "created": created,
        },
    )
    return SocialAccountSummary.model_validate(account)


def _upsert_account_and_token(
    *,
    session: Session,
    workspace_id: UUID,
    oauth_result: OAuthCallbackResult,
) -> tuple[SocialAccount, bool]:
    now = datetime.now(UTC)

    account = (
        session.execute(
            select(SocialAccount).where(
                SocialAccount.workspace_id == workspace_id,
                SocialAccount.network_type == oauth_result.network_type,
                SocialAccount.external_account_id == oauth_result.external_account_id,
            )
        )
        .scalars()
        .first()
    )
    created = account is None
    if account is None:
        account = SocialAccount(
            workspace_id=workspace_id,
            network_type=oauth_result.network_type,
            external_account_id=oauth_result.external_account_id,
            name=oauth_result.account_name,
            username=oauth_result.account_username,
            is_active=True,
            requires_reauthorization=False,
            created_at=now,
        )
        session.add(account)
        session.flush()
    else:
        account.name = oauth_result.account_name
        account.username = oauth_result.account_username
        account.is_active = True
        account.requires_reauthorization = False
        account.updated_at = now
        session.add(account)
        session.flush()

    token = (
        session.execute(select(AuthToken).where(AuthToken.social_account_id == account.id))
        .scalars()
        .first()
    )
    if token is None:
        token = AuthToken(
            social_account_id=account.id,
            access_token=oauth_result.access_token,
            refresh_token=oauth_result.refresh_token,
            expires_at_utc=oauth_result.expires_at_utc,
            scopes=list(oauth_result.scopes),
            created_at=now,
        )
        session.add(token)
        session.flush()
    else:
        token.access_token = oauth_result.access_token
        token.refresh_token = oauth_result.refresh_token
        token.expires_at_utc = oauth_result.expires_at_utc
        token.scopes = list(oauth_result.scopes)
        token.updated_at = now
        session.add(token)
        session.flush()

    return account, created


def disconnect_social_account(
    *,
    session: Session,
    registry: ProviderRegistry,
    workspace_id: UUID,
    social_account_id: UUID,
    actor_user_id: UUID | None = None,
) -> None:
    account = (
        session.execute(
            select(SocialAccount).where(
                SocialAccount.id == social_account_id,
                SocialAccount.workspace_id == workspace_id,
            )
        )
        .scalars()
        .first()
    )
    if account is None:
        raise NotFoundError("Social account not found for this workspace")

    token = (
        session.execute(select(AuthToken).where(AuthToken.social_account_id == account.id))
        .scalars()
        .first()
    )

    # Order matters: revoke with the stored values, then drop them locally.
    if token is not None:
        _revoke_best_effort(
            registry=registry,
            account=account,
            access_token=token.access_token,
            refresh_token=token.refresh_token,
        )
        session.delete(token)

    account.is_active = False
    account.requires_reauthorization = True
    account.updated_at = datetime.now(UTC)
    session.add(account)
    session.flush()

    log_event(
        session=session,
        workspace_id=workspace_id,
        actor_user_id=actor_user_id,
        event_type="social_accounts.disconnected",
        event_data={
            "social_account_id": str(account.id),
            "network_type": account.network_type.value,
            "had_token": token is not None,
        },
    )


def _revoke_best_effort(
    *,
    registry: ProviderRegistry,
    account: SocialAccount,
    access_token: str,
    refresh_token: str | None,
) -> None:
    provider = registry.auth_provider(account.network_type)
    if provider is None:
        return
    try:
        provider.revoke(access_token, refresh_token)
    except Exception as e:  # noqa: BLE001
        # Local disconnection must succeed regardless of the provider.
        logger.warning(
            "token revocation failed for social account %s: %s",
            account.id,
            e,
        )
