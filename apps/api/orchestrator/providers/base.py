from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol
from uuid import UUID

from orchestrator.models.enums import SocialNetworkType
from orchestrator.models.posts import PostVariant
from orchestrator.models.social import AuthToken, SocialAccount


class PublishCancelled(Exception):
    """The publish attempt was abandoned before the provider confirmed anything."""


@dataclass(frozen=True)
class OAuthCallbackResult:
    is_success: bool
    network_type: SocialNetworkType
    error_message: str | None = None
    external_account_id: str = ""
    account_name: str = ""
    account_username: str | None = None
    access_token: str = ""
    refresh_token: str | None = None
    expires_at_utc: datetime | None = None
    scopes: list[str] = field(default_factory=list)

    @classmethod
    def failure(cls, network_type: SocialNetworkType, error: str) -> OAuthCallbackResult:
        return cls(is_success=False, network_type=network_type, error_message=error)


@dataclass(frozen=True)
class PublishResult:
    success: bool
    provider_post_id: str | None = None
    error_message: str | None = None

    @classmethod
    def published(cls, provider_post_id: str) -> PublishResult:
        return cls(success=True, provider_post_id=provider_post_id)

    @classmethod
    def rejected(cls, error_message: str) -> PublishResult:
        return cls(success=False, error_message=error_message)


class AuthProvider(Protocol):
    network_type: SocialNetworkType

    def get_authorization_url(self, workspace_id: UUID, user_id: UUID, state: str) -> str:
        """Build the provider consent URL. Raises ProviderConfigError if unconfigured."""
        ...

    def handle_callback(self, code: str, state: str) -> OAuthCallbackResult:
        """Exchange the code and fetch identity; expected failures come back as results."""
        ...

    def revoke(self, access_token: str, refresh_token: str | None) -> None:
        """Best-effort upstream revocation. Never raises."""
        ...


class Publisher(Protocol):
    network_type: SocialNetworkType

    def publish(
        self,
        variant: PostVariant,
        account: SocialAccount,
        token: AuthToken,
        cancel_event: threading.Event | None,
    ) -> PublishResult:
        """Publish one variant.

        Return a rejected result when the provider understood and refused the
        request. Raise for technical failures so the job can be retried, and raise
        PublishCancelled if `cancel_event` fires before the provider answers.
        """
        ...


def raise_if_cancelled(cancel_event: threading.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise PublishCancelled("publish cancelled")
