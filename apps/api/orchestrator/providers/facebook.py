from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from urllib.parse import urlencode
from uuid import UUID

import httpx

from orchestrator.core.config import Settings
from orchestrator.core.errors import ProviderConfigError
from orchestrator.models.enums import PostType, SocialNetworkType
from orchestrator.models.posts import PostVariant
from orchestrator.models.social import AuthToken, SocialAccount
from orchestrator.providers.base import (
    OAuthCallbackResult,
    PublishResult,
    raise_if_cancelled,
)

logger = logging.getLogger("orchestrator.providers")


@dataclass(frozen=True)
class FacebookOptions:
    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = ""
    authorization_endpoint: str = "https://www.facebook.com/v19.0/dialog/oauth"
    token_endpoint: str = "https://graph.facebook.com/v19.0/oauth/access_token"
    graph_api_base_url: str = "https://graph.facebook.com/v19.0"
    default_scopes: list[str] = field(default_factory=list)

    @classmethod
    def from_settings(cls, settings: Settings) -> FacebookOptions:
        return cls(
            client_id=settings.FACEBOOK_CLIENT_ID,
            client_secret=settings.FACEBOOK_CLIENT_SECRET,
            redirect_uri=settings.FACEBOOK_REDIRECT_URI
            or f"{settings.API_BASE_URL}/oauth/facebook/callback",
            authorization_endpoint=settings.FACEBOOK_AUTHORIZATION_ENDPOINT,
            token_endpoint=settings.FACEBOOK_TOKEN_ENDPOINT,
            graph_api_base_url=settings.FACEBOOK_GRAPH_API_BASE_URL.rstrip("/"),
            default_scopes=settings.facebook_scopes,
        )


class FacebookAuthProvider:
    network_type = SocialNetworkType.facebook

    def __init__(self, client: httpx.Client, options: FacebookOptions) -> None:
        self._client = client
        self._options = options

    def get_authorization_url(self, workspace_id: UUID, user_id: UUID, state: str) -> str:
        _ = workspace_id, user_id
        opts = self._options
        if not opts.client_id or not opts.redirect_uri or not opts.authorization_endpoint:
            raise ProviderConfigError("Facebook OAuth is not configured on the server")

        params = {
            "client_id": opts.client_id,
            "redirect_uri": opts.redirect_uri,
            "state": state,
            "response_type": "code",
            "scope": ",".join(opts.default_scopes),
        }
        return f"{opts.authorization_endpoint}?{urlencode(params)}"

    def handle_callback(self, code: str, state: str) -> OAuthCallbackResult:
        _ = state
        if not (code or "").strip():
            return self._failure("Missing authorization code.")

        opts = self._options
        if (
            not opts.client_id
            or not opts.client_secret
            or not opts.redirect_uri
            or not opts.token_endpoint
        ):
            return self._failure("Facebook OAuth is not configured correctly on the server.")

        try:
            token_res = self._client.get(
                opts.token_endpoint,
                params={
                    "client_id": opts.client_id,
                    "client_secret": opts.client_secret,
                    "redirect_uri": opts.redirect_uri,
                    "code": code,
                },
            )
        except httpx.HTTPError as e:
            return self._failure(f"Error contacting Facebook token endpoint: {e}")

        if token_res.status_code >= 400:
            return self._failure(
                "Failed to exchange authorization code for access token "
                f"(HTTP {token_res.status_code})."
            )

        try:
            token_payload = token_res.json()
        except ValueError:
            return self._failure("Unable to parse token response from Facebook.")

        access_token = token_payload.get("access_token") if isinstance(token_payload, dict) else None
        if not isinstance(access_token, str) or not access_token:
            return self._failure("Token response did not contain an access token.")

        try:
            me_res = self._client.get(
                f"{opts.graph_api_base_url}/me",
                params={"access_token": access_token, "fields": "id,name"},
            )
        except httpx.HTTPError as e:
            return self._failure(f"Error fetching account information from Facebook: {e}")

        if me_res.status_code >= 400:
            return self._failure(
                f"Failed to fetch account information from Facebook (HTTP {me_res.status_code})."
            )

        try:
            me_payload = me_res.json()
        except ValueError:
            return self._failure("Unable to parse account information from Facebook.")

        account_id = str(me_payload.get("id") or "").strip() if isinstance(me_payload, dict) else ""
        account_name = str(me_payload.get("name") or "").strip() if isinstance(me_payload, dict) else ""
        if not account_id or not account_name:
            return self._failure("Account information from Facebook is incomplete.")

        expires_at: datetime | None = None
        expires_in = token_payload.get("expires_in")
        if isinstance(expires_in, int | float) and expires_in > 0:
            expires_at = datetime.now(UTC) + timedelta(seconds=int(expires_in))

        return OAuthCallbackResult(
            is_success=True,
            network_type=self.network_type,
            external_account_id=account_id,
            account_name=account_name,
            account_username=None,
            access_token=access_token,
            refresh_token=None,
            expires_at_utc=expires_at,
            scopes=list(opts.default_scopes),
        )

    def revoke(self, access_token: str, refresh_token: str | None) -> None:
        # Deleting the app's permissions invalidates every token for this app-user pair.
        _ = refresh_token
        if not (access_token or "").strip():
            return
        try:
            self._client.delete(
                f"{self._options.graph_api_base_url}/me/permissions",
                params={"access_token": access_token},
            )
        except Exception as e:  # noqa: BLE001
            logger.warning("Facebook token revocation failed: %s", e)

    def _failure(self, message: str) -> OAuthCallbackResult:
        return OAuthCallbackResult.failure(self.network_type, message)


class FacebookPublisher:
    network_type = SocialNetworkType.facebook

    def __init__(self, client: httpx.Client, options: FacebookOptions) -> None:
        self._client = client
        self._options = options

    def publish(
        self,
        variant: PostVariant,
        account: SocialAccount,
        token: AuthToken,
        cancel_event: threading.Event | None,
    ) -> PublishResult:
        raise_if_cancelled(cancel_event)

        data = {"message": variant.text, "access_token": token.access_token}
        if variant.type == PostType.link and variant.link_url:
            data["link"] = variant.link_url

        try:
            res = self._client.post(
                f"{self._options.graph_api_base_url}/{account.external_account_id}/feed",
                data=data,
            )
        except httpx.TransportError:
            raise_if_cancelled(cancel_event)
            raise

        # A cancel that arrived during the call wins only when nothing was posted;
        # a created post is always reported so it is not published twice.
        if res.status_code >= 400:
            raise_if_cancelled(cancel_event)

        if res.status_code >= 500:
            # Upstream outage; let the job runner retry.
            res.raise_for_status()

        if res.status_code >= 400:
            return PublishResult.rejected(_graph_error_message(res))

        try:
            payload = res.json()
        except ValueError as e:
            raise RuntimeError("Facebook returned an unparsable publish response") from e

        post_id = payload.get("id") if isinstance(payload, dict) else None
        if not post_id:
            raise RuntimeError("Facebook publish response did not include a post id")
        return PublishResult.published(str(post_id))


def _graph_error_message(res: httpx.Response) -> str:
    try:
        payload = res.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        err = payload.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
    return f"Facebook rejected the post (HTTP {res.status_code})."
