from __future__ import annotations

import threading
from urllib.parse import parse_qs, urlsplit
from uuid import uuid4

import httpx
import pytest

from orchestrator.core.errors import ProviderConfigError
from orchestrator.models import AuthToken, PostVariant, SocialAccount
from orchestrator.models.enums import PostType, SocialNetworkType
from orchestrator.providers.base import PublishCancelled
from orchestrator.providers.facebook import FacebookAuthProvider, FacebookOptions, FacebookPublisher

GRAPH = "https://graph.facebook.test/v19.0"
OPTIONS = FacebookOptions(
    client_id="fb-client-id",
    client_secret="fb-client-secret",
    redirect_uri="http://testserver/oauth/facebook/callback",
    authorization_endpoint="https://www.facebook.test/v19.0/dialog/oauth",
    token_endpoint=f"{GRAPH}/oauth/access_token",
    graph_api_base_url=GRAPH,
    default_scopes=["public_profile", "pages_manage_posts"],
)


def _client(handler) -> httpx.Client:  # type: ignore[no-untyped-def]
    return httpx.Client(transport=httpx.MockTransport(handler), timeout=10.0)


def _oauth_handler(*, token_status: int = 200, me_payload: dict | None = None):  # type: ignore[no-untyped-def]
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v19.0/oauth/access_token":
            params = dict(request.url.params)
            assert params["client_id"] == "fb-client-id"
            assert params["client_secret"] == "fb-client-secret"
            assert params["code"] == "auth-code"
            if token_status != 200:
                return httpx.Response(token_status, json={"error": {"message": "bad code"}})
            return httpx.Response(200, json={"access_token": "user-token", "expires_in": 3600})
        if request.url.path == "/v19.0/me":
            assert request.url.params["access_token"] == "user-token"
            assert request.url.params["fields"] == "id,name"
            return httpx.Response(200, json=me_payload or {"id": "10001", "name": "Acme Page"})
        return httpx.Response(404)

    return handler


def test_authorization_url_carries_oauth_parameters() -> None:
    provider = FacebookAuthProvider(_client(lambda r: httpx.Response(404)), OPTIONS)

    url = provider.get_authorization_url(uuid4(), uuid4(), "signed-state")

    parts = urlsplit(url)
    assert f"{parts.scheme}://{parts.netloc}{parts.path}" == OPTIONS.authorization_endpoint
    query = {k: v[0] for k, v in parse_qs(parts.query).items()}
    assert query == {
        "client_id": "fb-client-id",
        "redirect_uri": "http://testserver/oauth/facebook/callback",
        "state": "signed-state",
        "response_type": "code",
        "scope": "public_profile,pages_manage_posts",
    }


def test_authorization_url_requires_client_id() -> None:
    provider = FacebookAuthProvider(
        _client(lambda r: httpx.Response(404)), FacebookOptions(redirect_uri="http://x")
    )
    with pytest.raises(ProviderConfigError):
        provider.get_authorization_url(uuid4(), uuid4(), "state")


def test_callback_exchanges_code_and_fetches_identity() -> None:
    provider = FacebookAuthProvider(_client(_oauth_handler()), OPTIONS)

    result = provider.handle_callback("auth-code", "state")

    assert result.is_success
    assert result.network_type == SocialNetworkType.facebook
    assert result.external_account_id == "10001"
    assert result.account_name == "Acme Page"
    assert result.access_token == "user-token"
    assert result.expires_at_utc is not None
    assert result.scopes == ["public_profile", "pages_manage_posts"]


def test_callback_reports_failed_token_exchange() -> None:
    provider = FacebookAuthProvider(_client(_oauth_handler(token_status=400)), OPTIONS)

    result = provider.handle_callback("auth-code", "state")

    assert not result.is_success
    assert result.error_message == (
        "Failed to exchange authorization code for access token (HTTP 400)."
    )


def test_callback_reports_incomplete_identity() -> None:
    provider = FacebookAuthProvider(_client(_oauth_handler(me_payload={"id": "10001"})), OPTIONS)

    result = provider.handle_callback("auth-code", "state")

    assert not result.is_success
    assert result.error_message == "Account information from Facebook is incomplete."


def test_callback_reports_transport_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    result = FacebookAuthProvider(_client(handler), OPTIONS).handle_callback("auth-code", "s")

    assert not result.is_success
    assert "token endpoint" in (result.error_message or "")


def test_callback_without_code_fails() -> None:
    result = FacebookAuthProvider(_client(_oauth_handler()), OPTIONS).handle_callback(" ", "s")
    assert result.error_message == "Missing authorization code."


def test_revoke_deletes_permissions_and_swallows_errors() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(500)

    provider = FacebookAuthProvider(_client(handler), OPTIONS)
    provider.revoke("user-token", None)
    provider.revoke("", None)

    assert len(seen) == 1
    assert seen[0].method == "DELETE"
    assert seen[0].url.path == "/v19.0/me/permissions"
    assert seen[0].url.params["access_token"] == "user-token"


def _publish_args(post_type: PostType = PostType.status):  # type: ignore[no-untyped-def]
    variant = PostVariant(
        id=uuid4(),
        type=post_type,
        text="Hello world",
        link_url="https://example.com" if post_type == PostType.link else None,
    )
    account = SocialAccount(external_account_id="10001", network_type=SocialNetworkType.facebook)
    token = AuthToken(access_token="page-token")
    return variant, account, token


def test_publish_posts_to_the_page_feed() -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        assert request.url.path == "/v19.0/10001/feed"
        seen.append({k: v[0] for k, v in parse_qs(request.content.decode()).items()})
        return httpx.Response(200, json={"id": "10001_555"})

    result = FacebookPublisher(_client(handler), OPTIONS).publish(*_publish_args(PostType.link), None)

    assert result.success
    assert result.provider_post_id == "10001_555"
    assert seen == [
        {"message": "Hello world", "access_token": "page-token", "link": "https://example.com"}
    ]


def test_publish_rejection_uses_graph_error_message() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": {"message": "Duplicate status message"}})

    result = FacebookPublisher(_client(handler), OPTIONS).publish(*_publish_args(), None)

    assert not result.success
    assert result.error_message == "Duplicate status message"


def test_publish_server_error_raises_for_retry() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    with pytest.raises(httpx.HTTPStatusError):
        FacebookPublisher(_client(handler), OPTIONS).publish(*_publish_args(), None)


@pytest.mark.parametrize("status_code", [400, 503])
def test_cancel_during_a_failed_call_reports_cancelled(status_code: int) -> None:
    cancel = threading.Event()

    def handler(request: httpx.Request) -> httpx.Response:
        cancel.set()
        return httpx.Response(status_code, json={"error": {"message": "try later"}})

    with pytest.raises(PublishCancelled):
        FacebookPublisher(_client(handler), OPTIONS).publish(*_publish_args(), cancel)


def test_cancel_during_a_dropped_connection_reports_cancelled() -> None:
    cancel = threading.Event()

    def handler(request: httpx.Request) -> httpx.Response:
        cancel.set()
        raise httpx.ReadError("connection reset", request=request)

    with pytest.raises(PublishCancelled):
        FacebookPublisher(_client(handler), OPTIONS).publish(*_publish_args(), cancel)


def test_cancel_during_a_successful_call_still_reports_the_post() -> None:
    cancel = threading.Event()

    def handler(request: httpx.Request) -> httpx.Response:
        cancel.set()
        return httpx.Response(200, json={"id": "10001_777"})

    result = FacebookPublisher(_client(handler), OPTIONS).publish(*_publish_args(), cancel)

    assert result.success
    assert result.provider_post_id == "10001_777"


def test_dropped_connection_without_cancel_propagates() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(httpx.ConnectError):
        FacebookPublisher(_client(handler), OPTIONS).publish(*_publish_args(), threading.Event())
