from __future__ import annotations

import os
import tempfile
import uuid
from collections.abc import Callable, Generator
from contextlib import suppress
from pathlib import Path
from uuid import UUID

import pytest
from sqlalchemy.orm import Session

# Tests always run against a throwaway SQLite file, never the configured database.
_TEST_DB_PATH = Path(tempfile.gettempdir()) / f"orchestrator_test_{uuid.uuid4().hex}.db"
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DB_PATH}"
os.environ["APP_ENV"] = "test"
os.environ["OAUTH_STATE_SECRET"] = "test-oauth-state-secret"
os.environ["API_BASE_URL"] = "http://testserver"
os.environ["FACEBOOK_CLIENT_ID"] = "fb-client-id"
os.environ["FACEBOOK_CLIENT_SECRET"] = "fb-client-secret"
os.environ["FACEBOOK_REDIRECT_URI"] = "http://testserver/oauth/facebook/callback"
os.environ["FACEBOOK_GRAPH_API_BASE_URL"] = "https://graph.facebook.test/v19.0"
os.environ["FACEBOOK_TOKEN_ENDPOINT"] = "https://graph.facebook.test/v19.0/oauth/access_token"
os.environ["RATE_LIMIT_REQUESTS_PER_MINUTE"] = "0"


def _clear_caches() -> None:
    from orchestrator.core.config import get_settings
    from orchestrator.core.state_tokens import get_state_token_signer
    from orchestrator.db.session import get_engine, get_sessionmaker

    get_settings.cache_clear()
    get_state_token_signer.cache_clear()
    get_engine.cache_clear()
    get_sessionmaker.cache_clear()


@pytest.fixture(scope="session", autouse=True)
def _test_database() -> Generator[None, None, None]:
    _clear_caches()

    from orchestrator.db.session import get_engine
    from orchestrator.models import Base

    Base.metadata.create_all(get_engine())

    yield

    with suppress(Exception):
        get_engine().dispose()
    _clear_caches()
    with suppress(OSError):
        _TEST_DB_PATH.unlink()


@pytest.fixture(autouse=True)
def _clean_tables() -> Generator[None, None, None]:
    yield

    from orchestrator.db.session import get_engine
    from orchestrator.models import Base

    with get_engine().begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    from orchestrator.db.session import get_sessionmaker

    SessionLocal = get_sessionmaker()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def make_workspace(db_session: Session) -> Callable[..., tuple[UUID, UUID]]:
    """Create a workspace and return `(workspace_id, owner_user_id)`."""
    from orchestrator.models import Workspace

    def _make(*, time_zone: str = "UTC", name: str = "Acme") -> tuple[UUID, UUID]:
        owner_id = uuid.uuid4()
        ws = Workspace(name=name, time_zone=time_zone, owner_user_id=owner_id)
        db_session.add(ws)
        db_session.commit()
        return ws.id, owner_id

    return _make


@pytest.fixture()
def make_account(db_session: Session) -> Callable[..., UUID]:
    """Create a connected social account (with a token) and return its id."""
    from orchestrator.models import AuthToken, SocialAccount
    from orchestrator.models.enums import SocialNetworkType

    def _make(
        workspace_id: UUID,
        *,
        network_type: SocialNetworkType = SocialNetworkType.facebook,
        external_account_id: str | None = None,
        name: str = "Acme Page",
        with_token: bool = True,
    ) -> UUID:
        account = SocialAccount(
            workspace_id=workspace_id,
            network_type=network_type,
            external_account_id=external_account_id or uuid.uuid4().hex,
            name=name,
        )
        db_session.add(account)
        db_session.flush()
        if with_token:
            db_session.add(
                AuthToken(
                    social_account_id=account.id,
                    access_token="access-token-1",
                    refresh_token="refresh-token-1",
                    scopes=["pages_manage_posts"],
                )
            )
        db_session.commit()
        return account.id

    return _make
