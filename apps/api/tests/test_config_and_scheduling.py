from __future__ import annotations

from uuid import uuid4

import httpx
import pytest
from pydantic import ValidationError

from orchestrator.core.config import Settings
from orchestrator.models.enums import SocialNetworkType
from orchestrator.providers.facebook import FacebookAuthProvider, FacebookPublisher
from orchestrator.providers.factory import build_provider_registry
from orchestrator.services.scheduling import publish_dedupe_key, publish_job_payload
from orchestrator.worker.runner import WorkerConfig


def test_facebook_scopes_are_split_and_trimmed() -> None:
    settings = Settings(FACEBOOK_SCOPES=" public_profile , pages_manage_posts,, ")
    assert settings.facebook_scopes == ["public_profile", "pages_manage_posts"]


@pytest.mark.parametrize(
    "overrides",
    [
        {"OAUTH_STATE_TTL_SECONDS": 0},
        {"PUBLISH_JOB_MAX_ATTEMPTS": 0},
        {"POSTS_MAX_PAGE_SIZE": 0},
        {"WORKER_JOB_LEASE_SECONDS": 0},
    ],
)
def test_non_positive_limits_are_rejected(overrides: dict) -> None:
    with pytest.raises(ValidationError):
        Settings(**overrides)


def test_registry_built_from_settings_registers_facebook() -> None:
    with httpx.Client() as client:
        registry = build_provider_registry(settings=Settings(), http_client=client)

    assert isinstance(registry.auth_provider(SocialNetworkType.facebook), FacebookAuthProvider)
    assert isinstance(registry.publisher(SocialNetworkType.facebook), FacebookPublisher)
    assert registry.auth_provider(SocialNetworkType.linkedin) is None
    assert registry.publisher(SocialNetworkType.twitter) is None


def test_publish_job_identity() -> None:
    variant_id = uuid4()
    assert publish_dedupe_key(variant_id) == f"publish_post_variant:{variant_id}"
    assert publish_job_payload(variant_id) == {"post_variant_id": str(variant_id)}


def test_worker_config_reads_the_job_lease() -> None:
    config = WorkerConfig.from_settings(Settings(WORKER_JOB_LEASE_SECONDS=90))
    assert config.job_lease_seconds == 90
