from __future__ import annotations

import httpx
from fastapi import Depends

from orchestrator.core.config import Settings, get_settings
from orchestrator.core.http import get_http_client
from orchestrator.providers.facebook import FacebookAuthProvider, FacebookOptions, FacebookPublisher
from orchestrator.providers.registry import ProviderRegistry


def build_provider_registry(*, settings: Settings, http_client: httpx.Client) -> ProviderRegistry:
    registry = ProviderRegistry()

    facebook = FacebookOptions.from_settings(settings)
    registry.register_auth_provider(FacebookAuthProvider(http_client, facebook))
    registry.register_publisher(FacebookPublisher(http_client, facebook))

    return registry


def get_provider_registry(
    http_client: httpx.Client = Depends(get_http_client),
) -> ProviderRegistry:
    return build_provider_registry(settings=get_settings(), http_client=http_client)
