from __future__ import annotations

from orchestrator.models.enums import SocialNetworkType
from orchestrator.providers.base import AuthProvider, Publisher


class ProviderRegistry:
    """Per-network lookup of auth and publish capabilities.

    Adding a network means registering implementations here; callers only ever
    resolve by exact network type.
    """

    def __init__(self) -> None:
        self._auth_providers: dict[SocialNetworkType, AuthProvider] = {}
        self._publishers: dict[SocialNetworkType, Publisher] = {}

    def register_auth_provider(self, provider: AuthProvider) -> None:
        self._auth_providers[SocialNetworkType(provider.network_type)] = provider

    def register_publisher(self, publisher: Publisher) -> None:
        self._publishers[SocialNetworkType(publisher.network_type)] = publisher

    def auth_provider(self, network_type: SocialNetworkType) -> AuthProvider | None:
        return self._auth_providers.get(network_type)

    def publisher(self, network_type: SocialNetworkType) -> Publisher | None:
        return self._publishers.get(network_type)
