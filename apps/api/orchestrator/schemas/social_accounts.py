from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, ConfigDict

from orchestrator.models.enums import SocialNetworkType


class SocialAccountSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    network_type: SocialNetworkType
    name: str
    username: str | None
    is_active: bool
    requires_reauthorization: bool
