from __future__ import annotations

import threading
from uuid import UUID

from sqlalchemy.orm import Session

from orchestrator.core.config import get_settings
from orchestrator.core.http import build_http_client
from orchestrator.providers.factory import build_provider_registry
from orchestrator.providers.registry import ProviderRegistry
from orchestrator.services.publishing import publish_post_variant as run_publish
from orchestrator.worker.errors import PermanentJobError


def publish_post_variant(
    *,
    session: Session,
    payload: dict,
    registry: ProviderRegistry | None = None,
    cancel_event: threading.Event | None = None,
) -> None:
    variant_id_raw = payload.get("post_variant_id")
    if not variant_id_raw:
        raise PermanentJobError("publish_post_variant payload missing post_variant_id")
    try:
        variant_id = UUID(str(variant_id_raw))
    except ValueError as e:
        raise PermanentJobError(f"invalid post_variant_id: {variant_id_raw}") from e

    if registry is not None:
        run_publish(
            session=session, registry=registry, variant_id=variant_id, cancel_event=cancel_event
        )
        return

    with build_http_client() as http_client:
        run_publish(
            session=session,
            registry=build_provider_registry(settings=get_settings(), http_client=http_client),
            variant_id=variant_id,
            cancel_event=cancel_event,
        )
