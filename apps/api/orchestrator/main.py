from __future__ import annotations

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from orchestrator.core.config import get_settings
from orchestrator.core.errors import ServiceError, service_error_handler
from orchestrator.core.middleware import install_request_middleware
from orchestrator.core.state_tokens import get_state_token_signer
from orchestrator.routers.health import router as health_router
from orchestrator.routers.oauth import router as oauth_router
from orchestrator.routers.posts import router as posts_router
from orchestrator.routers.social_accounts import router as social_accounts_router


def create_app() -> FastAPI:
    app = FastAPI(title="Social Orchestrator API")

    settings = get_settings()
    # Fail at startup rather than on the first OAuth request.
    get_state_token_signer()

    origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ServiceError, service_error_handler)  # type: ignore[arg-type]
    install_request_middleware(app, settings=settings)

    app.include_router(health_router)
    app.include_router(oauth_router)
    app.include_router(social_accounts_router)
    app.include_router(posts_router)
    if settings.ENABLE_PROMETHEUS_METRICS:

        @app.get(settings.PROMETHEUS_METRICS_PATH, include_in_schema=False)
        def metrics() -> Response:
            return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


app = create_app()
