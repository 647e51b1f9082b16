from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from dbforge.apps.api.errors import (
    domain_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from dbforge.apps.api.response import API_VERSION
from dbforge.apps.api.routes.blueprints import router as blueprints_router
from dbforge.apps.api.routes.databases import router as databases_router
from dbforge.apps.api.routes.health import router as health_router
from dbforge.apps.api.routes.teams import router as teams_router
from dbforge.apps.api.routes.tiers import router as tiers_router
from dbforge.cluster.base import ClusterClient
from dbforge.core.config import get_settings
from dbforge.core.errors import DbforgeError
from dbforge.core.logging import configure_logging
from dbforge.providers.factory import build_cluster_client, build_registry
from dbforge.providers.registry import ProviderRegistry
from dbforge.services.reconciler import Reconciler


logger = logging.getLogger(__name__)


def create_app(registry: ProviderRegistry | None = None, cluster: ClusterClient | None = None) -> FastAPI:
    configure_logging()
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned_cluster: ClusterClient | None = None
        # Build the registry once per process unless the caller injected one.
        if getattr(app.state, "registry", None) is None:
            owned_cluster = app.state.cluster or await build_cluster_client(settings)
            app.state.cluster = owned_cluster
            app.state.registry = build_registry(settings, owned_cluster)
        reconciler: Reconciler | None = None
        if settings.reconciler_enabled:
            reconciler = Reconciler(app.state.registry)
            reconciler.start()
        app.state.reconciler = reconciler
        try:
            yield
        finally:
            if reconciler is not None:
                await reconciler.stop()
            if owned_cluster is not None:
                await owned_cluster.close()

    app = FastAPI(title="dbforge API", version=settings.version, lifespan=lifespan)
    app.state.cluster = cluster
    if registry is None and cluster is not None:
        registry = build_registry(settings, cluster)
    app.state.registry = registry
    app.state.reconciler = None

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers.setdefault("X-Request-Id", request_id)
        return response

    app.add_exception_handler(DbforgeError, domain_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Mount versioned v1 API routes.
    app.include_router(health_router, prefix=f"/{API_VERSION}")
    app.include_router(teams_router, prefix=f"/{API_VERSION}")
    app.include_router(blueprints_router, prefix=f"/{API_VERSION}")
    app.include_router(tiers_router, prefix=f"/{API_VERSION}")
    app.include_router(databases_router, prefix=f"/{API_VERSION}")

    return app


app = create_app()
