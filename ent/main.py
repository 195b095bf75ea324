"""FastAPI app: request logging, error mapping, operational routes, bucket/file routers.

Settings, the bucket registry and the file backend live on app.state and reach handlers through
dependencies, so tests build an app around their own fakes with create_app(...).
"""
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool

from ent import __version__
from ent.api.buckets import router as buckets_router
from ent.api.files import router as files_router
from ent.api.schemas import ErrorResponse
from ent.core.config import Settings, get_settings
from ent.core.deps import get_provider, require_metrics_access
from ent.core.metrics import get_metrics, record_backend_error
from ent.core.request_logging import RequestLoggingMiddleware, configure_logging
from ent.errors import BackendIO, EntError
from ent.storage import get_filesystem, get_provider as build_provider
from ent.storage.base import FileSystem, Provider

logger = logging.getLogger(__name__)


async def handle_ent_error(request: Request, exc: EntError) -> JSONResponse:
    if isinstance(exc, BackendIO):
        record_backend_error(exc.operation)
        logger.error("backend %s failed on %s %s", exc.operation, request.method, request.url.path, exc_info=exc)
    body = ErrorResponse(error=exc.code, detail=str(exc), parameter=exc.parameter)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


def create_app(
    provider: Provider | None = None,
    filesystem: FileSystem | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Build the app. Backends not passed in are built from settings at startup (and the provider initialised)."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.provider is None:
            p = build_provider(settings)
            await run_in_threadpool(p.init)
            app.state.provider = p
        if app.state.filesystem is None:
            app.state.filesystem = get_filesystem(settings)
        logger.info(
            "ent ready: storage=%s provider=%s",
            app.state.filesystem.name,
            type(app.state.provider).__name__,
        )
        yield

    app = FastAPI(title=settings.app_name, version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.provider = provider
    app.state.filesystem = filesystem
    app.add_middleware(RequestLoggingMiddleware)
    app.add_exception_handler(EntError, handle_ent_error)

    # Registered before the bucket routes so these names win over /{bucket}.
    @app.get("/healthz", include_in_schema=False)
    async def healthz():
        """Liveness: no backend calls."""
        return {"status": "ok"}

    @app.get("/readyz", include_in_schema=False)
    async def readyz(p: Provider = Depends(get_provider)):
        """Readiness: the bucket registry is reachable."""
        try:
            await run_in_threadpool(p.ping)
        except BackendIO:
            return JSONResponse(
                status_code=503,
                content={"status": "unavailable", "detail": "bucket registry unreachable"},
            )
        return {"status": "ok"}

    @app.get("/metrics", response_class=Response, include_in_schema=False)
    async def metrics(_: None = Depends(require_metrics_access)):
        """Prometheus metrics. Set METRICS_SECRET to require the X-Metrics-Secret header."""
        body, content_type = get_metrics()
        return Response(content=body, media_type=content_type)

    app.include_router(buckets_router)
    app.include_router(files_router)
    return app


settings = get_settings()
configure_logging(settings.log_level, settings.log_json)
app = create_app(settings=settings)
