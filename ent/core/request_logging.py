"""Request logging: one line per request with request_id, method, path, status, latency and bucket."""
import json
import logging
import time
import uuid
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ent.core.metrics import record_request

logger = logging.getLogger("ent.request")

REQUEST_ID_HEADER = "X-Request-ID"
_UNMETERED = frozenset({"/metrics", "/healthz", "/readyz"})


def configure_logging(level: str = "INFO", log_json: bool = False) -> None:
    """Install a single stream handler on the `ent` logger. In JSON mode messages are already JSON objects."""
    fmt = "%(message)s" if log_json else "%(asctime)s %(levelname)s %(name)s: %(message)s"
    ent_logger = logging.getLogger("ent")
    ent_logger.handlers.clear()
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(fmt))
    ent_logger.addHandler(handler)
    ent_logger.setLevel(level.upper())


def _request_fields(request: Request, status_code: int, elapsed: float) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "request_id": request.state.request_id,
        "method": request.method,
        "path": request.url.path,
        "status": status_code,
        "latency_ms": round(elapsed * 1000, 2),
    }
    bucket = getattr(request.state, "bucket", None)
    if bucket is not None:
        fields["bucket"] = bucket
    return fields


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Propagate or mint X-Request-ID, log the request once it completes, feed request metrics."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request.state.request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("unhandled error on %s %s [%s]", request.method, request.url.path, request.state.request_id)
            raise
        elapsed = time.perf_counter() - start
        fields = _request_fields(request, response.status_code, elapsed)
        if request.app.state.settings.log_json:
            logger.info(json.dumps({"event": "request", **fields}))
        else:
            logger.info(
                "%s %s -> %d in %.1fms%s",
                request.method,
                request.url.path,
                response.status_code,
                fields["latency_ms"],
                f" bucket={fields['bucket']}" if "bucket" in fields else "",
                extra=fields,
            )
        response.headers[REQUEST_ID_HEADER] = request.state.request_id
        if request.url.path not in _UNMETERED:
            record_request(request.method, request.url.path, response.status_code, elapsed)
        return response
