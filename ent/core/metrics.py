"""Prometheus metrics: request count by route/status, latency, bytes moved, rejected queries, backend errors."""
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total requests",
    ["method", "path", "status_class"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "Request latency",
    ["method", "path"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)
BYTES_UPLOADED = Counter(
    "ent_bytes_uploaded_total",
    "Bytes persisted through create",
    ["backend"],
)
BYTES_DOWNLOADED = Counter(
    "ent_bytes_downloaded_total",
    "Bytes streamed to clients",
    ["backend"],
)
INVALID_QUERY_TOTAL = Counter(
    "ent_invalid_query_total",
    "Rejected listing queries",
    ["parameter"],
)
BACKEND_ERRORS_TOTAL = Counter(
    "ent_backend_errors_total",
    "Backend I/O failures",
    ["operation"],
)

_OPERATIONAL_PATHS = ("/", "/metrics", "/healthz", "/readyz")


def _status_class(status: int) -> str:
    return f"{min(max(status // 100, 1), 5)}xx"


def normalize_path(path: str) -> str:
    """Collapse bucket names and keys to avoid high-cardinality labels: /b -> /{bucket}, /b/k -> /{bucket}/{key}."""
    path = path or "/"
    if path in _OPERATIONAL_PATHS:
        return path
    parts = path.strip("/").split("/", 1)
    if len(parts) == 1:
        return "/{bucket}"
    return "/{bucket}/{key}"


def record_request(method: str, path: str, status_code: int, latency_seconds: float) -> None:
    path = normalize_path(path)
    sc = _status_class(status_code)
    REQUEST_COUNT.labels(method=method, path=path, status_class=sc).inc()
    REQUEST_LATENCY.labels(method=method, path=path).observe(latency_seconds)


def record_upload(backend: str, nbytes: int) -> None:
    BYTES_UPLOADED.labels(backend=backend).inc(nbytes)


def record_download(backend: str, nbytes: int) -> None:
    BYTES_DOWNLOADED.labels(backend=backend).inc(nbytes)


def record_invalid_query(parameter: str) -> None:
    INVALID_QUERY_TOTAL.labels(parameter=parameter).inc()


def record_backend_error(operation: str) -> None:
    BACKEND_ERRORS_TOTAL.labels(operation=operation).inc()


def get_metrics() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
