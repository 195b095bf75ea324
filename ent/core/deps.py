"""FastAPI dependencies: settings, registry and backend from app state, bucket lookup, listing query, metrics guard."""
from fastapi import Depends, Header, HTTPException, Query, Request, status

from ent.core.config import Settings
from ent.core.metrics import record_invalid_query
from ent.errors import InvalidQuery
from ent.models import Bucket
from ent.query import ListQuery, parse_list_query
from ent.storage.base import FileSystem, Provider


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_provider(request: Request) -> Provider:
    return request.app.state.provider


def get_filesystem(request: Request) -> FileSystem:
    return request.app.state.filesystem


def get_bucket(
    bucket: str,
    request: Request,
    provider: Provider = Depends(get_provider),
) -> Bucket:
    """Resolve the {bucket} path segment; BucketNotFound (404) if unknown."""
    request.state.bucket = bucket
    return provider.get(bucket)


def get_list_query(
    prefix: str | None = Query(None),
    limit: str | None = Query(None),
    sort: str | None = Query(None, description="<+|-><key|lastModified>"),
) -> ListQuery:
    """Parse raw listing parameters. Raw strings on purpose: the query engine owns all validation."""
    try:
        return parse_list_query(prefix, limit, sort)
    except InvalidQuery as e:
        record_invalid_query(e.parameter)
        raise


def require_metrics_access(
    x_metrics_secret: str | None = Header(None, alias="X-Metrics-Secret"),
    s: Settings = Depends(get_app_settings),
) -> None:
    """Allow /metrics when no secret is configured, or when X-Metrics-Secret matches."""
    if s.metrics_secret and x_metrics_secret != s.metrics_secret:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing X-Metrics-Secret",
        )
