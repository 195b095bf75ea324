"""Buckets: enumerate the registry, list a bucket's files (prefix / limit / sort)."""
from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from ent.api.schemas import BucketListResponse, BucketOut, ErrorResponse, FileListResponse, FileOut
from ent.core.deps import get_bucket, get_filesystem, get_list_query, get_provider
from ent.models import Bucket
from ent.query import ListQuery
from ent.storage.base import FileSystem, Provider

router = APIRouter(tags=["buckets"])


@router.get("/", response_model=BucketListResponse)
async def list_buckets(provider: Provider = Depends(get_provider)):
    buckets = sorted(provider.list(), key=lambda b: b.name)
    return BucketListResponse(count=len(buckets), buckets=[BucketOut.from_bucket(b) for b in buckets])


@router.get(
    "/{bucket}",
    response_model=FileListResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def list_files(
    bucket: Bucket = Depends(get_bucket),
    query: ListQuery = Depends(get_list_query),
    fs: FileSystem = Depends(get_filesystem),
):
    # Bucket and query are both resolved before the backend is touched.
    files = await run_in_threadpool(fs.list, bucket, query)
    return FileListResponse(
        count=len(files),
        files=[FileOut(key=f.key, last_modified=f.last_modified) for f in files],
    )
