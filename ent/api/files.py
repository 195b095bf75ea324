"""Files: upload (POST raw body) and download (streamed GET)."""
import logging
import tempfile
from collections.abc import Iterator
from datetime import timezone
from email.utils import format_datetime

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import StreamingResponse
from starlette.concurrency import run_in_threadpool

from ent.api.schemas import CreatedResponse, ErrorResponse
from ent.core.config import Settings
from ent.core.deps import get_app_settings, get_bucket, get_filesystem
from ent.core.metrics import record_download, record_upload
from ent.models import Bucket
from ent.storage.base import File, FileSystem, validate_key

logger = logging.getLogger(__name__)

router = APIRouter(tags=["files"])


@router.post(
    "/{bucket}/{key:path}",
    status_code=status.HTTP_201_CREATED,
    response_model=CreatedResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def create_file(
    key: str,
    request: Request,
    bucket: Bucket = Depends(get_bucket),
    fs: FileSystem = Depends(get_filesystem),
    settings: Settings = Depends(get_app_settings),
):
    validate_key(key)
    # Body is spooled (memory up to spool_max_bytes, then a temp file) so the backend gets a plain sync stream.
    with tempfile.SpooledTemporaryFile(max_size=settings.spool_max_bytes) as spool:
        size = 0
        async for chunk in request.stream():
            spool.write(chunk)
            size += len(chunk)
        spool.seek(0)
        f = await run_in_threadpool(fs.create, bucket, key, spool)
    record_upload(fs.name, size)
    logger.info("created %s/%s size=%d sha1=%s", bucket.name, key, size, f.hexdigest())
    return CreatedResponse.from_file(f)


def _stream(f: File, backend: str, chunk_size: int) -> Iterator[bytes]:
    """Sync iterator; StreamingResponse runs it in the threadpool. Closes the file when done or abandoned."""
    sent = 0
    try:
        for chunk in f.iter_chunks(chunk_size):
            sent += len(chunk)
            yield chunk
    finally:
        f.close()
        record_download(backend, sent)
        logger.debug("served %s (%d bytes) sha1=%s", f.key, sent, f.hexdigest())


@router.get(
    "/{bucket}/{key:path}",
    response_class=StreamingResponse,
    responses={200: {"content": {"application/octet-stream": {}}}, 404: {"model": ErrorResponse}},
)
async def get_file(
    key: str,
    bucket: Bucket = Depends(get_bucket),
    fs: FileSystem = Depends(get_filesystem),
    settings: Settings = Depends(get_app_settings),
):
    f = await run_in_threadpool(fs.open, bucket, key)
    last_modified = format_datetime(f.last_modified.astimezone(timezone.utc), usegmt=True)
    return StreamingResponse(
        _stream(f, fs.name, settings.read_chunk_size),
        media_type="application/octet-stream",
        headers={"Last-Modified": last_modified},
    )
