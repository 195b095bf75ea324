"""In-memory backend: lock-guarded dict of immutable blobs. Used for tests and STORAGE_BACKEND=memory."""
import io
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import BinaryIO

from ent.errors import FileNotFound
from ent.models import Bucket
from ent.query import ListQuery, apply_query
from ent.storage.base import File, Files, FileSystem, StreamFile, validate_key
from ent.storage.integrity import copy_stream

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Blob:
    key: str
    data: bytes
    last_modified: datetime


class MemoryFileSystem(FileSystem):
    """Whole objects kept as bytes. A create is staged in a private buffer and published
    under the lock only after the source is fully consumed (last-writer-wins)."""

    name = "memory"

    def __init__(self, chunk_size: int = 64 * 1024):
        self._chunk_size = chunk_size
        self._lock = threading.Lock()
        self._blobs: dict[tuple[str, str], _Blob] = {}

    def _get(self, bucket: Bucket, key: str) -> _Blob:
        with self._lock:
            blob = self._blobs.get((bucket.name, key))
        if blob is None:
            raise FileNotFound(bucket.name, key)
        return blob

    def create(self, bucket: Bucket, key: str, src: BinaryIO) -> File:
        validate_key(key)
        staging = io.BytesIO()
        f = StreamFile(
            key,
            datetime.now(timezone.utc),
            opener=lambda: io.BytesIO(self._get(bucket, key).data),
            stream=staging,
        )
        try:
            copy_stream(src, f, self._chunk_size)
            data = staging.getvalue()
        except BaseException:
            f.close()
            raise
        blob = _Blob(key=key, data=data, last_modified=f.last_modified)
        with self._lock:
            self._blobs[(bucket.name, key)] = blob
        f.close()
        logger.debug("memory create %s/%s (%d bytes)", bucket.name, key, len(data))
        return f

    def open(self, bucket: Bucket, key: str) -> File:
        blob = self._get(bucket, key)
        return StreamFile(blob.key, blob.last_modified, stream=io.BytesIO(blob.data))

    def list(self, bucket: Bucket, query: ListQuery) -> Files:
        with self._lock:
            blobs = [b for (name, _), b in self._blobs.items() if name == bucket.name]
        return [self._lazy(b) for b in apply_query(blobs, query)]

    @staticmethod
    def _lazy(blob: _Blob) -> File:
        return StreamFile(blob.key, blob.last_modified, opener=lambda: io.BytesIO(blob.data))
