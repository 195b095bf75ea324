"""S3 backend: one S3 bucket holds every ent bucket as a key prefix. Imported only when STORAGE_BACKEND=s3."""
from __future__ import annotations

import logging
import tempfile
from datetime import datetime, timezone
from typing import BinaryIO

from ent.errors import BackendIO, FileNotFound
from ent.models import Bucket
from ent.query import ListQuery, apply_query
from ent.storage.base import File, Files, FileSystem, StreamFile, validate_key
from ent.storage.integrity import HashedStream, copy_stream

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = ("404", "NoSuchKey", "NotFound")


def _get_client(region: str | None, endpoint_url: str | None):
    import boto3
    return boto3.client("s3", region_name=region, endpoint_url=endpoint_url)


def _error_code(e: Exception) -> str | None:
    resp = getattr(e, "response", None)
    return resp.get("Error", {}).get("Code") if isinstance(resp, dict) else None


class _UploadBody:
    """Read-only view so s3transfer streams the body sequentially instead of seeking around it."""

    def __init__(self, stream: HashedStream):
        self._stream = stream

    def read(self, size: int = -1) -> bytes:
        return self._stream.read(size)


class S3FileSystem(FileSystem):
    """Objects stored at s3://<s3_bucket>/<ent bucket>/<key>.

    Uploads go through upload_fileobj, which only makes the object visible once the
    PUT (or multipart completion) succeeds; the last completed upload of a key wins.
    Downloads are spooled to a temp file so the returned File is seekable.
    """

    name = "s3"

    def __init__(
        self,
        s3_bucket: str,
        region: str | None = None,
        endpoint_url: str | None = None,
        spool_max_bytes: int = 8 * 1024 * 1024,
        chunk_size: int = 64 * 1024,
        client=None,
    ) -> None:
        if not s3_bucket:
            raise ValueError("S3 storage requires s3_bucket to be set")
        self._s3_bucket = s3_bucket
        self._spool_max_bytes = spool_max_bytes
        self._chunk_size = chunk_size
        self._client = client if client is not None else _get_client(region, endpoint_url)

    @staticmethod
    def _object_key(bucket: Bucket, key: str) -> str:
        return f"{bucket.name}/{key}"

    def create(self, bucket: Bucket, key: str, src: BinaryIO) -> File:
        validate_key(key)
        object_key = self._object_key(bucket, key)
        hashed = HashedStream(src)
        try:
            self._client.upload_fileobj(_UploadBody(hashed), self._s3_bucket, object_key)
            head = self._client.head_object(Bucket=self._s3_bucket, Key=object_key)
        except Exception as e:
            raise BackendIO("create", e) from e
        modified = head.get("LastModified") or datetime.now(timezone.utc)
        logger.debug("s3 create s3://%s/%s", self._s3_bucket, object_key)
        f = StreamFile(key, modified, opener=lambda: self._download(bucket, key)[0], stream=hashed)
        f.close()
        return f

    def _download(self, bucket: Bucket, key: str) -> tuple[BinaryIO, datetime]:
        object_key = self._object_key(bucket, key)
        try:
            resp = self._client.get_object(Bucket=self._s3_bucket, Key=object_key)
        except Exception as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                raise FileNotFound(bucket.name, key) from e
            raise BackendIO("open", e) from e
        spool = tempfile.SpooledTemporaryFile(max_size=self._spool_max_bytes)
        body = resp["Body"]
        try:
            copy_stream(body, spool, self._chunk_size)
        except Exception as e:
            spool.close()
            raise BackendIO("open", e) from e
        finally:
            body.close()
        spool.seek(0)
        return spool, resp.get("LastModified") or datetime.now(timezone.utc)

    def open(self, bucket: Bucket, key: str) -> File:
        validate_key(key)
        stream, modified = self._download(bucket, key)
        return StreamFile(key, modified, opener=lambda: self._download(bucket, key)[0], stream=stream)

    def list(self, bucket: Bucket, query: ListQuery) -> Files:
        base = f"{bucket.name}/"
        entries = []
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self._s3_bucket, Prefix=base + query.prefix):
                for obj in page.get("Contents", []):
                    key = obj["Key"][len(base):]
                    entries.append(
                        StreamFile(key, obj["LastModified"], opener=lambda k=key: self._download(bucket, k)[0])
                    )
        except Exception as e:
            raise BackendIO("list", e) from e
        return apply_query(entries, query)
