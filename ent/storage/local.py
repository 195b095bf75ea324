"""Local disk backend: <data_dir>/<bucket>/<key>. Writes are staged in a temp file and published with os.replace."""
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO

from ent.errors import BackendIO, FileNotFound, InvalidKey
from ent.models import Bucket
from ent.query import ListQuery, apply_query
from ent.storage.base import File, Files, FileSystem, StreamFile, validate_key
from ent.storage.integrity import copy_stream

logger = logging.getLogger(__name__)

STAGING_PREFIX = ".ent-staging-"


def _mtime(path: Path) -> datetime:
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)


class LocalFileSystem(FileSystem):
    """Dev/single-node disk storage. Half-written uploads are never visible under their key;
    concurrent creates of one key are last-writer-wins."""

    name = "local"

    def __init__(self, root: str | Path, chunk_size: int = 64 * 1024):
        self._root = Path(root).resolve()
        self._chunk_size = chunk_size
        self._root.mkdir(parents=True, exist_ok=True)

    def _path(self, bucket: Bucket, key: str) -> Path:
        validate_key(key)
        if key.rsplit("/", 1)[-1].startswith(STAGING_PREFIX):
            raise InvalidKey(key, f"name must not start with {STAGING_PREFIX!r}")
        return self._root / bucket.name / key

    def create(self, bucket: Bucket, key: str, src: BinaryIO) -> File:
        path = self._path(bucket, key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=STAGING_PREFIX, dir=path.parent)
        except (FileExistsError, NotADirectoryError) as e:
            raise InvalidKey(key, "conflicts with an existing key") from e
        except OSError as e:
            raise BackendIO("create", e) from e
        modified = datetime.now(timezone.utc)
        f = StreamFile(key, modified, opener=lambda: self._open_path(bucket, key, path), stream=os.fdopen(fd, "wb"))
        try:
            copy_stream(src, f, self._chunk_size)
            f.flush()
            f.close()
            ts = modified.timestamp()
            os.utime(tmp_name, (ts, ts))
            os.replace(tmp_name, path)
        except BaseException as e:
            f.close()
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            if isinstance(e, IsADirectoryError):
                raise InvalidKey(key, "conflicts with an existing key prefix") from e
            if isinstance(e, OSError):
                raise BackendIO("create", e) from e
            raise
        logger.debug("local create %s/%s -> %s", bucket.name, key, path)
        return f

    def _open_path(self, bucket: Bucket, key: str, path: Path) -> BinaryIO:
        try:
            return open(path, "rb")
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            raise FileNotFound(bucket.name, key) from None
        except OSError as e:
            raise BackendIO("open", e) from e

    def open(self, bucket: Bucket, key: str) -> File:
        path = self._path(bucket, key)
        stream = self._open_path(bucket, key, path)
        try:
            modified = datetime.fromtimestamp(os.fstat(stream.fileno()).st_mtime, tz=timezone.utc)
        except OSError as e:
            stream.close()
            raise BackendIO("open", e) from e
        return StreamFile(key, modified, stream=stream)

    def list(self, bucket: Bucket, query: ListQuery) -> Files:
        base = self._root / bucket.name
        if not base.is_dir():
            return []
        entries = []
        try:
            for dirpath, _, filenames in os.walk(base):
                for filename in filenames:
                    if filename.startswith(STAGING_PREFIX):
                        continue
                    path = Path(dirpath) / filename
                    key = path.relative_to(base).as_posix()
                    if not key.startswith(query.prefix):
                        continue
                    entries.append(
                        StreamFile(key, _mtime(path), opener=lambda p=path, k=key: self._open_path(bucket, k, p))
                    )
        except OSError as e:
            raise BackendIO("list", e) from e
        return apply_query(entries, query)
