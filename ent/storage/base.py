"""Storage contracts: File, FileSystem (per-bucket backend) and Provider (bucket registry)."""
import io
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from datetime import datetime
from typing import BinaryIO

from ent.errors import InvalidKey
from ent.models import Bucket
from ent.query import ListQuery
from ent.storage.integrity import EMPTY_DIGEST, HashedStream


class File(ABC):
    """One stored object: a keyed, seekable byte stream with a running SHA-1 digest."""

    @property
    @abstractmethod
    def key(self) -> str:
        ...

    @property
    @abstractmethod
    def last_modified(self) -> datetime:
        ...

    @abstractmethod
    def read(self, size: int = -1) -> bytes:
        ...

    @abstractmethod
    def write(self, data: bytes) -> int:
        ...

    @abstractmethod
    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        ...

    @abstractmethod
    def close(self) -> None:
        """Release backend resources. Safe to call more than once."""
        ...

    @abstractmethod
    def digest(self) -> bytes:
        """SHA-1 of the bytes seen on the current pass (empty input if nothing moved yet)."""
        ...

    def hexdigest(self) -> str:
        return self.digest().hex()

    def iter_chunks(self, chunk_size: int = 64 * 1024) -> Iterator[bytes]:
        while True:
            chunk = self.read(chunk_size)
            if not chunk:
                return
            yield chunk

    def __enter__(self) -> "File":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} key={self.key!r}>"


Files = list[File]


class StreamFile(File):
    """File over a backend stream. The stream is opened lazily, so listing entries cost no I/O.

    After close() the last digest stays readable; a later read reopens the object and
    starts a new pass.
    """

    def __init__(
        self,
        key: str,
        last_modified: datetime,
        opener: Callable[[], BinaryIO] | None = None,
        stream: BinaryIO | None = None,
    ):
        self._key = key
        self._last_modified = last_modified
        self._opener = opener
        self._hashed: HashedStream | None = None
        if stream is not None:
            self._hashed = stream if isinstance(stream, HashedStream) else HashedStream(stream)

    @property
    def key(self) -> str:
        return self._key

    @property
    def last_modified(self) -> datetime:
        return self._last_modified

    def _stream(self) -> HashedStream:
        if self._hashed is None or self._hashed.closed:
            if self._opener is None:
                raise ValueError(f"I/O operation on closed file {self._key!r}")
            self._hashed = HashedStream(self._opener())
        return self._hashed

    def read(self, size: int = -1) -> bytes:
        return self._stream().read(size)

    def write(self, data: bytes) -> int:
        return self._stream().write(data)

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        return self._stream().seek(offset, whence)

    def flush(self) -> None:
        if self._hashed is not None:
            self._hashed.flush()

    def close(self) -> None:
        if self._hashed is not None:
            self._hashed.close()

    def digest(self) -> bytes:
        if self._hashed is None:
            return EMPTY_DIGEST
        return self._hashed.digest()


class FileSystem(ABC):
    """Per-bucket storage backend."""

    name = "abstract"

    @abstractmethod
    def create(self, bucket: Bucket, key: str, src: BinaryIO) -> File:
        """Consume src fully and persist it under key, hashing while streaming.

        A failed create leaves nothing addressable at key. Overwrites are last-writer-wins.
        """
        ...

    @abstractmethod
    def open(self, bucket: Bucket, key: str) -> File:
        """Return a fresh readable File at offset 0. Raise FileNotFound if absent."""
        ...

    @abstractmethod
    def list(self, bucket: Bucket, query: ListQuery) -> Files:
        """Files matching query.prefix, sorted per query.sort (ties by key), at most query.limit."""
        ...


class Provider(ABC):
    """Bucket registry. get/list are safe to call concurrently once init() returned."""

    @abstractmethod
    def init(self) -> None:
        """One-time setup / refresh of the catalog. Call before serving traffic."""
        ...

    @abstractmethod
    def get(self, name: str) -> Bucket:
        """Raise BucketNotFound if absent."""
        ...

    @abstractmethod
    def list(self) -> list[Bucket]:
        """Whole catalog, unspecified order."""
        ...

    def ping(self) -> None:
        """Readiness probe; raise BackendIO if the catalog store is unreachable."""


def validate_key(key: str) -> str:
    """Reject keys that are empty or could escape their bucket on a path-based backend."""
    if not key:
        raise InvalidKey(key, "key must not be empty")
    if "\x00" in key:
        raise InvalidKey(key, "key must not contain NUL")
    if key.startswith("/") or "\\" in key:
        raise InvalidKey(key, "key must be a relative '/'-separated path")
    for segment in key.split("/"):
        if segment in ("", ".", ".."):
            raise InvalidKey(key, "key must not contain empty, '.' or '..' segments")
    return key
