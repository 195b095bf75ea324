"""Integrity pipeline: SHA-1 folded over every byte that passes through a stream."""
import hashlib
import io
from typing import BinaryIO

DIGEST_SIZE = 20
EMPTY_DIGEST = hashlib.sha1().digest()


class HashedStream(io.RawIOBase):
    """Wrap a binary stream; read() and write() feed the running digest.

    Seeking back to offset 0 starts a new pass and resets the digest. After a seek
    anywhere else the digest no longer describes the whole content.
    """

    def __init__(self, raw: BinaryIO):
        super().__init__()
        self._raw = raw
        self._hash = hashlib.sha1()

    def readable(self) -> bool:
        return self._raw.readable()

    def writable(self) -> bool:
        return self._raw.writable()

    def seekable(self) -> bool:
        return self._raw.seekable()

    def read(self, size: int = -1) -> bytes:
        data = self._raw.read(size)
        if data:
            self._hash.update(data)
        return data

    def readinto(self, buffer) -> int:
        data = self.read(len(buffer))
        n = len(data)
        buffer[:n] = data
        return n

    def write(self, data) -> int:
        n = self._raw.write(data)
        # Raw streams may accept fewer bytes than offered; hash only what was taken.
        if n is None:
            n = len(data)
        self._hash.update(memoryview(data)[:n])
        return n

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        pos = self._raw.seek(offset, whence)
        if pos == 0:
            self._hash = hashlib.sha1()
        return pos

    def tell(self) -> int:
        return self._raw.tell()

    def flush(self) -> None:
        if not self._raw.closed:
            self._raw.flush()

    def close(self) -> None:
        if not self.closed:
            try:
                self._raw.close()
            finally:
                super().close()

    def digest(self) -> bytes:
        return self._hash.digest()

    def hexdigest(self) -> str:
        return self._hash.hexdigest()


def copy_stream(src: BinaryIO, dst, chunk_size: int = 64 * 1024) -> int:
    """Copy src into dst chunk by chunk; never holds more than one chunk. Returns bytes copied."""
    total = 0
    while True:
        chunk = src.read(chunk_size)
        if not chunk:
            return total
        view = memoryview(chunk)
        while view:
            n = dst.write(view)
            if n is None:
                n = len(view)
            if n == 0:
                raise OSError("short write: destination accepted no bytes")
            view = view[n:]
            total += n
