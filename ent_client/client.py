"""
Python client for the ent gateway: list buckets/files, upload and download with SHA-1 verification.
Uploads and downloads are streamed; the digest is computed on the fly, never over a buffered copy.
"""
import hashlib
from collections.abc import Iterator
from pathlib import Path
from urllib.parse import quote

import httpx

CHUNK_SIZE = 64 * 1024


class EntError(Exception):
    """Non-2xx response. `code` is the server's error code (e.g. bucket_not_found)."""

    def __init__(self, status_code: int, code: str, detail: str):
        self.status_code = status_code
        self.code = code
        self.detail = detail
        super().__init__(f"HTTP {status_code} {code}: {detail}")


class IntegrityError(Exception):
    """Local and remote SHA-1 disagree."""

    def __init__(self, key: str, expected: str, actual: str):
        self.key = key
        self.expected = expected
        self.actual = actual
        super().__init__(f"checksum mismatch for {key}: {expected} != {actual}")


def _object_path(bucket: str, key: str | None = None) -> str:
    """Percent-encode bucket and key so "?", "#" and "%" stay part of the path."""
    path = "/" + quote(bucket, safe="")
    if key is not None:
        path += "/" + quote(key, safe="/")
    return path


def _raise_for_status(r: httpx.Response) -> None:
    if r.is_success:
        return
    try:
        data = r.json()
        code, detail = data.get("error", "error"), data.get("detail", r.text)
    except ValueError:
        code, detail = "error", r.text
    raise EntError(r.status_code, code, detail)


class EntClient:
    """Client for an ent gateway. Pass `session` to reuse an httpx.Client (or a Starlette TestClient)."""

    def __init__(self, base_url: str = "http://localhost:8000", session: httpx.Client | None = None, timeout: float = 60.0):
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> httpx.Client:
        if self._session is None:
            self._session = httpx.Client(base_url=self.base_url, timeout=self._timeout)
        return self._session

    def close(self) -> None:
        if self._session is not None and self._owns_session:
            self._session.close()
            self._session = None

    def __enter__(self) -> "EntClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def list_buckets(self) -> list[dict]:
        """Returns [{name, owner: {displayName, emailAddress}}, ...]."""
        r = self._get_session().get("/")
        _raise_for_status(r)
        return r.json()["buckets"]

    def list_files(
        self,
        bucket: str,
        prefix: str | None = None,
        limit: int | None = None,
        sort: str | None = None,
    ) -> list[dict]:
        """Returns [{key, lastModified}, ...]. sort is '+key', '-key', '+lastModified' or '-lastModified'."""
        params = {}
        if prefix is not None:
            params["prefix"] = prefix
        if limit is not None:
            params["limit"] = str(limit)
        if sort is not None:
            params["sort"] = sort
        r = self._get_session().get(_object_path(bucket), params=params)
        _raise_for_status(r)
        return r.json()["files"]

    def upload(self, bucket: str, key: str, path: str | Path) -> dict:
        """Stream a local file; raise IntegrityError if the server's digest differs. Returns the file record."""
        h = hashlib.sha1()

        def body() -> Iterator[bytes]:
            with open(path, "rb") as f:
                while chunk := f.read(CHUNK_SIZE):
                    h.update(chunk)
                    yield chunk

        r = self._get_session().post(
            _object_path(bucket, key),
            content=body(),
            headers={"Content-Type": "application/octet-stream"},
        )
        _raise_for_status(r)
        record = r.json()["file"]
        if record["digest"] != h.hexdigest():
            raise IntegrityError(key, h.hexdigest(), record["digest"])
        return record

    def download(self, bucket: str, key: str, dest: str | Path, expected_digest: str | None = None) -> str:
        """Stream an object to dest; return its hex SHA-1. With expected_digest, a mismatch removes dest and raises."""
        h = hashlib.sha1()
        dest = Path(dest)
        with self._get_session().stream("GET", _object_path(bucket, key)) as r:
            if not r.is_success:
                r.read()
                _raise_for_status(r)
            with open(dest, "wb") as out:
                for chunk in r.iter_bytes(CHUNK_SIZE):
                    h.update(chunk)
                    out.write(chunk)
        digest = h.hexdigest()
        if expected_digest is not None and digest != expected_digest.lower():
            dest.unlink(missing_ok=True)
            raise IntegrityError(key, expected_digest, digest)
        return digest
