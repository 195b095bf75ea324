"""Storage backends: shared contract over memory and local disk, S3 path with mocks (no real AWS)."""
import hashlib
import io
import os
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from ent.core.config import get_settings
from ent.errors import BackendIO, FileNotFound, InvalidKey
from ent.models import Bucket, Owner
from ent.query import ListQuery, SortStrategy, parse_list_query
from ent.storage import get_filesystem
from ent.storage.base import FileSystem
from ent.storage.local import STAGING_PREFIX, LocalFileSystem
from ent.storage.memory import MemoryFileSystem

BUCKET = Bucket(name="master", owner=Owner("master", "master@ent.io"))
OTHER = Bucket(name="peer")


@pytest.fixture(params=["memory", "local"])
def backend(request, tmp_path) -> FileSystem:
    if request.param == "memory":
        return MemoryFileSystem(chunk_size=1024)
    return LocalFileSystem(tmp_path / "data", chunk_size=1024)


class FailingReader:
    """Yields some bytes, then fails like a dropped client connection."""

    def __init__(self, good: bytes):
        self._good = good
        self._sent = False

    def read(self, size=-1):
        if not self._sent:
            self._sent = True
            return self._good
        raise ConnectionResetError("client went away")


def read_all(f) -> bytes:
    with f:
        return b"".join(f.iter_chunks(777))


def test_get_storage_returns_local_by_default(monkeypatch, tmp_path):
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    get_settings.cache_clear()
    assert isinstance(get_filesystem(), LocalFileSystem)


def test_get_storage_memory(monkeypatch):
    monkeypatch.setenv("STORAGE_BACKEND", "memory")
    get_settings.cache_clear()
    assert isinstance(get_filesystem(), MemoryFileSystem)


def test_get_storage_unknown(monkeypatch):
    monkeypatch.setenv("STORAGE_BACKEND", "tape")
    get_settings.cache_clear()
    with pytest.raises(ValueError, match="tape"):
        get_filesystem()


# ----- Contract shared by every backend -----


@pytest.mark.parametrize("data", [b"", b"x", os.urandom(200_000)])
def test_round_trip_bytes_and_digest(backend, data):
    created = backend.create(BUCKET, "nested/structure/with.file", io.BytesIO(data))
    assert created.key == "nested/structure/with.file"
    assert created.digest() == hashlib.sha1(data).digest()

    opened = backend.open(BUCKET, "nested/structure/with.file")
    body = read_all(opened)
    assert body == data
    assert opened.digest() == hashlib.sha1(body).digest() == created.digest()


def test_created_file_can_be_read_back(backend):
    created = backend.create(BUCKET, "a.bin", io.BytesIO(b"hello"))
    assert read_all(created) == b"hello"


def test_open_is_positioned_at_zero_and_seekable(backend):
    backend.create(BUCKET, "s.bin", io.BytesIO(b"0123456789"))
    with backend.open(BUCKET, "s.bin") as f:
        assert f.read(3) == b"012"
        f.seek(0)
        assert f.read() == b"0123456789"
        assert f.hexdigest() == hashlib.sha1(b"0123456789").hexdigest()


def test_open_missing(backend):
    with pytest.raises(FileNotFound):
        backend.open(BUCKET, "nope")


def test_buckets_are_isolated(backend):
    backend.create(BUCKET, "k", io.BytesIO(b"1"))
    with pytest.raises(FileNotFound):
        backend.open(OTHER, "k")
    assert backend.list(OTHER, ListQuery()) == []


def test_overwrite_is_last_writer_wins(backend):
    backend.create(BUCKET, "k", io.BytesIO(b"first"))
    backend.create(BUCKET, "k", io.BytesIO(b"second"))
    assert read_all(backend.open(BUCKET, "k")) == b"second"
    assert [f.key for f in backend.list(BUCKET, ListQuery())] == ["k"]


def test_concurrent_create_same_key_last_writer_wins(backend):
    payloads = [bytes([i]) * 150_000 for i in range(8)]

    def put(p):
        return backend.create(BUCKET, "race.bin", io.BytesIO(p)).hexdigest()

    with ThreadPoolExecutor(max_workers=8) as pool:
        digests = list(pool.map(put, payloads))

    assert digests == [hashlib.sha1(p).hexdigest() for p in payloads]
    f = backend.open(BUCKET, "race.bin")
    body = read_all(f)
    # One complete winner, never an interleaving of writers.
    assert body in payloads
    assert f.hexdigest() == hashlib.sha1(body).hexdigest()


def test_concurrent_create_distinct_keys(backend):
    def put(i):
        backend.create(BUCKET, f"par/{i:02d}", io.BytesIO(str(i).encode() * 1000))

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(put, range(24)))
    listed = backend.list(BUCKET, parse_list_query(prefix="par/"))
    assert [f.key for f in listed] == [f"par/{i:02d}" for i in range(24)]
    assert read_all(backend.open(BUCKET, "par/07")) == b"7" * 1000


def test_failed_create_leaves_nothing(backend):
    with pytest.raises((ConnectionResetError, BackendIO)):
        backend.create(BUCKET, "partial.bin", FailingReader(b"half"))
    with pytest.raises(FileNotFound):
        backend.open(BUCKET, "partial.bin")
    assert backend.list(BUCKET, ListQuery()) == []


def test_failed_overwrite_keeps_previous_object(backend):
    backend.create(BUCKET, "keep.bin", io.BytesIO(b"old"))
    with pytest.raises((ConnectionResetError, BackendIO)):
        backend.create(BUCKET, "keep.bin", FailingReader(b"new-but-broken"))
    assert read_all(backend.open(BUCKET, "keep.bin")) == b"old"


def test_memory_failed_create_releases_staging_buffer(monkeypatch):
    staged = []

    class TrackedBuffer(io.BytesIO):
        def __init__(self, *args):
            super().__init__(*args)
            staged.append(self)

    monkeypatch.setattr("ent.storage.memory.io.BytesIO", TrackedBuffer)
    fs = MemoryFileSystem()
    with pytest.raises(ConnectionResetError):
        fs.create(BUCKET, "partial.bin", FailingReader(b"half"))
    assert len(staged) == 1
    assert staged[0].closed


@pytest.mark.parametrize("key", ["", "/abs", "a//b", "a/../b", "./a", "a/", "back\\slash", "nul\x00"])
def test_invalid_keys_rejected(backend, key):
    with pytest.raises(InvalidKey):
        backend.create(BUCKET, key, io.BytesIO(b"x"))


def test_list_prefix_limit_sort(backend):
    for i in range(10):
        backend.create(BUCKET, f"list/filesname{i}", io.BytesIO(b"x"))
    backend.create(BUCKET, "other", io.BytesIO(b"y"))

    everything = backend.list(BUCKET, ListQuery())
    assert [f.key for f in everything] == [f"list/filesname{i}" for i in range(10)] + ["other"]

    top4 = backend.list(BUCKET, ListQuery(prefix="list/files", limit=4, sort=SortStrategy.parse("-key")))
    assert [f.key for f in top4] == [f"list/filesname{i}" for i in (9, 8, 7, 6)]

    by_time = backend.list(BUCKET, ListQuery(prefix="list/files", limit=10, sort=SortStrategy.parse("+lastModified")))
    assert len(by_time) == 10
    stamps = [f.last_modified for f in by_time]
    assert stamps == sorted(stamps)
    assert all(isinstance(s, datetime) and s.tzinfo is not None for s in stamps)

    again = backend.list(BUCKET, ListQuery(prefix="list/files", limit=10, sort=SortStrategy.parse("+lastModified")))
    assert [f.key for f in again] == [f.key for f in by_time]


def test_list_entries_open_lazily(backend):
    backend.create(BUCKET, "lazy.txt", io.BytesIO(b"lazy"))
    [entry] = backend.list(BUCKET, ListQuery(prefix="lazy"))
    assert entry.digest() == hashlib.sha1(b"").digest()
    assert read_all(entry) == b"lazy"
    assert entry.digest() == hashlib.sha1(b"lazy").digest()


# ----- Local disk specifics -----


def test_local_layout_and_no_staging_leftovers(tmp_path):
    fs = LocalFileSystem(tmp_path)
    fs.create(BUCKET, "a/b/c.bin", io.BytesIO(b"x" * 42))
    assert (tmp_path / "master" / "a" / "b" / "c.bin").read_bytes() == b"x" * 42
    with pytest.raises(BackendIO) as exc:
        fs.create(BUCKET, "a/b/d.bin", FailingReader(b"zz"))
    assert isinstance(exc.value.__cause__, ConnectionResetError)
    leftovers = [p.name for p in (tmp_path / "master" / "a" / "b").iterdir()]
    assert leftovers == ["c.bin"]


def test_local_list_skips_staging_files(tmp_path):
    fs = LocalFileSystem(tmp_path)
    fs.create(BUCKET, "real", io.BytesIO(b"1"))
    (tmp_path / "master" / f"{STAGING_PREFIX}abc").write_bytes(b"in flight")
    assert [f.key for f in fs.list(BUCKET, ListQuery())] == ["real"]
    with pytest.raises(InvalidKey):
        fs.create(BUCKET, f"dir/{STAGING_PREFIX}x", io.BytesIO(b"1"))


def test_local_key_conflicting_with_existing_prefix(tmp_path):
    fs = LocalFileSystem(tmp_path)
    fs.create(BUCKET, "a", io.BytesIO(b"file"))
    with pytest.raises(InvalidKey):
        fs.create(BUCKET, "a/b", io.BytesIO(b"nested"))
    fs.create(BUCKET, "d/e", io.BytesIO(b"nested"))
    with pytest.raises(InvalidKey):
        fs.create(BUCKET, "d", io.BytesIO(b"file"))
    assert read_all(fs.open(BUCKET, "a")) == b"file"


def test_local_last_modified_matches_listing(tmp_path):
    fs = LocalFileSystem(tmp_path)
    created = fs.create(BUCKET, "t", io.BytesIO(b"1"))
    [listed] = fs.list(BUCKET, ListQuery())
    assert abs((listed.last_modified - created.last_modified).total_seconds()) < 0.01


def test_local_missing_bucket_dir_lists_empty(tmp_path):
    assert LocalFileSystem(tmp_path).list(Bucket(name="ghost"), ListQuery()) == []


# ----- S3 (mocked client) -----


class Fake404(Exception):
    response = {"Error": {"Code": "NoSuchKey"}}


class FakeS3:
    """Just enough of the boto3 S3 client for S3FileSystem."""

    def __init__(self):
        self.objects: dict[tuple[str, str], tuple[bytes, datetime]] = {}
        self.tick = 0

    def _now(self) -> datetime:
        self.tick += 1
        return datetime(2024, 1, 1, 0, 0, self.tick, tzinfo=timezone.utc)

    def upload_fileobj(self, fileobj, bucket, key):
        chunks = []
        while chunk := fileobj.read(1000):
            chunks.append(chunk)
        self.objects[(bucket, key)] = (b"".join(chunks), self._now())

    def head_object(self, Bucket, Key):
        data, ts = self.objects[(Bucket, Key)]
        return {"ContentLength": len(data), "LastModified": ts}

    def get_object(self, Bucket, Key):
        if (Bucket, Key) not in self.objects:
            raise Fake404()
        data, ts = self.objects[(Bucket, Key)]
        return {"Body": io.BytesIO(data), "LastModified": ts}

    def get_paginator(self, op):
        assert op == "list_objects_v2"
        paginator = MagicMock()

        def paginate(Bucket, Prefix):
            contents = [
                {"Key": k, "LastModified": ts}
                for (b, k), (_, ts) in self.objects.items()
                if b == Bucket and k.startswith(Prefix)
            ]
            # Two pages to exercise pagination.
            half = len(contents) // 2
            return [{"Contents": contents[:half]}, {"Contents": contents[half:]}, {}]

        paginator.paginate.side_effect = paginate
        return paginator


@pytest.fixture
def s3_fs():
    from ent.storage.s3 import S3FileSystem

    return S3FileSystem("test-bucket", client=FakeS3())


def test_s3_storage_requires_bucket():
    from ent.storage.s3 import S3FileSystem

    with pytest.raises(ValueError, match="s3_bucket"):
        S3FileSystem("", client=MagicMock())


def test_get_storage_s3_uses_settings(monkeypatch):
    monkeypatch.setenv("STORAGE_BACKEND", "s3")
    monkeypatch.setenv("S3_BUCKET", "ent-objects")
    monkeypatch.setenv("S3_ENDPOINT_URL", "http://minio:9000")
    get_settings.cache_clear()
    with patch("ent.storage.s3._get_client") as m_get_client:
        m_get_client.return_value = FakeS3()
        backend = get_filesystem()
    assert backend.name == "s3"
    m_get_client.assert_called_once_with("us-east-1", "http://minio:9000")


def test_s3_round_trip_and_object_layout(s3_fs):
    data = os.urandom(5000)
    created = s3_fs.create(BUCKET, "dir/obj.bin", io.BytesIO(data))
    assert created.hexdigest() == hashlib.sha1(data).hexdigest()
    assert ("test-bucket", "master/dir/obj.bin") in s3_fs._client.objects
    opened = s3_fs.open(BUCKET, "dir/obj.bin")
    assert read_all(opened) == data
    assert opened.digest() == created.digest()


def test_s3_open_missing(s3_fs):
    with pytest.raises(FileNotFound):
        s3_fs.open(BUCKET, "missing/key")


def test_s3_list(s3_fs):
    for i in (2, 0, 1):
        s3_fs.create(BUCKET, f"list/f{i}", io.BytesIO(b"x"))
    s3_fs.create(OTHER, "list/f9", io.BytesIO(b"x"))
    listed = s3_fs.list(BUCKET, ListQuery(prefix="list/", sort=SortStrategy.parse("-lastModified")))
    assert [f.key for f in listed] == ["list/f1", "list/f0", "list/f2"]
    assert read_all(listed[0]) == b"x"


def test_s3_upload_failure_is_backend_io(s3_fs):
    s3_fs._client.upload_fileobj = MagicMock(side_effect=RuntimeError("throttled"))
    with pytest.raises(BackendIO) as exc:
        s3_fs.create(BUCKET, "k", io.BytesIO(b"x"))
    assert exc.value.operation == "create"
    assert isinstance(exc.value.__cause__, RuntimeError)
