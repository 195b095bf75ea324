"""Pytest fixtures: in-memory registry and backend, an app wired to them, async test client."""
import io

import pytest
from httpx import ASGITransport, AsyncClient

from ent.core.config import get_settings
from ent.main import create_app
from ent.models import Bucket, Owner
from ent.storage.memory import MemoryFileSystem
from ent.storage.provider import StaticProvider


def make_buckets(*names: str) -> list[Bucket]:
    """One bucket per name, owned by '<name> <name@ent.io>'."""
    return [Bucket(name=n, owner=Owner.parse(f"{n} <{n}@ent.io>")) for n in names]


class RecordingFileSystem(MemoryFileSystem):
    """Memory backend that records every call, to prove validation happens before backend I/O."""

    def __init__(self):
        super().__init__()
        self.calls: list[tuple[str, str, str]] = []

    def create(self, bucket, key, src):
        self.calls.append(("create", bucket.name, key))
        return super().create(bucket, key, src)

    def open(self, bucket, key):
        self.calls.append(("open", bucket.name, key))
        return super().open(bucket, key)

    def list(self, bucket, query):
        self.calls.append(("list", bucket.name, query.prefix))
        return super().list(bucket, query)


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def buckets() -> list[Bucket]:
    return make_buckets("ent", "master", "peer", "nxt")


@pytest.fixture
def provider(buckets) -> StaticProvider:
    p = StaticProvider(buckets)
    p.init()
    return p


@pytest.fixture
def fs() -> RecordingFileSystem:
    return RecordingFileSystem()


@pytest.fixture
def app(provider, fs):
    return create_app(provider=provider, filesystem=fs)


@pytest.fixture
async def client(app):
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def listing_fixture(fs, buckets):
    """Bucket `master` holding list/filesname0..9 (created in key order) plus two unrelated keys."""
    master = next(b for b in buckets if b.name == "master")
    for i in range(10):
        fs.create(master, f"list/filesname{i}", io.BytesIO(f"payload {i}".encode()))
    fs.create(master, "other/a.txt", io.BytesIO(b"a"))
    fs.create(master, "listing.txt", io.BytesIO(b"b"))
    fs.calls.clear()
    return master
