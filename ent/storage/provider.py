"""Static bucket registry: catalog fixed at construction (settings or tests)."""
from collections.abc import Iterable
from types import MappingProxyType

from ent.errors import BucketNotFound
from ent.models import Bucket
from ent.storage.base import Provider


def index_buckets(buckets: Iterable[Bucket]) -> MappingProxyType:
    """Name -> bucket, read-only. Raises ValueError on duplicate names."""
    index: dict[str, Bucket] = {}
    for b in buckets:
        if b.name in index:
            raise ValueError(f"Duplicate bucket name: {b.name}")
        index[b.name] = b
    return MappingProxyType(index)


class StaticProvider(Provider):
    """In-memory registry. The snapshot is replaced wholesale, never mutated in place,
    so concurrent readers see either the old or the new catalog."""

    def __init__(self, buckets: Iterable[Bucket] = ()):
        self._pending = list(buckets)
        self._snapshot = index_buckets(self._pending)

    def init(self) -> None:
        self._snapshot = index_buckets(self._pending)

    def get(self, name: str) -> Bucket:
        try:
            return self._snapshot[name]
        except KeyError:
            raise BucketNotFound(name) from None

    def list(self) -> list[Bucket]:
        return list(self._snapshot.values())
