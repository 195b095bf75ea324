"""Backend factories: files (memory, local disk or S3) and buckets (static or SQL).

S3 and SQL modules are imported only when selected, so boto3 is never loaded for local use.
"""
from ent.core.config import Settings, get_settings
from ent.models import Bucket, Owner
from ent.storage.base import File, Files, FileSystem, Provider, StreamFile
from ent.storage.local import LocalFileSystem
from ent.storage.memory import MemoryFileSystem
from ent.storage.provider import StaticProvider

__all__ = [
    "File",
    "Files",
    "FileSystem",
    "Provider",
    "StreamFile",
    "LocalFileSystem",
    "MemoryFileSystem",
    "StaticProvider",
    "get_filesystem",
    "get_provider",
]


def get_filesystem(settings: Settings | None = None) -> FileSystem:
    """Return the configured file backend."""
    settings = settings or get_settings()
    if settings.storage_backend == "s3":
        from ent.storage.s3 import S3FileSystem
        return S3FileSystem(
            settings.s3_bucket or "",
            region=settings.aws_region,
            endpoint_url=settings.s3_endpoint_url,
            spool_max_bytes=settings.spool_max_bytes,
            chunk_size=settings.read_chunk_size,
        )
    if settings.storage_backend == "memory":
        return MemoryFileSystem(chunk_size=settings.read_chunk_size)
    if settings.storage_backend == "local":
        return LocalFileSystem(settings.data_dir, chunk_size=settings.read_chunk_size)
    raise ValueError(f"Unknown storage_backend: {settings.storage_backend}")


def get_provider(settings: Settings | None = None) -> Provider:
    """Return the configured bucket registry (not yet initialised)."""
    settings = settings or get_settings()
    if settings.provider_backend == "sql":
        from ent.db.provider import SQLProvider
        return SQLProvider(settings.database_url, echo=settings.debug)
    if settings.provider_backend == "static":
        return StaticProvider(
            Bucket(name=s.name, owner=Owner(display_name=s.owner_name, email_address=s.owner_email))
            for s in settings.static_buckets
        )
    raise ValueError(f"Unknown provider_backend: {settings.provider_backend}")
