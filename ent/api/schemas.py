"""Pydantic response schemas. JSON field names are camelCase (lastModified, displayName, ...)."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ent.models import Bucket, Owner
from ent.storage.base import File


def _config_forbid(**kwargs):
    return ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True, **kwargs)


# ----- Buckets -----
class OwnerOut(BaseModel):
    model_config = _config_forbid()
    display_name: str
    email_address: str

    @classmethod
    def from_owner(cls, owner: Owner) -> "OwnerOut":
        return cls(display_name=owner.display_name, email_address=owner.email_address)


class BucketOut(BaseModel):
    model_config = _config_forbid()
    name: str
    owner: OwnerOut

    @classmethod
    def from_bucket(cls, bucket: Bucket) -> "BucketOut":
        return cls(name=bucket.name, owner=OwnerOut.from_owner(bucket.owner))


class BucketListResponse(BaseModel):
    model_config = _config_forbid()
    count: int
    buckets: list[BucketOut]


# ----- Files -----
class FileOut(BaseModel):
    model_config = _config_forbid()
    key: str
    last_modified: datetime


class CreatedFileOut(FileOut):
    digest: str  # hex SHA-1 of the uploaded bytes


class CreatedResponse(BaseModel):
    model_config = _config_forbid()
    file: CreatedFileOut

    @classmethod
    def from_file(cls, f: File) -> "CreatedResponse":
        return cls(file=CreatedFileOut(key=f.key, last_modified=f.last_modified, digest=f.hexdigest()))


class FileListResponse(BaseModel):
    model_config = _config_forbid()
    count: int
    files: list[FileOut]


# ----- Errors -----
class ErrorResponse(BaseModel):
    model_config = _config_forbid()
    error: str
    detail: str
    parameter: str | None = None
