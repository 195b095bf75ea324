"""Application settings."""
from functools import lru_cache

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class BucketSpec(BaseModel):
    """One entry of STATIC_BUCKETS (JSON list)."""

    name: str
    owner_name: str = ""
    owner_email: str = ""


class Settings(BaseSettings):
    """App config from env."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    app_name: str = "ent"
    debug: bool = False
    # Structured logging: set LOG_JSON=1 for one-JSON-object-per-line
    log_json: bool = False
    log_level: str = "INFO"
    # If set, /metrics requires the X-Metrics-Secret header
    metrics_secret: str | None = None

    # Files: memory (volatile), local (disk under data_dir) or s3
    storage_backend: str = "local"  # memory | local | s3
    data_dir: str = "./ent_data"

    # Buckets: static (STATIC_BUCKETS) or sql (DATABASE_URL)
    provider_backend: str = "static"  # static | sql
    static_buckets: list[BucketSpec] = []
    database_url: str = "sqlite:///./ent.db"

    # S3 (only used when storage_backend=s3). Every ent bucket is a prefix inside s3_bucket.
    s3_bucket: str | None = None
    aws_region: str = "us-east-1"
    s3_endpoint_url: str | None = None  # MinIO / localstack

    # Upload bodies are spooled in memory up to this size, then to a temp file
    spool_max_bytes: int = 8 * 1024 * 1024
    read_chunk_size: int = 64 * 1024


@lru_cache
def get_settings() -> Settings:
    return Settings()
