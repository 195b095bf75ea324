"""SQLAlchemy models for the bucket catalog."""
from datetime import datetime, timezone

from sqlalchemy import DateTime, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ent.models import Bucket, Owner


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class BucketRecord(Base):
    __tablename__ = "buckets"

    name: Mapped[str] = mapped_column(Text, primary_key=True)
    owner_name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    owner_email: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def to_bucket(self) -> Bucket:
        return Bucket(name=self.name, owner=Owner(display_name=self.owner_name, email_address=self.owner_email))

    @classmethod
    def from_bucket(cls, bucket: Bucket) -> "BucketRecord":
        return cls(
            name=bucket.name,
            owner_name=bucket.owner.display_name,
            owner_email=bucket.owner.email_address,
        )
