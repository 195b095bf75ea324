"""SQL-backed bucket registry. Reads are served from an in-process snapshot refreshed by init()/refresh()."""
import logging
from types import MappingProxyType

from sqlalchemy import create_engine, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ent.db.models import Base, BucketRecord
from ent.errors import BackendIO, BucketExists, BucketNotFound
from ent.models import Bucket
from ent.storage.base import Provider
from ent.storage.provider import index_buckets

logger = logging.getLogger(__name__)


class SQLProvider(Provider):
    """Bucket catalog in a `buckets` table. Owns its engine; nothing is module-global."""

    def __init__(self, database_url: str, echo: bool = False):
        self._engine = create_engine(database_url, echo=echo)
        self._session_factory = sessionmaker(self._engine, class_=Session, expire_on_commit=False)
        self._snapshot: MappingProxyType = MappingProxyType({})

    def init(self) -> None:
        """Create the table if missing and load the catalog."""
        try:
            Base.metadata.create_all(self._engine)
        except SQLAlchemyError as e:
            raise BackendIO("init", e) from e
        self.refresh()

    def refresh(self) -> None:
        try:
            with self._session_factory() as session:
                rows = session.scalars(select(BucketRecord).order_by(BucketRecord.name)).all()
                buckets = [r.to_bucket() for r in rows]
        except SQLAlchemyError as e:
            raise BackendIO("refresh", e) from e
        # Single reference swap: readers never observe a partially built catalog.
        self._snapshot = index_buckets(buckets)
        logger.info("bucket catalog loaded: %d bucket(s)", len(buckets))

    def register(self, bucket: Bucket) -> Bucket:
        try:
            with self._session_factory() as session, session.begin():
                session.add(BucketRecord.from_bucket(bucket))
        except IntegrityError as e:
            raise BucketExists(bucket.name) from e
        except SQLAlchemyError as e:
            raise BackendIO("register", e) from e
        self.refresh()
        return bucket

    def ping(self) -> None:
        try:
            with self._engine.connect() as conn:
                conn.exec_driver_sql("SELECT 1")
        except SQLAlchemyError as e:
            raise BackendIO("ping", e) from e

    def get(self, name: str) -> Bucket:
        try:
            return self._snapshot[name]
        except KeyError:
            raise BucketNotFound(name) from None

    def list(self) -> list[Bucket]:
        return list(self._snapshot.values())

    def dispose(self) -> None:
        self._engine.dispose()
