"""SQLAlchemy-backed job and product store."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterable, Iterator

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pantrywatch.errors import PersistenceConnectionError, PersistenceWriteError
from pantrywatch.extractors.schemas import ProductRecord
from pantrywatch.logging_config import get_logger

from . import db, repo
from .base import UpsertResult

LOGGER = get_logger(__name__)


class SqlStore:
    """Implements both the job store and the product store over one engine.

    Every operation commits on success and rolls back on failure.  Dead
    connections surface as :class:`PersistenceConnectionError`, every other
    database failure as :class:`PersistenceWriteError`.
    """

    def __init__(self, engine: Engine, *, create_schema: bool = True) -> None:
        self.engine = engine
        self._session_factory = db.make_session(engine)
        self._session: Session | None = self._session_factory()
        self.reconnect_count = 0
        self.close_count = 0
        if create_schema:
            db.init_db_safe(engine)

    @classmethod
    def from_url(cls, database_url: str) -> "SqlStore":
        return cls(db.get_engine(database_url))

    @property
    def session(self) -> Session:
        if self._session is None:
            raise PersistenceConnectionError("Store is closed")
        return self._session

    @contextmanager
    def _transaction(self, action: str) -> Iterator[Session]:
        session = self.session
        try:
            yield session
            session.commit()
        except (ValueError, LookupError):
            session.rollback()
            raise
        except SQLAlchemyError as exc:
            try:
                session.rollback()
            except SQLAlchemyError:
                LOGGER.debug("Rollback failed after %s error", action)
            if db.is_connection_error(exc):
                raise PersistenceConnectionError(f"{action}: {exc}") from exc
            raise PersistenceWriteError(f"{action}: {exc}") from exc

    def create_job(self) -> int:
        with self._transaction("create_job") as session:
            job = repo.create_job(session)
        return job.id

    def update_job(self, job_id: int, **fields: Any) -> None:
        with self._transaction("update_job") as session:
            repo.update_job(session, job_id, **fields)

    def get_latest_job(self) -> dict[str, Any] | None:
        with self._transaction("get_latest_job") as session:
            job = repo.get_latest_job(session)
            return repo.job_as_dict(job) if job is not None else None

    def upsert_product(self, record: ProductRecord) -> UpsertResult:
        with self._transaction("upsert_product") as session:
            product, is_new = repo.upsert_product(session, record)
        return UpsertResult(id=product.id, is_new=is_new)

    def add_price_observation(
        self,
        product_id: int,
        price: float,
        price_per_unit: str | None = None,
    ) -> bool:
        with self._transaction("add_price_observation") as session:
            return repo.add_price_observation(session, product_id, price, price_per_unit=price_per_unit)

    def deactivate_unseen(self, categories: Iterable[str], before: datetime) -> int:
        with self._transaction("deactivate_unseen") as session:
            return repo.deactivate_unseen(session, categories, before)

    def reconnect(self) -> None:
        """Drop pooled connections and start over with a fresh session."""

        LOGGER.info("Reconnecting to the database")
        if self._session is not None:
            try:
                self._session.close()
            except SQLAlchemyError as exc:
                LOGGER.debug("Closing stale session failed: %s", exc)
        self.engine.dispose()
        self._session = self._session_factory()
        self.reconnect_count += 1
        try:
            db.check_connection(self.engine)
        except SQLAlchemyError as exc:
            raise PersistenceConnectionError(f"reconnect: {exc}") from exc

    def close(self) -> None:
        if self._session is None:
            return
        self.close_count += 1
        self._session.close()
        self._session = None
        self.engine.dispose()
        LOGGER.info("Database disconnected")
