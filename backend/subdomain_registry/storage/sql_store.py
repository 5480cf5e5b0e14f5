"""
SQL-backed record store.

Stores each registry key as a row in ``registry_records``. Works against
PostgreSQL in production and SQLite for local runs and tests.

Each operation runs in its own short transaction. Sequences of operations
are not wrapped in one transaction, matching the semantics of the other
backends.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy import create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from subdomain_registry.db_base import Base
from subdomain_registry.errors import StoreFailureError
from subdomain_registry.models.record_row import RegistryRecordRow
from subdomain_registry.storage.record_store import RecordStore

logger = logging.getLogger(__name__)


def _normalize_database_url(database_url: str) -> str:
    # Render-style postgres:// URLs (SQLAlchemy requires postgresql://)
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql://", 1)
    return database_url


def create_store_engine(database_url: str) -> Engine:
    """
    Create an engine suitable for the record store.

    In-memory SQLite shares one connection across threads so every session
    sees the same database.
    """
    database_url = _normalize_database_url(database_url)
    if database_url.startswith("sqlite") and ":memory:" in database_url:
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})
    return create_engine(
        database_url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_recycle=1800,
    )


class SqlRecordStore(RecordStore):
    """Record store over a SQLAlchemy engine."""

    def __init__(
        self,
        database_url: Optional[str] = None,
        engine: Optional[Engine] = None,
        create_tables: bool = True,
    ):
        if engine is None and not database_url:
            raise ValueError("SqlRecordStore requires a database_url or an engine")

        self._engine = engine or create_store_engine(database_url)
        self._session_factory = sessionmaker(
            bind=self._engine, autocommit=False, autoflush=False, expire_on_commit=False
        )

        if create_tables:
            Base.metadata.create_all(bind=self._engine, tables=[RegistryRecordRow.__table__])

        logger.info("SQL record store configured", extra={"dialect": self._engine.dialect.name})

    def get(self, key: str) -> Optional[Any]:
        try:
            with self._session_factory() as session:
                row = session.get(RegistryRecordRow, key)
                raw = row.value if row is not None else None
        except SQLAlchemyError as e:
            raise StoreFailureError(f"SQL read failed for {key}: {e}", cause=e)
        return self._decode(key, raw)

    def put(self, key: str, value: Any) -> None:
        encoded = self._encode(key, value)
        try:
            with self._session_factory() as session:
                session.merge(RegistryRecordRow(key=key, value=encoded))
                session.commit()
        except SQLAlchemyError as e:
            raise StoreFailureError(f"SQL write failed for {key}: {e}", cause=e)

    def delete(self, key: str) -> None:
        try:
            with self._session_factory() as session:
                row = session.get(RegistryRecordRow, key)
                if row is not None:
                    session.delete(row)
                    session.commit()
        except SQLAlchemyError as e:
            raise StoreFailureError(f"SQL delete failed for {key}: {e}", cause=e)

    def list_by_prefix(self, prefix: str) -> Dict[str, Any]:
        stmt = (
            select(RegistryRecordRow.key, RegistryRecordRow.value)
            .where(RegistryRecordRow.key.startswith(prefix, autoescape=True))
            .order_by(RegistryRecordRow.key)
        )
        try:
            with self._session_factory() as session:
                rows = session.execute(stmt).all()
        except SQLAlchemyError as e:
            raise StoreFailureError(f"SQL scan failed for {prefix}: {e}", cause=e)
        return {key: self._decode(key, value) for key, value in rows}

    def close(self) -> None:
        self._engine.dispose()
