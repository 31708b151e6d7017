"""
Durable key-value store on SQLAlchemy.

Uses SQLAlchemy 2.x style sessions. Each call is a short synchronous
transaction run in a worker thread via :func:`asyncio.to_thread`, so the
event loop keeps serving browser events while the database works.
Database errors surface as :class:`~tracewipe.core.errors.StorageIOError`.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ..core.errors import StorageIOError
from .models import Base, KeyValueEntry


def create_store_engine(database_url: str) -> Engine:
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        if not url.database or url.database == ":memory:":
            # One shared connection, otherwise every worker thread sees its own empty database.
            return create_engine(
                database_url,
                echo=False,
                future=True,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)
    return create_engine(database_url, echo=False, future=True)


class SqlKeyValueStore:
    def __init__(self, database_url: str | None = None, *, engine: Engine | None = None) -> None:
        if engine is None and database_url is None:
            raise ValueError("SqlKeyValueStore needs a database_url or an engine")
        self.logger = logging.getLogger("storage.sql")
        self.engine = engine or create_store_engine(database_url or "")
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False, future=True)
        Base.metadata.create_all(self.engine)

    async def get(self, key: str) -> Any:
        try:
            return await asyncio.to_thread(self._read, key)
        except SQLAlchemyError as exc:
            raise StorageIOError(f"read failed key={key}: {exc}") from exc

    async def set(self, key: str, value: Any) -> None:
        try:
            await asyncio.to_thread(self._write, key, value)
        except SQLAlchemyError as exc:
            raise StorageIOError(f"write failed key={key}: {exc}") from exc

    async def remove(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._delete, key)
        except SQLAlchemyError as exc:
            raise StorageIOError(f"remove failed key={key}: {exc}") from exc

    def _read(self, key: str) -> Any:
        with self.SessionLocal() as db:
            row = db.get(KeyValueEntry, key)
            return row.value if row is not None else None

    def _write(self, key: str, value: Any) -> None:
        with self.SessionLocal() as db:
            row = db.get(KeyValueEntry, key)
            if row is None:
                db.add(KeyValueEntry(key=key, value=value))
            else:
                row.value = value
            db.commit()

    def _delete(self, key: str) -> None:
        with self.SessionLocal() as db:
            row = db.get(KeyValueEntry, key)
            if row is not None:
                db.delete(row)
                db.commit()

    def close(self) -> None:
        self.engine.dispose()
