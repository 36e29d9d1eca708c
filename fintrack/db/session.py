"""
Process-wide database connection manager.

One pooled engine per process, created lazily on first use and disposed by
the application lifespan. Routers get sessions through `get_db`.
"""
from __future__ import annotations

from collections.abc import Iterator
from threading import RLock

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from fintrack.core.config import settings


class DatabaseManager:
    def __init__(self, url: str | None = None) -> None:
        self._url = url
        self._engine: Engine | None = None
        self._sessionmaker: sessionmaker[Session] | None = None
        self._lock = RLock()

    @property
    def url(self) -> str:
        return self._url or settings.database_url

    def get_connection(self) -> Engine:
        with self._lock:
            if self._engine is None:
                self._engine = self._create_engine(self.url)
                self._sessionmaker = sessionmaker(bind=self._engine, autoflush=False, expire_on_commit=False)
            return self._engine

    def session(self) -> Session:
        self.get_connection()
        assert self._sessionmaker is not None
        return self._sessionmaker()

    def configure(self, url: str) -> None:
        """Point the manager at another database; the current pool is disposed."""
        with self._lock:
            self.dispose()
            self._url = url

    def dispose(self) -> None:
        with self._lock:
            if self._engine is not None:
                self._engine.dispose()
            self._engine = None
            self._sessionmaker = None

    @staticmethod
    def _create_engine(url: str) -> Engine:
        if url.startswith("sqlite"):
            kwargs: dict = {"connect_args": {"check_same_thread": False}}
            if ":memory:" in url or url.rstrip("/") == "sqlite:":
                kwargs["poolclass"] = StaticPool
            return create_engine(url, **kwargs)
        return create_engine(url, pool_pre_ping=True)


db_manager = DatabaseManager()


def get_db() -> Iterator[Session]:
    db = db_manager.session()
    try:
        yield db
    finally:
        db.close()
