"""Relational store ownership.

Responsibilities:
- Build the SQLAlchemy engine and session factory for one pipeline context.
- Create the schema on demand.
- Provide a transactional session scope that commits or rolls back as a unit.
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from ..models.records import Base


class Database:
    """Engine and session factory owned by a pipeline context rather than a module global."""

    def __init__(self, url: str, *, echo: bool = False) -> None:
        self.url = url
        self.engine = self._build_engine(url, echo=echo)
        self._session_factory = sessionmaker(
            bind=self.engine,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
            future=True,
        )

    @staticmethod
    def _build_engine(url: str, *, echo: bool) -> Engine:
        parsed = make_url(url)
        if parsed.get_backend_name() != "sqlite":
            return create_engine(url, future=True, pool_pre_ping=True, echo=echo)

        if parsed.database and parsed.database != ":memory:":
            Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": 30},
            future=True,
            echo=echo,
        )

        @event.listens_for(engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, _record) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    def init_schema(self) -> None:
        """Create all tables that do not exist yet."""

        Base.metadata.create_all(bind=self.engine)

    def session(self) -> Session:
        """Return a new session; the caller owns its lifecycle."""

        return self._session_factory()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Yield a session committed on success and rolled back on any exception."""

        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()
