"""
Command Catalog Session Management

The catalog database is owned by an explicitly constructed ``CatalogStore``
rather than a module-level engine, so the application and each test can
hold an isolated instance.

Lifecycle:
    store = CatalogStore(settings.DATABASE_URL)
    store.open()      # engine, foreign-key pragma, tables + FTS index
    with store.session() as db:
        ...           # commit on success, rollback on error
    store.close()

Dependencies:
    - get_db(): FastAPI dependency yielding a session from the app's store
"""

from collections.abc import Generator
from contextlib import contextmanager
from typing import Optional

import structlog
from fastapi import Request
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from cmdsearch.db.models import Base

logger = structlog.get_logger(__name__)


class CatalogStore:
    """
    Owner of the catalog engine and session factory.

    Args:
        url: SQLAlchemy database URL.  ``sqlite://`` (in-memory) URLs share a
            single connection so every session sees the same database.
        enforce_foreign_keys: Turn on SQLite foreign-key enforcement, which
            provides the ON DELETE CASCADE from commands to embeddings.
        create_schema: Create missing tables and the FTS index on open.
    """

    def __init__(
        self,
        url: str,
        *,
        enforce_foreign_keys: bool = True,
        create_schema: bool = True,
    ):
        self.url = url
        self.enforce_foreign_keys = enforce_foreign_keys
        self.create_schema = create_schema
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("CatalogStore is not open")
        return self._engine

    def open(self) -> "CatalogStore":
        """Create the engine and schema.  Opening twice is a no-op."""
        if self._engine is not None:
            return self

        kwargs: dict = {"echo": False}
        if self.url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if self.url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool

        engine = create_engine(self.url, **kwargs)

        if engine.dialect.name == "sqlite":
            enforce = self.enforce_foreign_keys

            @event.listens_for(engine, "connect")
            def set_sqlite_pragma(dbapi_conn, connection_record):
                cursor = dbapi_conn.cursor()
                cursor.execute(f"PRAGMA foreign_keys={'ON' if enforce else 'OFF'}")
                cursor.close()

        if self.create_schema:
            Base.metadata.create_all(bind=engine)

        self._engine = engine
        # expire_on_commit=False keeps loaded rows readable after commit
        self._session_factory = sessionmaker(
            bind=engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )
        logger.info("catalog_store_opened", dialect=engine.dialect.name)
        return self

    def close(self) -> None:
        """Dispose of the engine.  Closing a closed store is a no-op."""
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        self._session_factory = None
        logger.info("catalog_store_closed")

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope around a series of operations.

        Commits on success, rolls back on exception, and always closes
        the session.
        """
        if self._session_factory is None:
            raise RuntimeError("CatalogStore is not open")
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def __enter__(self) -> "CatalogStore":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    FastAPI dependency that provides a session from the application's store.

    Usage:
        @router.get("/items")
        def get_items(db: Session = Depends(get_db)):
            ...

    The session commits when the request handler returns normally.
    """
    store: CatalogStore = request.app.state.store
    with store.session() as db:
        yield db
