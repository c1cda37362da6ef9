"""Database connection management."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel

# Register table models on SQLModel.metadata before create_all runs
from chatrelay.domain.entities import conversation as _conversation  # noqa: F401
from chatrelay.domain.entities import job_record as _job_record  # noqa: F401
from chatrelay.domain.entities import message as _message  # noqa: F401


class Database:
    """Non-blocking database connection manager.

    Wraps an async SQLAlchemy engine. SQLite (aiosqlite) is the default
    backend; any async driver URL such as ``postgresql+asyncpg://`` works.

    Example:
        >>> database = Database("sqlite+aiosqlite:///./data/chatrelay.db")
        >>> await database.initialize()
        >>> async with database.get_session() as session:
        ...     result = await session.execute(select(Conversation))
        >>> await database.close()
    """

    def __init__(self, url: str) -> None:
        """Initialize Database with connection URL.

        Args:
            url: SQLAlchemy-style connection URL.

        Raises:
            ValueError: If URL is empty or invalid format.
        """
        if not url:
            raise ValueError("Database URL cannot be empty")

        self._validate_url(url)
        self._url = url
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    def _validate_url(self, url: str) -> None:
        parsed = urlparse(url)
        if not parsed.scheme or "+" not in parsed.scheme:
            raise ValueError(f"Invalid database URL format: {url}")

    @property
    def url(self) -> str:
        """Get the connection URL."""
        return self._url

    @property
    def is_sqlite(self) -> bool:
        """Return True when the backend is SQLite."""
        return urlparse(self._url).scheme.startswith("sqlite")

    @property
    def engine(self) -> AsyncEngine:
        """Get the async engine.

        Raises:
            RuntimeError: If database is not initialized.
        """
        if self._engine is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self._engine

    async def initialize(self) -> None:
        """Create the engine and all registered tables.

        For SQLite, the parent directory of the database file is created
        and foreign key enforcement is switched on for every connection so
        that deleting a conversation cascades to its messages.
        """
        self._ensure_parent_directory()

        self._engine = create_async_engine(self._url, echo=False)

        if self.is_sqlite:
            event.listen(
                self._engine.sync_engine, "connect", _enable_sqlite_foreign_keys
            )

        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        async with self._engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    def _ensure_parent_directory(self) -> None:
        if not self.is_sqlite:
            return
        db_path = urlparse(self._url).path
        if db_path.startswith("///"):
            db_path = db_path[3:]
        elif db_path.startswith("/"):
            db_path = db_path[1:]

        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    async def close(self) -> None:
        """Close database connection and dispose engine."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[AsyncSession]:
        """Get a database session.

        Yields:
            AsyncSession: Database session with auto-commit on success
                and auto-rollback on exception.

        Raises:
            RuntimeError: If database is not initialized or has been closed.
        """
        if self._session_factory is None:
            raise RuntimeError("Database not initialized or has been closed.")

        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
