"""Tests for Database class."""

import asyncio
from pathlib import Path

import pytest
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from chatrelay.domain.entities.conversation import Conversation
from chatrelay.infrastructure.persistence.database import Database


def _url(path: Path) -> str:
    return f"sqlite+aiosqlite:///{path}"


class TestDatabaseInitialization:
    """Database construction and initialize()."""

    async def test_initialize_creates_file(self, tmp_path: Path) -> None:
        db_path = tmp_path / "test.db"
        database = Database(_url(db_path))
        await database.initialize()

        assert db_path.exists()

        await database.close()

    def test_url_property(self, tmp_path: Path) -> None:
        url = _url(tmp_path / "test.db")

        assert Database(url).url == url

    def test_is_sqlite(self, tmp_path: Path) -> None:
        assert Database(_url(tmp_path / "test.db")).is_sqlite
        assert not Database("postgresql+asyncpg://localhost/chat").is_sqlite

    def test_empty_url_raises_error(self) -> None:
        with pytest.raises(ValueError):
            Database("")

    def test_url_without_driver_raises_error(self) -> None:
        with pytest.raises(ValueError):
            Database("invalid-url")

    def test_engine_before_initialize_raises(self, tmp_path: Path) -> None:
        with pytest.raises(RuntimeError):
            _ = Database(_url(tmp_path / "test.db")).engine

    async def test_parent_directory_auto_created(self, tmp_path: Path) -> None:
        db_path = tmp_path / "nested" / "dir" / "test.db"
        database = Database(_url(db_path))
        await database.initialize()

        assert db_path.parent.is_dir()

        await database.close()


class TestDatabaseTables:
    """Schema creation."""

    async def test_tables_created_on_initialize(self, tmp_path: Path) -> None:
        database = Database(_url(tmp_path / "test.db"))
        await database.initialize()

        async with database.get_session() as session:
            result = await session.execute(
                text("SELECT name FROM sqlite_master WHERE type='table'")
            )
            tables = {row[0] for row in result.fetchall()}

        assert {"conversations", "messages"} <= tables

        await database.close()

    async def test_foreign_keys_enabled(self, tmp_path: Path) -> None:
        """Every SQLite connection enforces foreign keys."""
        database = Database(_url(tmp_path / "test.db"))
        await database.initialize()

        async with database.get_session() as session:
            result = await session.execute(text("PRAGMA foreign_keys"))
            assert result.scalar() == 1

        await database.close()


class TestDatabaseSession:
    """Session lifecycle."""

    async def test_get_session_returns_async_session(self, tmp_path: Path) -> None:
        database = Database(_url(tmp_path / "test.db"))
        await database.initialize()

        async with database.get_session() as session:
            assert isinstance(session, AsyncSession)

        await database.close()

    async def test_session_auto_commits_on_exit(self, tmp_path: Path) -> None:
        database = Database(_url(tmp_path / "test.db"))
        await database.initialize()

        async with database.get_session() as session:
            session.add(Conversation(platform="slack", channel_id="C1", user_id="U1"))

        async with database.get_session() as session:
            count = await session.scalar(select(func.count()).select_from(Conversation))
        assert count == 1

        await database.close()

    async def test_session_auto_rollbacks_on_exception(self, tmp_path: Path) -> None:
        database = Database(_url(tmp_path / "test.db"))
        await database.initialize()

        with pytest.raises(RuntimeError):
            async with database.get_session() as session:
                session.add(
                    Conversation(platform="slack", channel_id="C1", user_id="U1")
                )
                await session.flush()
                raise RuntimeError("boom")

        async with database.get_session() as session:
            count = await session.scalar(select(func.count()).select_from(Conversation))
        assert count == 0

        await database.close()

    async def test_get_session_after_close_raises(self, tmp_path: Path) -> None:
        database = Database(_url(tmp_path / "test.db"))
        await database.initialize()
        await database.close()

        with pytest.raises(RuntimeError):
            async with database.get_session():
                pass

    async def test_concurrent_sessions_work(self, tmp_path: Path) -> None:
        database = Database(_url(tmp_path / "test.db"))
        await database.initialize()

        async def insert(index: int) -> None:
            async with database.get_session() as session:
                session.add(
                    Conversation(
                        platform="telegram", channel_id=str(index), user_id="7"
                    )
                )

        await asyncio.gather(*(insert(i) for i in range(5)))

        async with database.get_session() as session:
            count = await session.scalar(select(func.count()).select_from(Conversation))
        assert count == 5

        await database.close()
