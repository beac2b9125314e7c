"""Tests for session management."""

import pytest
from sqlalchemy import inspect, text

from medialib.server.db.session import DatabaseSessionManager


async def test_session_manager_session() -> None:
    """Test that the session manager can provide a session."""
    manager = DatabaseSessionManager("sqlite+aiosqlite:///:memory:")

    async with manager.session() as session:
        result = await session.execute(text("SELECT 1"))
        assert result.scalar() == 1

    await manager.close()


async def test_create_all(tmp_path) -> None:
    manager = DatabaseSessionManager(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await manager.create_all()
    # Idempotent
    await manager.create_all()

    async with manager.session() as session:
        connection = await session.connection()
        tables = await connection.run_sync(
            lambda conn: inspect(conn).get_table_names()
        )
    assert {"media_metadata", "media_favorites", "media_companies"} <= set(tables)

    await manager.close()


async def test_closed_manager() -> None:
    manager = DatabaseSessionManager("sqlite+aiosqlite:///:memory:")
    await manager.close()

    with pytest.raises(Exception, match="not initialized"):
        async with manager.session():
            pass
