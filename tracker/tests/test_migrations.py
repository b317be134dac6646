"""Tests for the database migration system."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch


def _cursor(fetchone=None, fetchall=None):
    cur = MagicMock()
    cur.fetchone = AsyncMock(return_value=fetchone)
    cur.fetchall = AsyncMock(return_value=fetchall or [])
    return cur


class TestMigrationSystem:

    @pytest.fixture
    def mock_connection(self):
        conn = MagicMock()
        conn.execute = AsyncMock(return_value=_cursor(fetchone=(0,)))
        tx = MagicMock()
        tx.__aenter__ = AsyncMock(return_value=None)
        tx.__aexit__ = AsyncMock(return_value=None)
        conn.transaction = MagicMock(return_value=tx)
        return conn

    @pytest.fixture
    def mock_get_connection(self, mock_connection):
        def _factory(*_args, **_kwargs):
            cm = MagicMock()
            cm.__aenter__ = AsyncMock(return_value=mock_connection)
            cm.__aexit__ = AsyncMock(return_value=None)
            return cm

        with patch("tracker.db.migrations.get_connection", side_effect=_factory):
            yield

    @pytest.mark.asyncio
    async def test_get_current_version_creates_table(self, mock_get_connection, mock_connection):
        from tracker.db.migrations import get_current_version

        version = await get_current_version()

        create_call = mock_connection.execute.call_args_list[0]
        assert "CREATE TABLE IF NOT EXISTS schema_migrations" in create_call[0][0]
        assert version == 0

    @pytest.mark.asyncio
    async def test_get_current_version_returns_max(self, mock_get_connection, mock_connection):
        mock_connection.execute = AsyncMock(return_value=_cursor(fetchone=(5,)))
        from tracker.db.migrations import get_current_version

        assert await get_current_version() == 5

    @pytest.mark.asyncio
    async def test_apply_migration_skips_if_already_applied(self, mock_get_connection, mock_connection):
        mock_connection.execute = AsyncMock(return_value=_cursor(fetchone=(5,)))
        from tracker.db.migrations import apply_migration

        assert await apply_migration(3, "SELECT 1;", "test") is False
        mock_connection.transaction.assert_not_called()

    @pytest.mark.asyncio
    async def test_apply_migration_runs_sql_and_records_version(self, mock_get_connection, mock_connection):
        from tracker.db.migrations import apply_migration

        assert await apply_migration(1, "CREATE TABLE t (id INT);", "create_t") is True

        mock_connection.transaction.assert_called_once()
        statements = [c[0] for c in mock_connection.execute.call_args_list]
        assert ("CREATE TABLE t (id INT);",) in statements
        insert = statements[-1]
        assert "INSERT INTO schema_migrations" in insert[0]
        assert insert[1] == (1, "create_t")

    @pytest.mark.asyncio
    async def test_apply_migration_propagates_failure(self, mock_get_connection, mock_connection):
        from tracker.db.migrations import apply_migration

        cursor = _cursor(fetchone=(0,))
        mock_connection.execute = AsyncMock(side_effect=[None, cursor, RuntimeError("syntax error")])

        with pytest.raises(RuntimeError):
            await apply_migration(1, "BROKEN", "broken")

    @pytest.mark.asyncio
    async def test_get_migration_history(self, mock_get_connection, mock_connection):
        rows = [(1, "2024-01-01T00:00:00+00:00", "visit_tracking")]
        mock_connection.execute = AsyncMock(return_value=_cursor(fetchall=rows))
        from tracker.db.migrations import get_migration_history

        history = await get_migration_history()

        assert history == [
            {"version": 1, "applied_at": "2024-01-01T00:00:00+00:00", "description": "visit_tracking"}
        ]


class TestMigrationFiles:

    def test_shipped_migrations_are_ordered(self):
        from tracker.db.migrations import list_migrations

        migrations = list_migrations()
        versions = [m["version"] for m in migrations]

        assert versions == sorted(versions)
        assert migrations[0]["version"] == 1
        assert migrations[0]["description"] == "visit_tracking"

    def test_locations_are_unique_per_coordinate_pair(self):
        from tracker.db.migrations import list_migrations

        sql = list_migrations()[0]["path"].read_text()
        assert "UNIQUE (latitude, longitude)" in sql

    @pytest.mark.asyncio
    async def test_pending_migrations_filters_applied(self):
        from tracker.db.migrations import get_pending_migrations

        with patch("tracker.db.migrations.get_current_version", new_callable=AsyncMock, return_value=1):
            assert await get_pending_migrations() == []
        with patch("tracker.db.migrations.get_current_version", new_callable=AsyncMock, return_value=0):
            pending = await get_pending_migrations()
        assert [m["version"] for m in pending] == [1]
