"""Unit tests for app/store/database.py — schema init, path resolution, error mapping."""

from __future__ import annotations

import os
from pathlib import Path

import aiosqlite
import pytest

from app.errors import CredentialStoreInconsistentError, StoreUnavailableError
from app.store.database import connect, immediate_transaction, init_store, resolve_db_path

pytestmark = pytest.mark.asyncio


class TestInitStore:
    async def test_creates_db_file(self, tmp_path: Path) -> None:
        db = tmp_path / "pali.db"
        assert not db.exists()
        await init_store(db)
        assert db.exists()

    async def test_file_permissions_0600(self, tmp_path: Path) -> None:
        db = tmp_path / "pali.db"
        await init_store(db)
        mode = os.stat(db).st_mode & 0o777
        assert mode == 0o600, f"Expected 0o600, got {oct(mode)}"

    async def test_pragma_user_version_1(self, tmp_path: Path) -> None:
        db = tmp_path / "pali.db"
        await init_store(db)
        async with aiosqlite.connect(str(db)) as conn:
            async with conn.execute("PRAGMA user_version") as cursor:
                row = await cursor.fetchone()
        assert row[0] == 1

    @pytest.mark.parametrize("table", ["api_keys", "todos"])
    async def test_creates_tables(self, tmp_path: Path, table: str) -> None:
        db = tmp_path / "pali.db"
        await init_store(db)
        async with aiosqlite.connect(str(db)) as conn:
            async with conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
            ) as cursor:
                row = await cursor.fetchone()
        assert row is not None, f"{table} table not found"

    async def test_key_hash_is_unique(self, tmp_path: Path) -> None:
        db = tmp_path / "pali.db"
        await init_store(db)
        async with aiosqlite.connect(str(db)) as conn:
            insert = (
                "INSERT INTO api_keys (id, key_hash, client_name, key_type, created_at, active) "
                "VALUES (?, 'h', 'x', 'client', 1, 1)"
            )
            await conn.execute(insert, ("a",))
            with pytest.raises(aiosqlite.IntegrityError):
                await conn.execute(insert, ("b",))

    async def test_idempotent_double_call(self, tmp_path: Path) -> None:
        db = tmp_path / "pali.db"
        await init_store(db)
        await init_store(db)
        assert os.stat(db).st_mode & 0o777 == 0o600

    async def test_creates_parent_directories(self, tmp_path: Path) -> None:
        db = tmp_path / "nested" / "dir" / "pali.db"
        await init_store(db)
        assert db.exists()

    async def test_returns_path(self, tmp_path: Path) -> None:
        db = tmp_path / "pali.db"
        assert await init_store(db) == db

    async def test_unsupported_schema_version_refused(self, tmp_path: Path) -> None:
        db = tmp_path / "pali.db"
        async with aiosqlite.connect(str(db)) as conn:
            await conn.execute("PRAGMA user_version = 7")
            await conn.commit()
        with pytest.raises(RuntimeError, match="schema version: 7"):
            await init_store(db)


class TestResolveDbPath:
    def test_argument_wins(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PALI_DB_PATH", str(tmp_path / "env.db"))
        assert resolve_db_path(tmp_path / "arg.db") == tmp_path / "arg.db"

    def test_env_var(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PALI_DB_PATH", str(tmp_path / "env.db"))
        assert resolve_db_path() == tmp_path / "env.db"

    def test_default_under_home(self) -> None:
        assert resolve_db_path() == Path(os.path.expanduser("~/.pali/pali.db"))


class TestConnect:
    async def test_backend_error_becomes_store_unavailable(self, tmp_path: Path) -> None:
        db = tmp_path / "pali.db"
        await init_store(db)
        with pytest.raises(StoreUnavailableError):
            async with connect(db) as conn:
                await conn.execute("SELECT * FROM no_such_table")

    async def test_unopenable_path_becomes_store_unavailable(self, tmp_path: Path) -> None:
        missing_dir = tmp_path / "does-not-exist" / "pali.db"
        with pytest.raises(StoreUnavailableError):
            async with connect(missing_dir) as conn:
                await conn.execute("SELECT 1")


class TestImmediateTransaction:
    async def test_commit_on_success(self, tmp_path: Path) -> None:
        db = tmp_path / "pali.db"
        await init_store(db)
        async with connect(db) as conn:
            async with immediate_transaction(conn):
                await conn.execute(
                    "INSERT INTO todos (id, title, completed, priority, created_at, updated_at) "
                    "VALUES ('t1', 'x', 0, 2, 1, 1)"
                )
        async with connect(db) as conn:
            async with conn.execute("SELECT COUNT(*) FROM todos") as cursor:
                assert (await cursor.fetchone())[0] == 1

    async def test_rollback_on_error(self, tmp_path: Path) -> None:
        db = tmp_path / "pali.db"
        await init_store(db)
        with pytest.raises(ValueError):
            async with connect(db) as conn:
                async with immediate_transaction(conn):
                    await conn.execute(
                        "INSERT INTO todos (id, title, completed, priority, created_at, "
                        "updated_at) VALUES ('t1', 'x', 0, 2, 1, 1)"
                    )
                    raise ValueError("boom")
        async with connect(db) as conn:
            async with conn.execute("SELECT COUNT(*) FROM todos") as cursor:
                assert (await cursor.fetchone())[0] == 0

    async def test_failed_rollback_is_inconsistent(self, tmp_path: Path, monkeypatch) -> None:
        db = tmp_path / "pali.db"
        await init_store(db)

        async def broken_rollback() -> None:
            raise aiosqlite.OperationalError("disk I/O error")

        with pytest.raises(CredentialStoreInconsistentError):
            async with connect(db) as conn:
                monkeypatch.setattr(conn, "rollback", broken_rollback)
                async with immediate_transaction(conn):
                    raise ValueError("boom")
