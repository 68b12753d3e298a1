"""SQLite plumbing for the Pali store.

Implements:
  - resolve_db_path()        — argument → PALI_DB_PATH → ~/.pali/pali.db
  - init_store()             — create schema, WAL, version guard, chmod 0600
  - connect()                — one short-lived aiosqlite connection per operation
  - immediate_transaction()  — BEGIN IMMEDIATE … COMMIT for multi-statement writes

Non-negotiables:
  - aiosqlite ONLY — no sqlite3 synchronous calls on the event loop
  - no connection is shared between operations or requests
  - every backend fault leaves this module as StoreUnavailableError;
    cancellation propagates unchanged
  - connections run in autocommit mode, so a lone statement is atomic on its
    own; anything spanning statements must use immediate_transaction()
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional, Union

import aiosqlite

from app.constants import DEFAULT_DB_PATH, DEFAULT_STORE_TIMEOUT_S
from app.errors import CredentialStoreInconsistentError, StoreUnavailableError
from app.utils.logger import get_logger

logger = get_logger(__name__)

_SCHEMA_VERSION = 1

# ─── Schema DDL ───────────────────────────────────────────────────────────────

_CREATE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS api_keys (
    id              TEXT PRIMARY KEY,
    key_hash        TEXT NOT NULL UNIQUE,
    client_name     TEXT NOT NULL,
    key_type        TEXT NOT NULL CHECK(key_type IN ('admin', 'client')),
    last_used       INTEGER,
    created_at      INTEGER NOT NULL,
    active          INTEGER NOT NULL DEFAULT 1 CHECK(active IN (0, 1))
);

CREATE INDEX IF NOT EXISTS idx_api_keys_type_active
    ON api_keys(key_type, active);

CREATE TABLE IF NOT EXISTS todos (
    id              TEXT PRIMARY KEY,
    title           TEXT NOT NULL,
    description     TEXT,
    completed       INTEGER NOT NULL DEFAULT 0 CHECK(completed IN (0, 1)),
    priority        INTEGER NOT NULL DEFAULT 2,
    due_date        INTEGER,
    created_at      INTEGER NOT NULL,
    updated_at      INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_todos_priority_created
    ON todos(priority DESC, created_at DESC);
"""


# ─── Path Resolution ──────────────────────────────────────────────────────────


def resolve_db_path(db_path: Optional[Union[str, Path]] = None) -> Path:
    """Resolve the database path from the argument or the PALI_DB_PATH env var."""
    if db_path is not None:
        return Path(os.path.expanduser(str(db_path)))
    env_path = os.environ.get("PALI_DB_PATH")
    if env_path:
        return Path(os.path.expanduser(env_path))
    return Path(os.path.expanduser(DEFAULT_DB_PATH))


# ─── Connections ──────────────────────────────────────────────────────────────


@asynccontextmanager
async def connect(
    path: Path,
    timeout_s: float = DEFAULT_STORE_TIMEOUT_S,
) -> AsyncIterator[aiosqlite.Connection]:
    """Open a connection for a single store operation.

    Backend errors raised while connecting or inside the ``async with`` body
    are re-raised as StoreUnavailableError. Pali errors raised by the body
    (NotFoundError etc.) pass through untouched.

    Args:
        path:      Database file.
        timeout_s: How long SQLite waits on a locked database before failing.
    """
    try:
        db = await aiosqlite.connect(str(path), timeout=timeout_s, isolation_level=None)
    except (aiosqlite.Error, OSError) as exc:
        logger.error("store_connect_failed", path=str(path), error_type=type(exc).__name__)
        raise StoreUnavailableError() from exc

    try:
        db.row_factory = aiosqlite.Row
        yield db
    except (aiosqlite.Error, OSError, asyncio.TimeoutError) as exc:
        logger.error(
            "store_operation_failed",
            path=str(path),
            error=str(exc),
            error_type=type(exc).__name__,
        )
        raise StoreUnavailableError() from exc
    finally:
        await db.close()


@asynccontextmanager
async def immediate_transaction(db: aiosqlite.Connection) -> AsyncIterator[None]:
    """Run the body as one write transaction.

    ``BEGIN IMMEDIATE`` takes the write lock up front, so reads inside the body
    see a state no other writer can change before COMMIT. On any exception
    the transaction is rolled back; if the rollback itself fails the store may
    hold a partial write and CredentialStoreInconsistentError is raised.
    """
    await db.execute("BEGIN IMMEDIATE")
    try:
        yield
    except BaseException as exc:
        try:
            await db.rollback()
        except Exception as rollback_exc:
            logger.critical(
                "store_rollback_failed",
                error=str(rollback_exc),
                original_error_type=type(exc).__name__,
            )
            raise CredentialStoreInconsistentError() from rollback_exc
        raise
    else:
        await db.commit()


# ─── Initialization ───────────────────────────────────────────────────────────


async def init_store(
    db_path: Optional[Union[str, Path]] = None,
    timeout_s: float = DEFAULT_STORE_TIMEOUT_S,
) -> Path:
    """Create the schema (idempotent) and lock down file permissions.

    PRAGMA user_version:
      - 0: fresh database → create schema, set to 1
      - 1: compatible → no-op
      - other: RuntimeError — the lifespan lets this abort startup

    Returns:
        Resolved Path to the database file.

    Raises:
        RuntimeError: Unsupported schema version.
        StoreUnavailableError: The file could not be opened or written.
    """
    path = resolve_db_path(db_path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise StoreUnavailableError() from exc

    async with connect(path, timeout_s) as db:
        await db.execute("PRAGMA journal_mode=WAL")
        async with db.execute("PRAGMA user_version") as cursor:
            row = await cursor.fetchone()
        current_version: int = row[0] if row else 0

        if current_version == 0:
            await db.executescript(_CREATE_SCHEMA_SQL)
            await db.execute(f"PRAGMA user_version = {_SCHEMA_VERSION}")
            logger.info("store_schema_created", path=str(path), schema_version=_SCHEMA_VERSION)
        elif current_version != _SCHEMA_VERSION:
            raise RuntimeError(
                f"Unsupported Pali database schema version: {current_version}. "
                f"Expected {_SCHEMA_VERSION}; restore a matching backup or point "
                "PALI_DB_PATH at a fresh file."
            )

    # Applied on every init so the file stays 0600 regardless of umask.
    os.chmod(path, 0o600)
    return path
