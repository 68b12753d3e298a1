"""Credential store adapter — the ``api_keys`` table.

Translates between ``Credential`` and its row form through app.store.codec,
and owns every SQL statement that touches credentials. Callers see bools,
optional ints and ``Role`` values; they never see 0/1 flags or NULLs.

Concurrency:
  - bootstrap is one conditional INSERT (no admin row → insert), so two
    concurrent bootstraps cannot both succeed
  - reinitialize runs guard + deactivate + insert in one BEGIN IMMEDIATE
    transaction
  - every other operation is a single statement, or a statement followed by a
    read that only classifies the outcome
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

import aiosqlite

from app.constants import DEFAULT_STORE_TIMEOUT_S
from app.errors import CorruptRecordError, NotInitializedError
from app.models.credential import Credential, RevokeOutcome, Role
from app.store.codec import (
    bind_values,
    decode_bool,
    decode_required_timestamp,
    decode_timestamp,
    encode_timestamp,
    now_epoch,
)
from app.store.database import connect, immediate_transaction, resolve_db_path
from app.utils.logger import get_logger
from app.utils.ulid import generate_ulid

logger = get_logger(__name__)

_COLUMNS = "id, key_hash, client_name, key_type, last_used, created_at, active"

_HAS_ADMIN_SQL = "SELECT EXISTS(SELECT 1 FROM api_keys WHERE key_type = 'admin')"


def _row_to_credential(row: aiosqlite.Row) -> Credential:
    try:
        role = Role(row["key_type"])
    except ValueError as exc:
        raise CorruptRecordError(f"Unknown key_type {row['key_type']!r}") from exc
    return Credential(
        id=row["id"],
        secret_hash=row["key_hash"],
        owner_label=row["client_name"],
        role=role,
        last_used_at=decode_timestamp(row["last_used"]),
        created_at=decode_required_timestamp(row["created_at"]),
        active=decode_bool(row["active"]),
    )


def _new_credential(secret_hash: str, owner_label: str, role: Role) -> Credential:
    return Credential(
        id=generate_ulid(),
        secret_hash=secret_hash,
        owner_label=owner_label,
        role=role,
        last_used_at=None,
        created_at=now_epoch(),
        active=True,
    )


def _row_values(credential: Credential) -> dict:
    return {
        "id": credential.id,
        "key_hash": credential.secret_hash,
        "client_name": credential.owner_label,
        "key_type": credential.role.value,
        "last_used": encode_timestamp(credential.last_used_at),
        "created_at": encode_timestamp(credential.created_at),
        "active": credential.active,
    }


class CredentialStore:
    """Async adapter over the ``api_keys`` table.

    Holds only the database path and timeout; each method opens and closes
    its own connection, so one instance can be shared by every request.
    """

    def __init__(
        self,
        db_path: Optional[Union[str, Path]] = None,
        timeout_s: float = DEFAULT_STORE_TIMEOUT_S,
    ) -> None:
        self._path: Path = resolve_db_path(db_path)
        self._timeout_s = timeout_s

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self):
        return connect(self._path, self._timeout_s)

    # ── Creation ──────────────────────────────────────────────────────────────

    async def insert(self, secret_hash: str, owner_label: str, role: Role) -> Credential:
        """Insert a new active credential and return it."""
        credential = _new_credential(secret_hash, owner_label, role)
        names, marks, params = bind_values(_row_values(credential))
        async with self._connect() as db:
            await db.execute(f"INSERT INTO api_keys ({names}) VALUES ({marks})", params)
        return credential

    async def insert_admin_if_uninitialized(
        self, secret_hash: str, owner_label: str
    ) -> Optional[Credential]:
        """Insert an admin credential only if no admin row exists yet.

        One statement, so the existence check and the insert cannot interleave
        with another bootstrap.

        Returns:
            The new credential, or None if the store was already initialized.
        """
        credential = _new_credential(secret_hash, owner_label, Role.ADMIN)
        names, marks, params = bind_values(_row_values(credential))
        async with self._connect() as db:
            cursor = await db.execute(
                f"INSERT INTO api_keys ({names}) SELECT {marks} "
                "WHERE NOT EXISTS (SELECT 1 FROM api_keys WHERE key_type = 'admin')",
                params,
            )
            inserted = cursor.rowcount
        if inserted != 1:
            return None
        return credential

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def is_initialized(self) -> bool:
        """True once any admin credential exists, active or not."""
        async with self._connect() as db:
            async with db.execute(_HAS_ADMIN_SQL) as cursor:
                row = await cursor.fetchone()
        return bool(row[0]) if row else False

    async def find_active_by_hash(self, secret_hash: str) -> Optional[Credential]:
        async with self._connect() as db:
            async with db.execute(
                f"SELECT {_COLUMNS} FROM api_keys WHERE key_hash = ? AND active = 1",
                (secret_hash,),
            ) as cursor:
                row = await cursor.fetchone()
        return _row_to_credential(row) if row else None

    async def get(self, credential_id: str) -> Optional[Credential]:
        async with self._connect() as db:
            async with db.execute(
                f"SELECT {_COLUMNS} FROM api_keys WHERE id = ?", (credential_id,)
            ) as cursor:
                row = await cursor.fetchone()
        return _row_to_credential(row) if row else None

    async def list_all(self) -> list[Credential]:
        """All credentials, newest first."""
        async with self._connect() as db:
            async with db.execute(
                f"SELECT {_COLUMNS} FROM api_keys ORDER BY created_at DESC, id DESC"
            ) as cursor:
                rows = await cursor.fetchall()
        return [_row_to_credential(row) for row in rows]

    # ── Mutations ─────────────────────────────────────────────────────────────

    async def touch_last_used(self, credential_id: str, at: Optional[int] = None) -> bool:
        """Stamp last_used on an active credential.

        Returns:
            False if the row is gone or was revoked since it was read.
        """
        stamp = encode_timestamp(at if at is not None else now_epoch())
        async with self._connect() as db:
            cursor = await db.execute(
                "UPDATE api_keys SET last_used = ? WHERE id = ? AND active = 1",
                (stamp, credential_id),
            )
            return cursor.rowcount == 1

    async def deactivate(self, credential_id: str) -> RevokeOutcome:
        """Set active = 0. Never sets it back."""
        async with self._connect() as db:
            cursor = await db.execute(
                "UPDATE api_keys SET active = 0 WHERE id = ? AND active = 1",
                (credential_id,),
            )
            if cursor.rowcount == 1:
                return RevokeOutcome.REVOKED
            async with db.execute(
                "SELECT 1 FROM api_keys WHERE id = ?", (credential_id,)
            ) as lookup:
                exists = await lookup.fetchone()
        return RevokeOutcome.ALREADY_REVOKED if exists else RevokeOutcome.NOT_FOUND

    async def delete(self, credential_id: str) -> bool:
        async with self._connect() as db:
            cursor = await db.execute("DELETE FROM api_keys WHERE id = ?", (credential_id,))
            return cursor.rowcount == 1

    async def reinitialize_admins(
        self, secret_hash: str, owner_label: str
    ) -> tuple[Credential, int]:
        """Deactivate every admin credential and insert one fresh admin.

        Guard, deactivation and insert share one write transaction: either all
        three take effect or none do.

        Returns:
            (new admin credential, number of admin credentials deactivated)

        Raises:
            NotInitializedError: No admin credential has ever existed.
        """
        credential = _new_credential(secret_hash, owner_label, Role.ADMIN)
        names, marks, params = bind_values(_row_values(credential))
        async with self._connect() as db:
            async with immediate_transaction(db):
                async with db.execute(_HAS_ADMIN_SQL) as cursor:
                    row = await cursor.fetchone()
                if not row or not row[0]:
                    raise NotInitializedError()
                cursor = await db.execute(
                    "UPDATE api_keys SET active = 0 WHERE key_type = 'admin' AND active = 1"
                )
                deactivated = cursor.rowcount
                await db.execute(f"INSERT INTO api_keys ({names}) VALUES ({marks})", params)
        return credential, deactivated

    async def health_check(self) -> bool:
        """True if the database answers a trivial query. Never raises."""
        try:
            async with self._connect() as db:
                await db.execute("SELECT 1")
            return True
        except Exception as exc:
            logger.warning("store_health_check_failed", error_type=type(exc).__name__)
            return False
