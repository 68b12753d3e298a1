"""Todo store — the ``todos`` table.

Plain single-row operations. Partial updates are read → merge → write; if the
row vanishes between the read and the write the update reports "not found"
instead of failing. Toggle is a single UPDATE, so concurrent toggles never
collapse into one.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

import aiosqlite

from app.constants import DEFAULT_STORE_TIMEOUT_S, DEFAULT_TODO_PRIORITY
from app.errors import ConflictError
from app.models.todo import Todo, TodoChanges
from app.store.codec import (
    bind_assignments,
    bind_values,
    decode_bool,
    decode_required_timestamp,
    decode_timestamp,
    encode_bool,
    encode_timestamp,
    now_epoch,
)
from app.store.database import connect, resolve_db_path
from app.utils.ulid import generate_ulid

_COLUMNS = "id, title, description, completed, priority, due_date, created_at, updated_at"
_ORDER = "ORDER BY priority DESC, created_at DESC, id DESC"


def _row_to_todo(row: aiosqlite.Row) -> Todo:
    return Todo(
        id=row["id"],
        title=row["title"],
        description=row["description"],
        completed=decode_bool(row["completed"]),
        priority=row["priority"],
        due_date=decode_timestamp(row["due_date"]),
        created_at=decode_required_timestamp(row["created_at"]),
        updated_at=decode_required_timestamp(row["updated_at"]),
    )


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class TodoStore:
    """Async adapter over the ``todos`` table. Same connection model as CredentialStore."""

    def __init__(
        self,
        db_path: Optional[Union[str, Path]] = None,
        timeout_s: float = DEFAULT_STORE_TIMEOUT_S,
    ) -> None:
        self._path: Path = resolve_db_path(db_path)
        self._timeout_s = timeout_s

    def _connect(self):
        return connect(self._path, self._timeout_s)

    async def create(
        self,
        title: str,
        description: Optional[str] = None,
        priority: Optional[int] = None,
        due_date: Optional[int] = None,
    ) -> Todo:
        now = now_epoch()
        todo = Todo(
            id=generate_ulid(),
            title=title,
            description=description,
            completed=False,
            priority=priority if priority is not None else DEFAULT_TODO_PRIORITY,
            due_date=due_date,
            created_at=now,
            updated_at=now,
        )
        names, marks, params = bind_values(
            {
                "id": todo.id,
                "title": todo.title,
                "description": todo.description,
                "completed": todo.completed,
                "priority": todo.priority,
                "due_date": encode_timestamp(todo.due_date),
                "created_at": todo.created_at,
                "updated_at": todo.updated_at,
            }
        )
        async with self._connect() as db:
            await db.execute(f"INSERT INTO todos ({names}) VALUES ({marks})", params)
        return todo

    async def list_all(self, completed: Optional[bool] = None) -> list[Todo]:
        sql = f"SELECT {_COLUMNS} FROM todos"
        params: list = []
        if completed is not None:
            sql += " WHERE completed = ?"
            params.append(encode_bool(completed))
        sql += f" {_ORDER}"
        async with self._connect() as db:
            async with db.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
        return [_row_to_todo(row) for row in rows]

    async def get(self, todo_id: str) -> Optional[Todo]:
        async with self._connect() as db:
            async with db.execute(
                f"SELECT {_COLUMNS} FROM todos WHERE id = ?", (todo_id,)
            ) as cursor:
                row = await cursor.fetchone()
        return _row_to_todo(row) if row else None

    async def update(self, todo_id: str, changes: TodoChanges) -> Optional[Todo]:
        """Merge ``changes`` onto the stored todo.

        Returns:
            The updated todo, or None if it does not exist (or was deleted
            between the read and the write).
        """
        existing = await self.get(todo_id)
        if existing is None:
            return None
        merged = changes.apply(existing, updated_at=now_epoch())
        assignments, params = bind_assignments(
            {
                "title": merged.title,
                "description": merged.description,
                "completed": merged.completed,
                "priority": merged.priority,
                "due_date": encode_timestamp(merged.due_date),
                "updated_at": merged.updated_at,
            }
        )
        async with self._connect() as db:
            cursor = await db.execute(
                f"UPDATE todos SET {assignments} WHERE id = ?", [*params, todo_id]
            )
            if cursor.rowcount != 1:
                return None
        return merged

    async def toggle(self, todo_id: str) -> Optional[Todo]:
        """Flip ``completed`` in one statement, so concurrent toggles each count."""
        async with self._connect() as db:
            cursor = await db.execute(
                "UPDATE todos SET completed = CASE completed WHEN 0 THEN 1 ELSE 0 END, "
                "updated_at = ? WHERE id = ?",
                (now_epoch(), todo_id),
            )
            if cursor.rowcount != 1:
                return None
            async with db.execute(
                f"SELECT {_COLUMNS} FROM todos WHERE id = ?", (todo_id,)
            ) as cursor:
                row = await cursor.fetchone()
        return _row_to_todo(row) if row else None

    async def delete(self, todo_id: str) -> bool:
        async with self._connect() as db:
            cursor = await db.execute("DELETE FROM todos WHERE id = ?", (todo_id,))
            return cursor.rowcount == 1

    async def search(self, query: str) -> list[Todo]:
        """Substring match on title or description."""
        pattern = f"%{_escape_like(query)}%"
        async with self._connect() as db:
            async with db.execute(
                f"SELECT {_COLUMNS} FROM todos "
                "WHERE title LIKE ? ESCAPE '\\' OR description LIKE ? ESCAPE '\\' "
                f"{_ORDER}",
                (pattern, pattern),
            ) as cursor:
                rows = await cursor.fetchall()
        return [_row_to_todo(row) for row in rows]

    async def resolve_id(self, prefix: str) -> Optional[str]:
        """Expand an id prefix to the full id.

        Returns:
            The full id, or None if nothing matches.

        Raises:
            ConflictError: More than one todo shares the prefix.
        """
        pattern = f"{_escape_like(prefix.upper())}%"
        async with self._connect() as db:
            async with db.execute(
                "SELECT id FROM todos WHERE id LIKE ? ESCAPE '\\' LIMIT 2", (pattern,)
            ) as cursor:
                rows = await cursor.fetchall()
        if not rows:
            return None
        if len(rows) > 1:
            raise ConflictError(f"Ambiguous id prefix '{prefix}'")
        return rows[0]["id"]
