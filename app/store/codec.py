"""Row encoding for the Pali store.

SQLite has no boolean type and the Pali schema stores every timestamp as
integer epoch seconds. This module is the only place that knows either fact;
the rest of the code base works with ``bool`` and ``Optional[int]``.

Rules:
  - booleans are written as 0/1 and read back as "non-zero is true"
  - an absent optional timestamp is a real SQL NULL, never ``0`` or ``""``
    ("never used" and "used at the epoch" must stay distinguishable)
  - absent optional values are written as the SQL literal ``NULL`` in the
    statement text instead of binding ``None`` (see ``bind_values``)
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from typing import Any, Optional

from app.errors import CorruptRecordError


def now_epoch() -> int:
    """Wall-clock seconds since the epoch — the one temporal representation we store."""
    return int(time.time())


# ─── Booleans ─────────────────────────────────────────────────────────────────


def encode_bool(value: bool) -> int:
    if not isinstance(value, bool):
        raise TypeError(f"expected bool, got {type(value).__name__}")
    return 1 if value else 0


def decode_bool(value: Any) -> bool:
    """Decode a stored flag. Non-zero integers are true; NULL is corrupt."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value) != 0
    raise CorruptRecordError(f"Cannot decode boolean column value of type {type(value).__name__}")


# ─── Optional timestamps ──────────────────────────────────────────────────────


def encode_timestamp(value: Optional[int]) -> Optional[int]:
    """Validate a timestamp for writing. ``None`` stays ``None`` (→ SQL NULL)."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"timestamp must be int epoch seconds or None, got {type(value).__name__}")
    return value


def decode_timestamp(value: Any) -> Optional[int]:
    """Decode a stored timestamp. NULL → ``None``; ``0`` stays ``0``."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise CorruptRecordError("Boolean stored in timestamp column")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    raise CorruptRecordError(f"Cannot decode timestamp column value {value!r}")


def decode_required_timestamp(value: Any) -> int:
    decoded = decode_timestamp(value)
    if decoded is None:
        raise CorruptRecordError("Required timestamp column is NULL")
    return decoded


# ─── Statement fragments ──────────────────────────────────────────────────────


def _to_sql_value(value: Any) -> Any:
    if isinstance(value, bool):
        return encode_bool(value)
    return value


def bind_values(columns: Mapping[str, Any]) -> tuple[str, str, list[Any]]:
    """Build the column list, VALUES placeholders and params for an INSERT.

    ``None`` values are emitted as the literal ``NULL`` and are not bound.
    ``bool`` values are encoded as 0/1.

    Example::

        names, marks, params = bind_values({"id": "x", "last_used": None, "active": True})
        # names  == "id, last_used, active"
        # marks  == "?, NULL, ?"
        # params == ["x", 1]
    """
    names: list[str] = []
    marks: list[str] = []
    params: list[Any] = []
    for name, value in columns.items():
        names.append(name)
        if value is None:
            marks.append("NULL")
        else:
            marks.append("?")
            params.append(_to_sql_value(value))
    return ", ".join(names), ", ".join(marks), params


def bind_assignments(columns: Mapping[str, Any]) -> tuple[str, list[Any]]:
    """Build a ``SET`` clause body and params for an UPDATE, same rules as ``bind_values``."""
    parts: list[str] = []
    params: list[Any] = []
    for name, value in columns.items():
        if value is None:
            parts.append(f"{name} = NULL")
        else:
            parts.append(f"{name} = ?")
            params.append(_to_sql_value(value))
    return ", ".join(parts), params
