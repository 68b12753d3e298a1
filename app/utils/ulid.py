"""ULID generation utility for the Pali server.

Provides ``generate_ulid()``, a 26-character ULID used as:
  - the primary key of every credential and todo row
  - the ``X-Request-ID`` value when the client does not send one

ULIDs sort by creation time, which keeps "newest first" listings cheap and
makes todo id prefixes (GET /todos/resolve/{prefix}) meaningful.

Uses the ``python-ulid`` library — do NOT hand-roll ULID generation.
"""

from __future__ import annotations

from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID as a 26-character uppercase string.

    Returns:
        str: Crockford Base32 — charset ``[0-9A-HJKMNP-TV-Z]``, exactly 26 chars.

    Example::

        key_id = generate_ulid()
        # "01KJ0JRVHYA7KX32VPN5ZSCTMV"
    """
    return str(ULID())
