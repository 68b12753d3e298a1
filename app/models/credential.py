"""Credential domain types.

``Credential`` mirrors one ``api_keys`` row in logical form (bool flag,
optional int timestamp). ``CredentialInfo`` is the only shape that leaves the
service in list views — it has no digest field at all, so a hash cannot leak
through serialization by accident.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Role(str, Enum):
    """Authorization tier of a credential. Closed set."""

    ADMIN = "admin"
    CLIENT = "client"


class RevokeOutcome(str, Enum):
    """What revoke() actually did. HTTP callers see success for all three."""

    REVOKED = "revoked"
    ALREADY_REVOKED = "already_revoked"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class Credential:
    id: str
    secret_hash: str
    owner_label: str
    role: Role
    last_used_at: Optional[int]
    created_at: int
    active: bool

    def info(self) -> "CredentialInfo":
        return CredentialInfo(
            id=self.id,
            owner_label=self.owner_label,
            role=self.role,
            last_used_at=self.last_used_at,
            created_at=self.created_at,
            active=self.active,
        )


@dataclass(frozen=True)
class CredentialInfo:
    """Credential without hash material, for GET /admin/keys."""

    id: str
    owner_label: str
    role: Role
    last_used_at: Optional[int]
    created_at: int
    active: bool


@dataclass(frozen=True)
class Identity:
    """Who presented a valid secret. Lives for one request only."""

    credential_id: str
    role: Role
    owner_label: str

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


@dataclass(frozen=True)
class IssuedKey:
    """A freshly issued credential plus its plaintext secret.

    The plaintext exists only in this object; the store keeps the digest.
    """

    id: str
    owner_label: str
    role: Role
    api_key: str
    created_at: int
