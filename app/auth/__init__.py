"""Pali API key package.

Public API:
  - generate_api_key()      — pali_<64 hex> secret
  - KeyHasher               — PBKDF2-HMAC-SHA256 with the system-wide pepper
  - validate_api_key()      — presented secret → Identity, stamps last_used
  - bootstrap()             — first admin key, at most once per store
  - reinitialize()          — revoke all admin keys, issue one fresh admin key
  - issue() / revoke()      — admin-only key management
  - list_credentials()      — admin-only, no hash material
  - purge()                 — admin-only hard delete of non-bootstrap keys
  - authenticate_request()  — FastAPI Depends() dependency
  - require_admin()         — FastAPI Depends() dependency, admin role only
"""

from __future__ import annotations

from app.auth.keys import KeyHasher, generate_api_key, generate_key_material
from app.auth.lifecycle import (
    bootstrap,
    ensure_admin,
    issue,
    list_credentials,
    purge,
    reinitialize,
    revoke,
)
from app.auth.middleware import authenticate_request, require_admin
from app.auth.validation import validate_api_key

__all__ = [
    "KeyHasher",
    "generate_api_key",
    "generate_key_material",
    "validate_api_key",
    "bootstrap",
    "reinitialize",
    "issue",
    "revoke",
    "list_credentials",
    "purge",
    "ensure_admin",
    "authenticate_request",
    "require_admin",
]
