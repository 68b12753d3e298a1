"""Credential endpoints — bootstrap, recovery and admin key management.

Provides:
  POST   /initialize             — first admin key (unauthenticated, once per store)
  POST   /reinitialize           — revoke every admin key, issue one fresh admin key
  POST   /admin/keys/generate    — issue a key (admin)
  GET    /admin/keys             — list keys without hash material (admin)
  DELETE /admin/keys/{key_id}    — revoke (admin); ?purge=true deletes the row
  POST   /admin/keys/rotate      — retired; 410 pointing at /reinitialize

Plaintext keys are returned ONLY by the three issuing endpoints, once.
Errors are raised as PaliError subclasses and rendered by app.main.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from app.auth import lifecycle
from app.auth.keys import KeyHasher
from app.auth.middleware import get_credential_store, get_hasher, require_admin
from app.models.credential import Identity
from app.models.schemas import (
    ApiKeyInfo,
    ApiKeyResponse,
    CreateApiKeyRequest,
    envelope,
    error_envelope,
)
from app.store.credentials import CredentialStore

router = APIRouter(tags=["api-keys"])


# ─── Bootstrap / recovery ─────────────────────────────────────────────────────


@router.post("/initialize")
async def initialize(
    store: CredentialStore = Depends(get_credential_store),
    hasher: KeyHasher = Depends(get_hasher),
) -> dict:
    """Create the first admin key. 409 once any admin key has ever existed."""
    issued = await lifecycle.bootstrap(store, hasher)
    return envelope(ApiKeyResponse.from_issued(issued))


@router.post("/reinitialize")
async def reinitialize(
    store: CredentialStore = Depends(get_credential_store),
    hasher: KeyHasher = Depends(get_hasher),
) -> dict:
    """Emergency recovery: deactivate ALL admin keys and issue one new admin key.

    Unauthenticated, because it exists for operators who have lost every
    admin key. Client keys keep working. 400 if the server was never
    initialized.
    """
    issued = await lifecycle.reinitialize(store, hasher)
    return envelope(ApiKeyResponse.from_issued(issued))


# ─── Admin key management ─────────────────────────────────────────────────────


@router.post("/admin/keys/rotate")
async def rotate_admin_key() -> JSONResponse:
    return JSONResponse(
        status_code=410,
        content=error_envelope("Use POST /reinitialize for admin key rotation"),
    )


@router.post("/admin/keys/generate")
async def generate_key(
    body: CreateApiKeyRequest,
    caller: Identity = Depends(require_admin),
    store: CredentialStore = Depends(get_credential_store),
    hasher: KeyHasher = Depends(get_hasher),
) -> dict:
    """Issue a key. The plaintext ``api_key`` is in this response and nowhere else."""
    issued = await lifecycle.issue(caller, store, hasher, body.client_name, body.key_type)
    return envelope(ApiKeyResponse.from_issued(issued))


@router.get("/admin/keys")
async def list_keys(
    caller: Identity = Depends(require_admin),
    store: CredentialStore = Depends(get_credential_store),
) -> dict:
    infos = await lifecycle.list_credentials(caller, store)
    return envelope([ApiKeyInfo.from_info(info) for info in infos])


@router.delete("/admin/keys/{key_id}")
async def delete_key(
    key_id: str,
    purge: bool = Query(default=False),
    caller: Identity = Depends(require_admin),
    store: CredentialStore = Depends(get_credential_store),
) -> dict:
    """Revoke a key (idempotent, 200 even for unknown ids).

    With ``?purge=true`` the row is deleted instead: 404 if it does not
    exist, 409 for bootstrap admin keys.
    """
    if purge:
        await lifecycle.purge(caller, store, key_id)
        return envelope()

    await lifecycle.revoke(caller, store, key_id)
    return envelope()
