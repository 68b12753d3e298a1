"""Credential lifecycle — bootstrap, issue, revoke, reinitialize, list, purge.

Every operation that acts on behalf of a caller takes the caller's
``Identity`` and checks the admin role itself, so the HTTP layer cannot
forget the check. ``bootstrap`` and ``reinitialize`` take no identity: they
are the unauthenticated recovery paths and are guarded by store state instead
(no admin yet / at least one admin ever).

Plaintext secrets leave this module only inside an ``IssuedKey``.
"""

from __future__ import annotations

from typing import Optional

from app.auth.keys import KeyHasher, generate_key_material_async
from app.constants import (
    BOOTSTRAP_LABELS,
    INITIAL_ADMIN_LABEL,
    MAX_OWNER_LABEL_LENGTH,
    REINITIALIZED_ADMIN_LABEL,
)
from app.errors import (
    AlreadyInitializedError,
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
)
from app.models.credential import (
    Credential,
    CredentialInfo,
    Identity,
    IssuedKey,
    RevokeOutcome,
    Role,
)
from app.store.credentials import CredentialStore
from app.utils.logger import get_logger

logger = get_logger(__name__)


def ensure_admin(identity: Identity) -> None:
    if not identity.is_admin:
        logger.warning(
            "admin_required",
            credential_id=identity.credential_id,
            role=identity.role.value,
        )
        raise ForbiddenError()


def _issued(credential: Credential, plaintext: str) -> IssuedKey:
    return IssuedKey(
        id=credential.id,
        owner_label=credential.owner_label,
        role=credential.role,
        api_key=plaintext,
        created_at=credential.created_at,
    )


# Only bootstrap and reinitialize may mint these; purge protection relies on it.
_RESERVED_LABELS = frozenset(label.casefold() for label in BOOTSTRAP_LABELS)


def _normalize_label(owner_label: Optional[str]) -> str:
    label = (owner_label or "").strip()
    if not label:
        raise InvalidInputError("client_name is required")
    if len(label) > MAX_OWNER_LABEL_LENGTH:
        raise InvalidInputError(
            f"client_name must be at most {MAX_OWNER_LABEL_LENGTH} characters"
        )
    if label.casefold() in _RESERVED_LABELS:
        raise InvalidInputError(f"client_name '{label}' is reserved")
    return label


# ─── Unauthenticated recovery paths ───────────────────────────────────────────


async def bootstrap(
    store: CredentialStore,
    hasher: KeyHasher,
    secret: Optional[str] = None,
) -> IssuedKey:
    """Create the first admin credential.

    Succeeds at most once over the life of the store, even under concurrent
    calls. ``secret`` lets the operator supply the plaintext (seeded from the
    environment at startup); otherwise one is generated.

    Raises:
        AlreadyInitializedError: An admin credential already exists.
    """
    if secret:
        plaintext, digest = secret, await hasher.hash_async(secret)
    else:
        plaintext, digest = await generate_key_material_async(hasher)
    credential = await store.insert_admin_if_uninitialized(digest, INITIAL_ADMIN_LABEL)
    if credential is None:
        logger.warning("bootstrap_rejected", reason="already_initialized")
        raise AlreadyInitializedError()
    logger.info("store_initialized", credential_id=credential.id)
    return _issued(credential, plaintext)


async def reinitialize(store: CredentialStore, hasher: KeyHasher) -> IssuedKey:
    """Deactivate every admin credential and issue a single fresh one.

    Client credentials are untouched. Atomic: on failure no admin has been
    deactivated and no new admin exists.

    Raises:
        NotInitializedError: The store was never bootstrapped.
    """
    plaintext, digest = await generate_key_material_async(hasher)
    credential, deactivated = await store.reinitialize_admins(
        digest, REINITIALIZED_ADMIN_LABEL
    )
    logger.warning(
        "admin_keys_reinitialized",
        credential_id=credential.id,
        deactivated=deactivated,
    )
    return _issued(credential, plaintext)


# ─── Admin-only operations ────────────────────────────────────────────────────


async def issue(
    caller: Identity,
    store: CredentialStore,
    hasher: KeyHasher,
    owner_label: Optional[str],
    role: Role = Role.CLIENT,
) -> IssuedKey:
    """Issue a new credential. Returns the plaintext exactly once."""
    ensure_admin(caller)
    label = _normalize_label(owner_label)
    plaintext, digest = await generate_key_material_async(hasher)
    credential = await store.insert(digest, label, Role(role))
    logger.info(
        "api_key_issued",
        credential_id=credential.id,
        role=credential.role.value,
        issued_by=caller.credential_id,
    )
    return _issued(credential, plaintext)


async def revoke(caller: Identity, store: CredentialStore, credential_id: str) -> RevokeOutcome:
    """Deactivate a credential. Idempotent; an unknown id is not an error.

    An admin may revoke its own credential; its next request is then rejected.
    """
    ensure_admin(caller)
    outcome = await store.deactivate(credential_id)
    logger.info(
        "api_key_revoked",
        credential_id=credential_id,
        outcome=outcome.value,
        revoked_by=caller.credential_id,
    )
    return outcome


async def list_credentials(caller: Identity, store: CredentialStore) -> list[CredentialInfo]:
    ensure_admin(caller)
    return [credential.info() for credential in await store.list_all()]


async def purge(caller: Identity, store: CredentialStore, credential_id: str) -> None:
    """Permanently delete a credential row.

    Bootstrap-issued admin credentials are kept: they are what marks the
    store as initialized, and deleting the last one would reopen /initialize.

    Raises:
        NotFoundError: No credential has this id.
        ConflictError: The credential is a bootstrap-issued admin.
    """
    ensure_admin(caller)
    credential = await store.get(credential_id)
    if credential is None:
        raise NotFoundError("API key not found")
    if credential.role is Role.ADMIN and credential.owner_label in BOOTSTRAP_LABELS:
        raise ConflictError("Bootstrap admin keys cannot be purged; revoke them instead")
    deleted = await store.delete(credential_id)
    if not deleted:
        raise NotFoundError("API key not found")
    logger.info("api_key_purged", credential_id=credential_id, purged_by=caller.credential_id)
