"""API key validation — presented secret → Identity.

The only path by which a request becomes authenticated. Steps:
  1. Reject an absent/empty secret (MissingApiKeyError)
  2. Hash the secret with the process-wide KeyHasher (off the event loop)
  3. Look up an ACTIVE credential by digest — one indexed query
  4. Constant-time confirm the digest, then stamp last_used

No cache: a revoked credential stops validating on the very next request.

A lookup failure is an error (StoreUnavailableError), never "invalid key".
A failure to stamp last_used is logged and ignored; the credential was valid
when it was read. A stamp that matches zero rows means the credential was
revoked in between, which is treated as invalid.
"""

from __future__ import annotations

from typing import Optional

from app.auth.keys import KeyHasher, digests_equal
from app.errors import InvalidApiKeyError, MissingApiKeyError, StoreUnavailableError
from app.models.credential import Identity
from app.store.credentials import CredentialStore
from app.utils.logger import get_logger

logger = get_logger(__name__)


async def validate_api_key(
    presented: Optional[str],
    store: CredentialStore,
    hasher: KeyHasher,
) -> Identity:
    """Resolve a presented secret to the Identity of its active credential.

    Raises:
        MissingApiKeyError: ``presented`` is None or empty.
        InvalidApiKeyError: No active credential has this secret.
        StoreUnavailableError: The lookup itself failed.
    """
    if not presented:
        raise MissingApiKeyError()

    digest = await hasher.hash_async(presented)
    credential = await store.find_active_by_hash(digest)
    if credential is None or not digests_equal(digest, credential.secret_hash):
        raise InvalidApiKeyError()

    try:
        still_active = await store.touch_last_used(credential.id)
    except StoreUnavailableError as exc:
        logger.warning(
            "last_used_update_failed",
            credential_id=credential.id,
            error_type=type(exc).__name__,
        )
    else:
        if not still_active:
            raise InvalidApiKeyError()

    return Identity(
        credential_id=credential.id,
        role=credential.role,
        owner_label=credential.owner_label,
    )
