"""Pali key material — secret generation and one-way hashing.

Implements:
  - generate_api_key()       — pali_<64 hex>, 256 bits from the secrets module
  - KeyHasher.hash()         — PBKDF2-HMAC-SHA256, system-wide pepper as salt
  - KeyHasher.matches()      — constant-time digest comparison
  - generate_key_material()  — (plaintext, digest) pair for a new credential

Non-negotiables:
  - Plaintext is NEVER stored or logged — only the hex digest
  - iteration count >= 100,000 (enforced by config, see app/config.py)
  - digests are compared with hmac.compare_digest, never ==

The digest is deterministic for a given (secret, pepper, iterations), which is
what lets validation find a credential with a single indexed lookup. The
trade-off is that leaking the pepper weakens every stored digest equally.
"""

from __future__ import annotations

import asyncio
import hmac
import secrets
from dataclasses import dataclass

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from app.constants import (
    DEFAULT_KEY_PEPPER,
    DIGEST_BYTES,
    KEY_ENTROPY_BYTES,
    KEY_PREFIX,
    PBKDF2_ITERATIONS,
)


def generate_api_key(prefix: str = KEY_PREFIX) -> str:
    """Return a new plaintext secret: ``prefix`` + 64 lowercase hex chars."""
    return f"{prefix}{secrets.token_hex(KEY_ENTROPY_BYTES)}"


@dataclass(frozen=True)
class KeyHasher:
    """Derives storage digests from plaintext secrets.

    Hashing is deliberately slow (PBKDF2 key stretching). Async code should
    call ``hash_async`` so the work runs off the event loop. ``prefix`` is
    the prefix given to secrets generated alongside this hasher.
    """

    pepper: bytes = DEFAULT_KEY_PEPPER.encode()
    iterations: int = PBKDF2_ITERATIONS
    prefix: str = KEY_PREFIX

    def __post_init__(self) -> None:
        if not self.pepper:
            raise ValueError("pepper must not be empty")
        if self.iterations < 1:
            raise ValueError("iterations must be positive")

    def hash(self, secret: str) -> str:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=DIGEST_BYTES,
            salt=self.pepper,
            iterations=self.iterations,
        )
        return kdf.derive(secret.encode("utf-8")).hex()

    async def hash_async(self, secret: str) -> str:
        return await asyncio.to_thread(self.hash, secret)

    def matches(self, secret: str, digest: str) -> bool:
        return digests_equal(self.hash(secret), digest)


def digests_equal(a: str, b: str) -> bool:
    """Constant-time comparison of two hex digests."""
    return hmac.compare_digest(a.encode("ascii"), b.encode("ascii"))


def generate_key_material(hasher: KeyHasher) -> tuple[str, str]:
    """Generate a new secret and its digest.

    Returns:
        (plaintext, digest) — store the digest; show the plaintext ONCE.
    """
    plaintext = generate_api_key(hasher.prefix)
    return plaintext, hasher.hash(plaintext)


async def generate_key_material_async(hasher: KeyHasher) -> tuple[str, str]:
    return await asyncio.to_thread(generate_key_material, hasher)
