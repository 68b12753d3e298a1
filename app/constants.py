"""Shared constants for the Pali server.

Key material, hashing and credential-label constants live here so that the
key generator, lifecycle controller and config loader agree on them.
No magic numbers in other modules — import from here.
"""

# ─── Key Material ─────────────────────────────────────────────────────────────

# Textual prefix on every issued secret. Lets clients and log scrubbers
# recognise a Pali key at a glance.
KEY_PREFIX: str = "pali_"

# Random bytes drawn per secret (256 bits of entropy).
KEY_ENTROPY_BYTES: int = 32

# ─── Hashing ──────────────────────────────────────────────────────────────────

# PBKDF2-HMAC-SHA256 iteration count. Config may raise it, never lower it.
PBKDF2_ITERATIONS: int = 100_000
MIN_PBKDF2_ITERATIONS: int = 100_000

# Derived key length in bytes (64 hex chars once encoded).
DIGEST_BYTES: int = 32

# System-wide pepper used when none is configured. Matches the value the
# first Pali deployments hashed with, so existing keys keep validating.
DEFAULT_KEY_PEPPER: str = "pali_server_salt_2024_secure_todo_api_v1"

# ─── Credential Labels ────────────────────────────────────────────────────────

INITIAL_ADMIN_LABEL: str = "Initial Admin Key"
REINITIALIZED_ADMIN_LABEL: str = "Reinitialized Admin Key"

# Admin credentials carrying these labels form the bootstrap lineage and are
# only ever soft-revoked.
BOOTSTRAP_LABELS: frozenset[str] = frozenset({INITIAL_ADMIN_LABEL, REINITIALIZED_ADMIN_LABEL})

MAX_OWNER_LABEL_LENGTH: int = 200

# ─── Todos ────────────────────────────────────────────────────────────────────

DEFAULT_TODO_PRIORITY: int = 2

# Shortest id prefix accepted by GET /todos/resolve/{prefix}.
MIN_ID_PREFIX_LENGTH: int = 4

# ─── Store ────────────────────────────────────────────────────────────────────

DEFAULT_DB_PATH: str = "~/.pali/pali.db"

# Seconds to wait on a locked database before surfacing StoreUnavailableError.
DEFAULT_STORE_TIMEOUT_S: float = 5.0

# SQLite INTEGER is a signed 64-bit value.
SQLITE_INTEGER_MIN: int = -(2**63)
SQLITE_INTEGER_MAX: int = 2**63 - 1
