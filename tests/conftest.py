"""Root test configuration for the Pali server.

Every test gets its own SQLite file under ``tmp_path`` and a low-iteration
KeyHasher: PBKDF2 at production strength would dominate the suite's runtime,
and the iteration count has no effect on the behaviour under test.

HTTP tests build the app with create_app() and attach state directly;
httpx's ASGITransport does not run the lifespan.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from app.auth.keys import KeyHasher
from app.store.credentials import CredentialStore
from app.store.database import init_store
from app.store.todos import TodoStore

TEST_ITERATIONS = 1_000

_PALI_ENV_VARS = (
    "PALI_CONFIG",
    "PALI_PORT",
    "PALI_DB_PATH",
    "PALI_KEY_PEPPER",
    "PALI_INITIAL_ADMIN_KEY",
)


@pytest.fixture(autouse=True)
def clean_pali_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's own PALI_* settings out of the suite."""
    for name in _PALI_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "pali.db"


@pytest.fixture
def hasher() -> KeyHasher:
    return KeyHasher(pepper=b"test-pepper", iterations=TEST_ITERATIONS)


@pytest.fixture
async def credential_store(db_path: Path) -> CredentialStore:
    await init_store(db_path)
    return CredentialStore(db_path)


@pytest.fixture
async def todo_store(db_path: Path) -> TodoStore:
    await init_store(db_path)
    return TodoStore(db_path)


@pytest.fixture
async def app(credential_store: CredentialStore, todo_store: TodoStore, hasher: KeyHasher):
    """Full application wired to the per-test database."""
    from app.main import create_app

    application = create_app()
    application.state.credential_store = credential_store
    application.state.todo_store = todo_store
    application.state.hasher = hasher
    application.state.ready = True
    return application


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def admin_key(client: AsyncClient) -> str:
    """Plaintext of the bootstrap admin key, obtained through POST /initialize."""
    response = await client.post("/initialize")
    assert response.status_code == 200, response.text
    return response.json()["data"]["api_key"]


@pytest.fixture
async def client_key(client: AsyncClient, admin_key: str) -> str:
    response = await client.post(
        "/admin/keys/generate",
        json={"client_name": "laptop", "key_type": "client"},
        headers={"X-API-Key": admin_key},
    )
    assert response.status_code == 200, response.text
    return response.json()["data"]["api_key"]
