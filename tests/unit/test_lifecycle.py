"""Unit tests for app/auth/lifecycle.py — bootstrap, issue, revoke, reinitialize, list, purge.

Scenarios covered:
  - bootstrap succeeds once; a second call conflicts and changes nothing
  - concurrent bootstraps yield exactly one admin
  - reinitialize on an empty store fails and creates nothing
  - reinitialize revokes every admin key, keeps client keys, returns a working admin key
  - client callers are refused every admin operation
  - revoke is idempotent and takes effect on the very next validation
  - listings never carry hash material
"""

from __future__ import annotations

import asyncio
import dataclasses
import re

import pytest

from app.auth import lifecycle
from app.auth.keys import KeyHasher
from app.auth.validation import validate_api_key
from app.errors import (
    AlreadyInitializedError,
    ConflictError,
    ForbiddenError,
    InvalidApiKeyError,
    InvalidInputError,
    NotFoundError,
    NotInitializedError,
)
from app.models.credential import Identity, RevokeOutcome, Role
from app.store.credentials import CredentialStore

pytestmark = pytest.mark.asyncio

_KEY_FORMAT_RE = re.compile(r"^pali_[0-9a-f]{64}$")


async def _admin(store: CredentialStore, hasher: KeyHasher) -> tuple[str, Identity]:
    issued = await lifecycle.bootstrap(store, hasher)
    return issued.api_key, await validate_api_key(issued.api_key, store, hasher)


class TestBootstrap:
    async def test_first_call_issues_admin(
        self, credential_store: CredentialStore, hasher: KeyHasher
    ) -> None:
        issued = await lifecycle.bootstrap(credential_store, hasher)
        assert _KEY_FORMAT_RE.match(issued.api_key)
        assert issued.role is Role.ADMIN
        assert issued.owner_label == "Initial Admin Key"
        identity = await validate_api_key(issued.api_key, credential_store, hasher)
        assert identity.is_admin

    async def test_second_call_conflicts_and_changes_nothing(
        self, credential_store: CredentialStore, hasher: KeyHasher
    ) -> None:
        await lifecycle.bootstrap(credential_store, hasher)
        before = await credential_store.list_all()
        with pytest.raises(AlreadyInitializedError):
            await lifecycle.bootstrap(credential_store, hasher)
        assert await credential_store.list_all() == before

    async def test_conflicts_even_after_admin_revoked(
        self, credential_store: CredentialStore, hasher: KeyHasher
    ) -> None:
        issued = await lifecycle.bootstrap(credential_store, hasher)
        await credential_store.deactivate(issued.id)
        with pytest.raises(AlreadyInitializedError):
            await lifecycle.bootstrap(credential_store, hasher)

    async def test_concurrent_bootstraps_yield_one_admin(
        self, credential_store: CredentialStore, hasher: KeyHasher
    ) -> None:
        results = await asyncio.gather(
            *(lifecycle.bootstrap(credential_store, hasher) for _ in range(6)),
            return_exceptions=True,
        )
        successes = [r for r in results if not isinstance(r, BaseException)]
        failures = [r for r in results if isinstance(r, BaseException)]
        assert len(successes) == 1
        assert all(isinstance(f, AlreadyInitializedError) for f in failures)
        admins = [c for c in await credential_store.list_all() if c.role is Role.ADMIN]
        assert len(admins) == 1

    async def test_operator_supplied_secret(
        self, credential_store: CredentialStore, hasher: KeyHasher
    ) -> None:
        issued = await lifecycle.bootstrap(credential_store, hasher, secret="pali_operator-seed")
        assert issued.api_key == "pali_operator-seed"
        identity = await validate_api_key("pali_operator-seed", credential_store, hasher)
        assert identity.credential_id == issued.id


class TestReinitialize:
    async def test_uninitialized_fails_and_creates_nothing(
        self, credential_store: CredentialStore, hasher: KeyHasher
    ) -> None:
        with pytest.raises(NotInitializedError):
            await lifecycle.reinitialize(credential_store, hasher)
        assert await credential_store.list_all() == []

    async def test_replaces_admins_keeps_clients(
        self, credential_store: CredentialStore, hasher: KeyHasher
    ) -> None:
        admin_key, admin = await _admin(credential_store, hasher)
        second_admin = await lifecycle.issue(admin, credential_store, hasher, "ops", Role.ADMIN)
        client = await lifecycle.issue(admin, credential_store, hasher, "phone", Role.CLIENT)

        fresh = await lifecycle.reinitialize(credential_store, hasher)

        assert fresh.owner_label == "Reinitialized Admin Key"
        assert fresh.role is Role.ADMIN
        for old in (admin_key, second_admin.api_key):
            with pytest.raises(InvalidApiKeyError):
                await validate_api_key(old, credential_store, hasher)
        assert (await validate_api_key(client.api_key, credential_store, hasher)).role is Role.CLIENT
        assert (await validate_api_key(fresh.api_key, credential_store, hasher)).is_admin

        active_admins = [
            c for c in await credential_store.list_all() if c.role is Role.ADMIN and c.active
        ]
        assert [c.id for c in active_admins] == [fresh.id]

    async def test_repeatable(self, credential_store: CredentialStore, hasher: KeyHasher) -> None:
        await lifecycle.bootstrap(credential_store, hasher)
        first = await lifecycle.reinitialize(credential_store, hasher)
        second = await lifecycle.reinitialize(credential_store, hasher)
        with pytest.raises(InvalidApiKeyError):
            await validate_api_key(first.api_key, credential_store, hasher)
        assert (await validate_api_key(second.api_key, credential_store, hasher)).is_admin


class TestIssue:
    async def test_admin_issues_client_key(
        self, credential_store: CredentialStore, hasher: KeyHasher
    ) -> None:
        _, admin = await _admin(credential_store, hasher)
        issued = await lifecycle.issue(admin, credential_store, hasher, "laptop", Role.CLIENT)
        assert _KEY_FORMAT_RE.match(issued.api_key)
        identity = await validate_api_key(issued.api_key, credential_store, hasher)
        assert identity.role is Role.CLIENT
        assert identity.owner_label == "laptop"

    async def test_client_cannot_issue(
        self, credential_store: CredentialStore, hasher: KeyHasher
    ) -> None:
        _, admin = await _admin(credential_store, hasher)
        client_key = await lifecycle.issue(admin, credential_store, hasher, "phone", Role.CLIENT)
        client = await validate_api_key(client_key.api_key, credential_store, hasher)
        before = await credential_store.list_all()

        with pytest.raises(ForbiddenError):
            await lifecycle.issue(client, credential_store, hasher, "evil", Role.ADMIN)
        assert await credential_store.list_all() == before

    @pytest.mark.parametrize("label", ["", "   ", None, "x" * 201])
    async def test_bad_label_rejected(
        self, label, credential_store: CredentialStore, hasher: KeyHasher
    ) -> None:
        _, admin = await _admin(credential_store, hasher)
        with pytest.raises(InvalidInputError):
            await lifecycle.issue(admin, credential_store, hasher, label, Role.CLIENT)

    @pytest.mark.parametrize(
        "label", ["Initial Admin Key", " Reinitialized Admin Key ", "initial admin key"]
    )
    async def test_bootstrap_labels_reserved(
        self, label: str, credential_store: CredentialStore, hasher: KeyHasher
    ) -> None:
        _, admin = await _admin(credential_store, hasher)
        before = await credential_store.list_all()
        with pytest.raises(InvalidInputError):
            await lifecycle.issue(admin, credential_store, hasher, label, Role.ADMIN)
        assert await credential_store.list_all() == before

    async def test_label_is_trimmed(
        self, credential_store: CredentialStore, hasher: KeyHasher
    ) -> None:
        _, admin = await _admin(credential_store, hasher)
        issued = await lifecycle.issue(admin, credential_store, hasher, "  laptop  ", Role.CLIENT)
        assert issued.owner_label == "laptop"


class TestRevoke:
    async def test_revoke_takes_effect_immediately(
        self, credential_store: CredentialStore, hasher: KeyHasher
    ) -> None:
        _, admin = await _admin(credential_store, hasher)
        issued = await lifecycle.issue(admin, credential_store, hasher, "laptop", Role.CLIENT)
        await validate_api_key(issued.api_key, credential_store, hasher)

        assert await lifecycle.revoke(admin, credential_store, issued.id) is RevokeOutcome.REVOKED
        with pytest.raises(InvalidApiKeyError):
            await validate_api_key(issued.api_key, credential_store, hasher)

    async def test_idempotent(self, credential_store: CredentialStore, hasher: KeyHasher) -> None:
        _, admin = await _admin(credential_store, hasher)
        issued = await lifecycle.issue(admin, credential_store, hasher, "laptop", Role.CLIENT)
        await lifecycle.revoke(admin, credential_store, issued.id)
        outcome = await lifecycle.revoke(admin, credential_store, issued.id)
        assert outcome is RevokeOutcome.ALREADY_REVOKED
        record = await credential_store.get(issued.id)
        assert record is not None and record.active is False

    async def test_unknown_id(self, credential_store: CredentialStore, hasher: KeyHasher) -> None:
        _, admin = await _admin(credential_store, hasher)
        outcome = await lifecycle.revoke(admin, credential_store, "01UNKNOWN")
        assert outcome is RevokeOutcome.NOT_FOUND

    async def test_admin_can_revoke_itself(
        self, credential_store: CredentialStore, hasher: KeyHasher
    ) -> None:
        admin_key, admin = await _admin(credential_store, hasher)
        await lifecycle.revoke(admin, credential_store, admin.credential_id)
        with pytest.raises(InvalidApiKeyError):
            await validate_api_key(admin_key, credential_store, hasher)

    async def test_client_cannot_revoke(
        self, credential_store: CredentialStore, hasher: KeyHasher
    ) -> None:
        _, admin = await _admin(credential_store, hasher)
        issued = await lifecycle.issue(admin, credential_store, hasher, "laptop", Role.CLIENT)
        client = await validate_api_key(issued.api_key, credential_store, hasher)
        with pytest.raises(ForbiddenError):
            await lifecycle.revoke(client, credential_store, admin.credential_id)


class TestListCredentials:
    async def test_no_hash_material(
        self, credential_store: CredentialStore, hasher: KeyHasher
    ) -> None:
        admin_key, admin = await _admin(credential_store, hasher)
        await lifecycle.issue(admin, credential_store, hasher, "laptop", Role.CLIENT)

        infos = await lifecycle.list_credentials(admin, credential_store)

        assert len(infos) == 2
        stored_hashes = {c.secret_hash for c in await credential_store.list_all()}
        for info in infos:
            fields = dataclasses.asdict(info)
            assert "secret_hash" not in fields
            assert not stored_hashes & {str(v) for v in fields.values()}
            assert admin_key not in fields.values()

    async def test_client_cannot_list(
        self, credential_store: CredentialStore, hasher: KeyHasher
    ) -> None:
        _, admin = await _admin(credential_store, hasher)
        issued = await lifecycle.issue(admin, credential_store, hasher, "laptop", Role.CLIENT)
        client = await validate_api_key(issued.api_key, credential_store, hasher)
        with pytest.raises(ForbiddenError):
            await lifecycle.list_credentials(client, credential_store)


class TestPurge:
    async def test_purges_client_key(
        self, credential_store: CredentialStore, hasher: KeyHasher
    ) -> None:
        _, admin = await _admin(credential_store, hasher)
        issued = await lifecycle.issue(admin, credential_store, hasher, "laptop", Role.CLIENT)
        await lifecycle.purge(admin, credential_store, issued.id)
        assert await credential_store.get(issued.id) is None

    async def test_bootstrap_admin_is_protected(
        self, credential_store: CredentialStore, hasher: KeyHasher
    ) -> None:
        _, admin = await _admin(credential_store, hasher)
        with pytest.raises(ConflictError):
            await lifecycle.purge(admin, credential_store, admin.credential_id)
        assert await credential_store.get(admin.credential_id) is not None

    async def test_missing(self, credential_store: CredentialStore, hasher: KeyHasher) -> None:
        _, admin = await _admin(credential_store, hasher)
        with pytest.raises(NotFoundError):
            await lifecycle.purge(admin, credential_store, "01UNKNOWN")
