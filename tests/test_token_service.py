"""
Comprehensive tests for the transfer token service

Tests cover:
- Token creation with generated and supplied access keys
- Permission de-duplication and validation
- Lifespan validation and expiration
- Updates with permission reconciliation
- Revocation and access key regeneration
- Lookups and listing
- Startup salt probe
"""

import warnings
from datetime import datetime, timedelta, timezone

import pytest

from transfer_admin.services.transfer import (
    AccessKeyHasher,
    ConfigurationError,
    MissingSaltWarning,
    NotFoundError,
    SanitizedTransferToken,
    TokenCreatePayload,
    TokenUpdatePayload,
    TransferToken,
    TransferTokenService,
    ValidationError,
    hash_access_key,
)
from transfer_admin.services.transfer.constants import DAY_IN_MS
from transfer_admin.services.transfer.token_store import TOKENS

TEST_SALT = "test-transfer-token-salt"
SEVEN_DAYS = 7 * DAY_IN_MS


def stored_row(store, token_id):
    """Raw persisted row, including the hashed access key"""
    return store.tokens.find_one({"id": token_id})


class TestTokenCreation:
    """Test token creation"""

    def test_create_generates_access_key(self, service, store):
        token = service.create(TokenCreatePayload(name="ci", permissions=["push"]))

        assert isinstance(token, TransferToken)
        assert len(token.access_key) == 256
        assert token.name == "ci"
        assert token.permissions == ["push"]
        assert token.lifespan is None
        assert token.expires_at is None

    def test_create_stores_hash_not_plaintext(self, service, store):
        token = service.create(TokenCreatePayload(name="ci"))

        row = stored_row(store, token.id)
        assert row["access_key"] != token.access_key
        assert row["access_key"] == hash_access_key(token.access_key, TEST_SALT)

    def test_create_with_supplied_access_key(self, service, store):
        token = service.create(
            TokenCreatePayload(name="ci", access_key="my-very-own-access-key")
        )

        assert token.access_key == "my-very-own-access-key"
        assert stored_row(store, token.id)["access_key"] == service.hash("my-very-own-access-key")

    @pytest.mark.parametrize("access_key", ["too-short", None])
    def test_create_rejects_invalid_access_key(self, service, store, access_key):
        with pytest.raises(ValidationError):
            service.create(TokenCreatePayload(name="ci", access_key=access_key))

        assert store.tokens.find_many() == []

    def test_create_deduplicates_permissions(self, service, store):
        token = service.create(
            TokenCreatePayload(name="ci", permissions=["push", "push", "pull"])
        )

        assert token.permissions == ["push", "pull"]
        actions = [p["action"] for p in store.load_relation(TOKENS, token.id, "permissions")]
        assert actions == ["push", "pull"]

    def test_create_without_permissions(self, service, store):
        token = service.create(TokenCreatePayload(name="ci"))

        assert token.permissions == []
        assert store.permissions.find_many() == []

    def test_create_rejects_unknown_permission(self, service, store):
        with pytest.raises(ValidationError, match="Unknown permissions provided: z"):
            service.create(TokenCreatePayload(name="ci", permissions=["push", "z"]))

        assert store.tokens.find_many() == []
        assert store.permissions.find_many() == []
        assert service.exists({"name": "ci"}) is False

    def test_create_with_lifespan(self, service):
        before = datetime.now(timezone.utc)
        token = service.create(TokenCreatePayload(name="ci", lifespan=SEVEN_DAYS))
        after = datetime.now(timezone.utc)

        assert token.lifespan == SEVEN_DAYS
        assert before + timedelta(days=7) <= token.expires_at <= after + timedelta(days=7)

    @pytest.mark.parametrize("lifespan", [1000, -SEVEN_DAYS, 0])
    def test_create_rejects_disallowed_lifespan(self, service, store, lifespan):
        with pytest.raises(ValidationError):
            service.create(TokenCreatePayload(name="ci", lifespan=lifespan))

        assert store.tokens.find_many() == []

    def test_create_without_salt(self, store):
        service = TransferTokenService(hasher=AccessKeyHasher(None), store=store)

        with pytest.raises(ConfigurationError):
            service.create(TokenCreatePayload(name="ci"))

        assert store.tokens.find_many() == []

    def test_create_rolls_back_on_store_failure(self, service, store, monkeypatch):
        def failing_create(data, select=None, populate=None):
            raise RuntimeError("permission insert failed")

        monkeypatch.setattr(store.permissions, "create", failing_create)

        with pytest.raises(RuntimeError, match="permission insert failed"):
            service.create(TokenCreatePayload(name="ci", permissions=["push"]))

        assert store.tokens.find_many() == []


class TestTokenListing:
    """Test list and lookups"""

    def test_list_ordered_by_name(self, service):
        for name in ["zeta", "alpha", "mid"]:
            service.create(TokenCreatePayload(name=name, permissions=["pull"]))

        tokens = service.list()

        assert [token.name for token in tokens] == ["alpha", "mid", "zeta"]
        assert all(isinstance(token, SanitizedTransferToken) for token in tokens)
        assert all(token.permissions == ["pull"] for token in tokens)

    def test_list_never_exposes_access_key(self, service):
        service.create(TokenCreatePayload(name="ci"))

        dumped = service.list()[0].model_dump()
        assert "access_key" not in dumped

    def test_list_empty(self, service):
        assert service.list() == []

    def test_get_by_id_is_sanitized(self, service):
        created = service.create(
            TokenCreatePayload(name="ci", permissions=["push"], lifespan=SEVEN_DAYS)
        )

        token = service.get_by_id(created.id)

        assert type(token) is SanitizedTransferToken
        assert "access_key" not in token.model_dump()
        assert token.permissions == ["push"]
        assert token.expires_at == created.expires_at

    def test_get_by_name(self, service):
        created = service.create(TokenCreatePayload(name="ci"))

        assert service.get_by_name("ci").id == created.id
        assert service.get_by_name("other") is None

    def test_get_by_hash(self, service):
        created = service.create(TokenCreatePayload(name="ci"))

        token = service.get_by({"access_key": service.hash(created.access_key)})
        assert token.id == created.id

    def test_get_by_empty_filter(self, service):
        service.create(TokenCreatePayload(name="ci"))

        assert service.get_by({}) is None
        assert service.get_by() is None

    def test_exists(self, service):
        created = service.create(TokenCreatePayload(name="ci"))

        assert service.exists({"id": created.id}) is True
        assert service.exists({"id": created.id + 1}) is False
        assert service.exists({}) is False

    @pytest.mark.parametrize("where", [{"bogus": None}, {"name": "ci", "typo": None}])
    def test_lookup_rejects_unknown_fields(self, service, where):
        service.create(TokenCreatePayload(name="ci"))

        with pytest.raises(ValidationError, match="Unknown token filter fields"):
            service.get_by(where)
        with pytest.raises(ValidationError):
            service.exists(where)

    def test_get_by_never_used(self, service):
        created = service.create(TokenCreatePayload(name="ci"))

        assert service.get_by({"last_used_at": None}).id == created.id


class TestTokenUpdate:
    """Test updates and permission reconciliation"""

    def test_update_scalars(self, service):
        created = service.create(TokenCreatePayload(name="ci", description="old"))

        token = service.update(
            created.id, TokenUpdatePayload(name="deploy", description="new")
        )

        assert token.name == "deploy"
        assert token.description == "new"
        assert "access_key" not in token.model_dump()

    def test_update_missing_token(self, service, store, monkeypatch):
        calls = []
        monkeypatch.setattr(store.tokens, "update", lambda *a, **kw: calls.append(a))

        with pytest.raises(NotFoundError, match="Token not found"):
            service.update(42, TokenUpdatePayload(name="x"))

        assert calls == []

    def test_update_without_permissions_keeps_them(self, service):
        created = service.create(TokenCreatePayload(name="ci", permissions=["push", "pull"]))

        token = service.update(created.id, TokenUpdatePayload(description="changed"))

        assert sorted(token.permissions) == ["pull", "push"]

    def test_update_with_empty_permissions_removes_all(self, service, store):
        created = service.create(TokenCreatePayload(name="ci", permissions=["push", "pull"]))

        token = service.update(created.id, TokenUpdatePayload(permissions=[]))

        assert token.permissions == []
        assert store.permissions.find_many() == []

    def test_update_reconciles_permissions(self, service, store):
        created = service.create(TokenCreatePayload(name="ci", permissions=["push"]))
        push_row = store.permissions.find_one({"action": "push"})

        token = service.update(created.id, TokenUpdatePayload(permissions=["push", "pull", "pull"]))

        assert sorted(token.permissions) == ["pull", "push"]
        # unchanged permissions are not recreated
        assert store.permissions.find_one({"action": "push"})["id"] == push_row["id"]

    def test_update_replaces_permissions(self, service):
        created = service.create(TokenCreatePayload(name="ci", permissions=["push"]))

        token = service.update(created.id, TokenUpdatePayload(permissions=["pull"]))

        assert token.permissions == ["pull"]

    def test_update_rejects_unknown_permissions(self, service):
        created = service.create(TokenCreatePayload(name="ci", permissions=["push"]))

        with pytest.raises(ValidationError, match="Unknown permissions provided: a, b"):
            service.update(created.id, TokenUpdatePayload(name="renamed", permissions=["a", "b"]))

        token = service.get_by_id(created.id)
        assert token.name == "ci"
        assert token.permissions == ["push"]

    def test_update_lifespan_keeps_expiration(self, service):
        created = service.create(TokenCreatePayload(name="ci", lifespan=SEVEN_DAYS))

        token = service.update(created.id, TokenUpdatePayload(lifespan=30 * DAY_IN_MS))

        assert token.lifespan == 30 * DAY_IN_MS
        assert token.expires_at == created.expires_at

    def test_update_clears_lifespan(self, service):
        created = service.create(TokenCreatePayload(name="ci", lifespan=SEVEN_DAYS))

        token = service.update(created.id, TokenUpdatePayload(lifespan=None))

        assert token.lifespan is None

    def test_update_rejects_disallowed_lifespan(self, service):
        created = service.create(TokenCreatePayload(name="ci"))

        with pytest.raises(ValidationError):
            service.update(created.id, TokenUpdatePayload(lifespan=12345))

    def test_update_ignores_null_name(self, service):
        created = service.create(TokenCreatePayload(name="ci"))

        token = service.update(created.id, TokenUpdatePayload(name=None))

        assert token.name == "ci"


class TestTokenRevocation:
    """Test revocation"""

    def test_revoke_returns_snapshot(self, service, store):
        created = service.create(TokenCreatePayload(name="ci", permissions=["push"]))

        revoked = service.revoke(created.id)

        assert revoked.id == created.id
        assert revoked.permissions == ["push"]
        assert "access_key" not in revoked.model_dump()
        assert service.get_by_id(created.id) is None
        assert store.permissions.find_many() == []

    def test_revoke_missing_token(self, service):
        assert service.revoke(42) is None

    def test_revoke_only_target(self, service):
        first = service.create(TokenCreatePayload(name="first", permissions=["push"]))
        second = service.create(TokenCreatePayload(name="second", permissions=["pull"]))

        service.revoke(first.id)

        remaining = service.list()
        assert [token.id for token in remaining] == [second.id]
        assert remaining[0].permissions == ["pull"]


class TestTokenRegeneration:
    """Test access key regeneration"""

    def test_regenerate_changes_only_access_key(self, service, store):
        created = service.create(
            TokenCreatePayload(name="ci", permissions=["push", "pull"], lifespan=SEVEN_DAYS)
        )
        before = service.get_by_id(created.id)
        old_hash = stored_row(store, created.id)["access_key"]

        regenerated = service.regenerate(created.id)
        after = service.get_by_id(created.id)

        assert regenerated.access_key != created.access_key
        assert len(regenerated.access_key) == 256
        assert stored_row(store, created.id)["access_key"] == service.hash(regenerated.access_key)
        assert stored_row(store, created.id)["access_key"] != old_hash
        for field in ("name", "description", "lifespan", "expires_at", "permissions"):
            assert getattr(after, field) == getattr(before, field)
        assert regenerated.permissions == before.permissions

    def test_regenerate_missing_token(self, service):
        with pytest.raises(NotFoundError, match="does not exist"):
            service.regenerate(42)


class TestSaltProbe:
    """Test the startup salt check"""

    def test_configured_salt(self, service):
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            assert service.check_salt_configured() is True

    def test_missing_salt_warns(self, store):
        service = TransferTokenService(hasher=AccessKeyHasher(None), store=store)

        with pytest.warns(MissingSaltWarning, match="TRANSFER_TOKEN_SALT"):
            assert service.check_salt_configured() is False

    def test_missing_salt_ignored_when_disabled(self, store):
        service = TransferTokenService(
            hasher=AccessKeyHasher(None), store=store, disabled=True
        )

        with warnings.catch_warnings():
            warnings.simplefilter("error")
            assert service.check_salt_configured() is False


class TestTokenWorkflow:
    """End-to-end lifecycle through the service"""

    def test_complete_lifecycle(self, service):
        created = service.create(
            TokenCreatePayload(name="ci", permissions=["push"], lifespan=SEVEN_DAYS)
        )
        assert created.access_key
        assert created.expires_at is not None

        fetched = service.get_by_id(created.id)
        assert not hasattr(fetched, "access_key")

        updated = service.update(created.id, TokenUpdatePayload(permissions=["pull"]))
        assert updated.permissions == ["pull"]

        regenerated = service.regenerate(created.id)
        assert regenerated.access_key != created.access_key

        revoked = service.revoke(created.id)
        assert revoked.permissions == ["pull"]
        assert service.list() == []
