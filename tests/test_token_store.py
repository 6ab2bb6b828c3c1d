"""Tests for the refresh token store implementations."""

import pytest

from crm.core.config import Settings
from crm.db.database import init_db
from crm.models.token import RefreshTokenRecord
from crm.repositories.token_store import (
    InMemoryRefreshTokenStore,
    SqliteRefreshTokenStore,
    StripedLocks,
    build_token_store,
)


class TestStoreContract:
    def test_put_then_get(self, any_store):
        any_store.put("tok-a", 1, "fam-1")
        assert any_store.get("tok-a") == RefreshTokenRecord(owner_id=1, family_id="fam-1")

    def test_get_missing_returns_none(self, any_store):
        assert any_store.get("nope") is None

    def test_put_is_an_upsert(self, any_store):
        any_store.put("tok-a", 1, "fam-1")
        any_store.put("tok-a", 1, "fam-2")
        assert any_store.get("tok-a").family_id == "fam-2"

    def test_remove_is_idempotent(self, any_store):
        any_store.put("tok-a", 1, "fam-1")
        assert any_store.remove("tok-a") is True
        assert any_store.remove("tok-a") is False
        assert any_store.get("tok-a") is None

    def test_remove_all_for_owner_leaves_other_owners(self, any_store):
        any_store.put("a1", 5, "fam-a")
        any_store.put("a2", 5, "fam-b")
        any_store.put("b1", 6, "fam-c")

        assert any_store.remove_all_for_owner(5) == 2

        assert any_store.get("a1") is None
        assert any_store.get("a2") is None
        assert any_store.get("b1") is not None

    def test_remove_family(self, any_store):
        any_store.put("a1", 5, "fam-a")
        any_store.put("a2", 5, "fam-b")

        assert any_store.remove_family("fam-a") == 1
        assert any_store.get("a1") is None
        assert any_store.get("a2") is not None

    def test_lock_is_stable_per_token(self, any_store):
        assert any_store.lock("tok-a") is any_store.lock("tok-a")


class TestOwnerEpoch:
    def test_epoch_starts_at_zero(self, any_store):
        assert any_store.owner_epoch(5) == 0

    def test_revoking_owner_advances_only_their_epoch(self, any_store):
        any_store.remove_all_for_owner(5)
        any_store.remove_all_for_owner(5)

        assert any_store.owner_epoch(5) == 2
        assert any_store.owner_epoch(6) == 0

    def test_put_if_current_stores_with_matching_epoch(self, any_store):
        assert any_store.put_if_current("tok-a", 5, "fam", 0) is True
        assert any_store.get("tok-a") == RefreshTokenRecord(5, "fam")

    def test_put_if_current_refused_after_owner_revocation(self, any_store):
        epoch = any_store.owner_epoch(5)
        any_store.remove_all_for_owner(5)

        assert any_store.put_if_current("tok-a", 5, "fam", epoch) is False
        assert any_store.get("tok-a") is None

    def test_other_owner_revocation_does_not_block(self, any_store):
        epoch = any_store.owner_epoch(5)
        any_store.remove_all_for_owner(6)

        assert any_store.put_if_current("tok-a", 5, "fam", epoch) is True


class TestStripedLocks:
    def test_single_stripe_shares_one_lock(self):
        locks = StripedLocks(stripes=1)
        assert locks.for_key("x") is locks.for_key("y")

    def test_rejects_zero_stripes(self):
        with pytest.raises(ValueError):
            StripedLocks(stripes=0)


class TestInMemoryStore:
    def test_len_counts_records(self):
        store = InMemoryRefreshTokenStore()
        store.put("a", 1, "f")
        store.put("b", 1, "f")
        assert len(store) == 2


class TestBuildTokenStore:
    def _settings(self, kind, database_url="sqlite:///./crm.sqlite"):
        return Settings(
            DATABASE_URL=database_url,
            ACCESS_TOKEN_SECRET="a-secret",
            REFRESH_TOKEN_SECRET="r-secret",
            REFRESH_TOKEN_STORE=kind,
        )

    def test_memory_is_default(self):
        assert isinstance(build_token_store(self._settings("memory")), InMemoryRefreshTokenStore)

    def test_sqlite(self):
        assert isinstance(build_token_store(self._settings("sqlite")), SqliteRefreshTokenStore)

    def test_sqlite_store_survives_new_instance(self, database_url):
        SqliteRefreshTokenStore(database_url).put("tok", 3, "fam")
        assert SqliteRefreshTokenStore(database_url).get("tok") == RefreshTokenRecord(3, "fam")

    def test_sqlite_store_uses_configured_database(self, tmp_path, database_url):
        other_url = f"sqlite:///{tmp_path}/other.sqlite"
        init_db(other_url)
        store = build_token_store(self._settings("sqlite", other_url))

        store.put("tok", 3, "fam")

        assert SqliteRefreshTokenStore(other_url).get("tok") is not None
        assert SqliteRefreshTokenStore(database_url).get("tok") is None
