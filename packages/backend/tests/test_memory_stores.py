"""In-memory adapter tests — the contracts the services rely on."""

import asyncio
import typing
from datetime import timedelta

import pytest

from warden.cache.memory import MemoryCacheStore
from warden.domain.models import Principal, Token, TokenType
from warden.domain.ports import CacheStore
from warden.errors import DuplicateIdentity
from warden.storage.memory import MemoryTokenLedgerStore, MemoryUserRepository

from conftest import FakeClock


# ═══════════════════════════════════════════════════════════
# Cache store
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_cache_ttl_expiry():
    clock = FakeClock()
    cache = MemoryCacheStore(clock=clock.monotonic)
    await cache.set("k", "v", timedelta(seconds=30))
    assert await cache.get("k") == "v"
    clock.advance(seconds=31)
    assert await cache.get("k") is None


@pytest.mark.asyncio
async def test_cache_delete_counts_once():
    """Only the first delete of a key reports 1 (single-use records rely on it)."""
    cache = MemoryCacheStore()
    await cache.set("k", "v")
    assert await cache.delete("k") == 1
    assert await cache.delete("k") == 0


@pytest.mark.asyncio
async def test_increment_window_sets_ttl_once():
    """The window starts at the first increment and is not extended."""
    clock = FakeClock()
    cache = MemoryCacheStore(clock=clock.monotonic)
    assert await cache.increment_window("c", timedelta(minutes=15)) == 1
    clock.advance(minutes=10)
    assert await cache.increment_window("c", timedelta(minutes=15)) == 2
    assert cache.ttl_remaining("c") == pytest.approx(300, abs=1)
    clock.advance(minutes=6)
    assert await cache.get("c") is None
    assert await cache.increment_window("c", timedelta(minutes=15)) == 1


@pytest.mark.asyncio
async def test_set_if_absent_single_holder():
    clock = FakeClock()
    cache = MemoryCacheStore(clock=clock.monotonic)
    assert await cache.set_if_absent("lock", "a", timedelta(seconds=10))
    assert not await cache.set_if_absent("lock", "b", timedelta(seconds=10))
    clock.advance(seconds=11)
    assert await cache.set_if_absent("lock", "b", timedelta(seconds=10))


@pytest.mark.asyncio
async def test_delete_if_equals_only_for_holder():
    cache = MemoryCacheStore()
    await cache.set_if_absent("lock", "a", timedelta(seconds=10))
    assert await cache.delete_if_equals("lock", "b") == 0
    assert await cache.get("lock") == "a"
    assert await cache.delete_if_equals("lock", "a") == 1
    assert await cache.get("lock") is None


def test_cache_store_annotations_resolve():
    hints = typing.get_type_hints(MemoryCacheStore.members_of)
    assert hints["return"] == set[str]
    assert typing.get_type_hints(CacheStore.members_of)["return"] == set[str]


@pytest.mark.asyncio
async def test_set_membership():
    cache = MemoryCacheStore()
    await cache.add_to_set("s", "a")
    await cache.add_to_set("s", "b")
    await cache.remove_from_set("s", "a")
    assert await cache.members_of("s") == {"b"}
    assert await cache.members_of("missing") == set()


# ═══════════════════════════════════════════════════════════
# Principal store
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_user_repo_rejects_live_duplicates():
    repo = MemoryUserRepository()
    await repo.save(Principal.register("alice", "alice@example.com", "h"))
    with pytest.raises(DuplicateIdentity):
        await repo.save(Principal.register("alice2", "ALICE@example.com", "h"))
    with pytest.raises(DuplicateIdentity):
        await repo.save(Principal.register("alice", "other@example.com", "h"))


@pytest.mark.asyncio
async def test_soft_deleted_user_is_invisible_and_frees_identity():
    repo = MemoryUserRepository()
    alice = await repo.save(Principal.register("alice", "alice@example.com", "h"))
    assert await repo.soft_delete(alice.id)
    assert await repo.find_by_id(alice.id) is None
    assert not await repo.exists_by_email("alice@example.com")
    # A new account may take the freed identity
    await repo.save(Principal.register("alice", "alice@example.com", "h"))
    assert not await repo.soft_delete(alice.id)


@pytest.mark.asyncio
async def test_user_repo_returns_copies():
    repo = MemoryUserRepository()
    alice = await repo.save(Principal.register("alice", "alice@example.com", "h"))
    fetched = await repo.find_by_id(alice.id)
    fetched.deactivate()
    assert (await repo.find_by_id(alice.id)).active


# ═══════════════════════════════════════════════════════════
# Token ledger store
# ═══════════════════════════════════════════════════════════


def _token(clock, owner, value="t1", **kw):
    return Token(
        value=value,
        token_type=TokenType.REFRESH,
        owner_id=owner,
        issued_at=clock(),
        expires_at=clock() + timedelta(days=7),
        **kw,
    )


@pytest.mark.asyncio
async def test_revoke_if_active_has_one_winner():
    clock = FakeClock()
    store = MemoryTokenLedgerStore(clock=clock)
    alice = Principal.register("alice", "alice@example.com", "h")
    await store.save(_token(clock, alice.id))
    results = await asyncio.gather(
        *(store.revoke_if_active("t1") for _ in range(10))
    )
    assert results.count(True) == 1
    assert not (await store.find_by_value("t1")).active


@pytest.mark.asyncio
async def test_ledger_is_append_only():
    clock = FakeClock()
    store = MemoryTokenLedgerStore(clock=clock)
    alice = Principal.register("alice", "alice@example.com", "h")
    await store.save(_token(clock, alice.id))
    with pytest.raises(ValueError):
        await store.save(_token(clock, alice.id))


@pytest.mark.asyncio
async def test_find_active_by_owner_skips_revoked_and_expired():
    clock = FakeClock()
    store = MemoryTokenLedgerStore(clock=clock)
    alice = Principal.register("alice", "alice@example.com", "h")
    await store.save_all([
        _token(clock, alice.id, "live"),
        _token(clock, alice.id, "revoked", active=False),
    ])
    short = _token(clock, alice.id, "short")
    short.expires_at = clock() + timedelta(minutes=1)
    await store.save(short)
    clock.advance(minutes=2)
    assert [t.value for t in await store.find_active_by_owner(alice.id)] == ["live"]
    assert len(store.all_tokens()) == 3
