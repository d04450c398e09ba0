"""Session manager tests — register, login, refresh, logout, authenticate.

Learn: these exercise the properties the session lifecycle must hold:
1. After a successful login, every token issued before it is invalid
2. A refresh token rotates exactly once, also under concurrent replay
3. Five failed logins lock the account for the window, even for the
   correct password, and the lock lapses with the window
4. Cache and event-bus outages never fail a command; ledger outages do
"""

import asyncio
import uuid

import pytest

from warden.errors import (
    DependencyFailure,
    DuplicateIdentity,
    EmailNotVerified,
    InactiveAccount,
    InvalidCredentials,
    InvalidToken,
    TokenExpired,
    TooManyAttempts,
)
from warden.events.types import USER_REGISTERED
from warden.cache.memory import MemoryCacheStore
from warden.storage.memory import MemoryTokenLedgerStore

from conftest import CLIENT, PASSWORD, make_core, register_verified


# ═══════════════════════════════════════════════════════════
# Register
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_register_returns_usable_pair(core):
    pair = await core.sessions.register("alice", "Alice@Example.com", PASSWORD, CLIENT)
    principal = await core.sessions.authenticate(pair.access_token)
    assert principal.username == "alice"
    assert principal.email == "alice@example.com"
    assert not principal.email_verified
    assert await core.ledger.is_active(pair.refresh_token)


@pytest.mark.asyncio
async def test_register_publishes_event(core):
    await core.sessions.register("alice", "alice@example.com", PASSWORD)
    [event] = core.events.of_topic(USER_REGISTERED)
    assert event["payload"]["email"] == "alice@example.com"


@pytest.mark.asyncio
async def test_register_duplicate_email_or_username(core):
    await core.sessions.register("alice", "alice@example.com", PASSWORD)
    with pytest.raises(DuplicateIdentity):
        await core.sessions.register("alice2", "ALICE@example.com", PASSWORD)
    with pytest.raises(DuplicateIdentity):
        await core.sessions.register("alice", "other@example.com", PASSWORD)


@pytest.mark.asyncio
async def test_concurrent_registration_one_wins(core):
    results = await asyncio.gather(
        core.sessions.register("alice", "alice@example.com", PASSWORD),
        core.sessions.register("alice", "alice@example.com", PASSWORD),
        return_exceptions=True,
    )
    assert sum(isinstance(r, DuplicateIdentity) for r in results) == 1


class BrokenBus:
    async def publish(self, topic, key, payload):
        raise ConnectionError("bus down")


@pytest.mark.asyncio
async def test_event_bus_failure_does_not_fail_register():
    core = make_core(events=BrokenBus())
    pair = await core.sessions.register("alice", "alice@example.com", PASSWORD)
    assert pair.access_token


# ═══════════════════════════════════════════════════════════
# Login
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_login_success(core):
    await register_verified(core)
    pair = await core.sessions.login("ALICE@example.com", PASSWORD, CLIENT)
    principal = await core.sessions.authenticate(pair.access_token)
    assert principal.email == "alice@example.com"


@pytest.mark.asyncio
async def test_login_revokes_previous_tokens(core):
    await register_verified(core)
    first = await core.sessions.login("alice@example.com", PASSWORD)
    second = await core.sessions.login("alice@example.com", PASSWORD)
    assert not await core.ledger.is_active(first.access_token)
    assert not await core.ledger.is_active(first.refresh_token)
    assert await core.ledger.is_active(second.access_token)
    with pytest.raises(InvalidToken):
        await core.sessions.authenticate(first.access_token)


@pytest.mark.asyncio
async def test_login_wrong_password(core):
    await register_verified(core)
    with pytest.raises(InvalidCredentials):
        await core.sessions.login("alice@example.com", "wrong-password")
    assert await core.throttle.attempts("alice@example.com") == 1


@pytest.mark.asyncio
async def test_login_unknown_email_counts_as_failure(core):
    with pytest.raises(InvalidCredentials):
        await core.sessions.login("nobody@example.com", PASSWORD)
    assert await core.throttle.attempts("nobody@example.com") == 1


@pytest.mark.asyncio
async def test_login_unverified_email(core):
    await core.sessions.register("alice", "alice@example.com", PASSWORD)
    with pytest.raises(EmailNotVerified):
        await core.sessions.login("alice@example.com", PASSWORD)


@pytest.mark.asyncio
async def test_login_inactive_account(core):
    principal = await register_verified(core)
    principal.deactivate()
    await core.users.save(principal)
    with pytest.raises(InactiveAccount):
        await core.sessions.login("alice@example.com", PASSWORD)


@pytest.mark.asyncio
async def test_account_state_hidden_behind_password_by_default(core):
    """Unverified account + wrong password reports bad credentials only."""
    await core.sessions.register("alice", "alice@example.com", PASSWORD)
    with pytest.raises(InvalidCredentials):
        await core.sessions.login("alice@example.com", "wrong-password")


@pytest.mark.asyncio
async def test_account_state_first_when_configured():
    core = make_core(check_password_first=False)
    await core.sessions.register("alice", "alice@example.com", PASSWORD)
    with pytest.raises(EmailNotVerified):
        await core.sessions.login("alice@example.com", "wrong-password")


@pytest.mark.asyncio
async def test_lockout_after_five_failures(core):
    """5 wrong passwords → the 6th attempt is refused even when correct."""
    await register_verified(core, "bob", "bob@example.com")
    for _ in range(5):
        with pytest.raises(InvalidCredentials):
            await core.sessions.login("bob@example.com", "wrong-password")
    with pytest.raises(TooManyAttempts):
        await core.sessions.login("bob@example.com", PASSWORD)


@pytest.mark.asyncio
async def test_lockout_lapses_after_window(core):
    await register_verified(core, "bob", "bob@example.com")
    for _ in range(5):
        with pytest.raises(InvalidCredentials):
            await core.sessions.login("bob@example.com", "wrong-password")
    core.clock.advance(minutes=16)
    pair = await core.sessions.login("bob@example.com", PASSWORD)
    assert pair.access_token


@pytest.mark.asyncio
async def test_successful_login_clears_counter(core):
    await register_verified(core)
    for _ in range(3):
        with pytest.raises(InvalidCredentials):
            await core.sessions.login("alice@example.com", "wrong-password")
    await core.sessions.login("alice@example.com", PASSWORD)
    assert await core.throttle.attempts("alice@example.com") == 0


@pytest.mark.asyncio
async def test_concurrent_logins_leave_one_live_pair(core):
    await register_verified(core)
    alice = await core.users.find_by_email("alice@example.com")
    pairs = await asyncio.gather(
        *(core.sessions.login("alice@example.com", PASSWORD) for _ in range(3))
    )
    active = {t.value for t in await core.store.find_active_by_owner(alice.id)}
    assert len(active) == 2
    assert active in [{p.access_token, p.refresh_token} for p in pairs]


class SlowMirrorCache(MemoryCacheStore):
    async def set(self, key, value, ttl=None):
        if ":token:" in key:
            await asyncio.sleep(0.05)
        await super().set(key, value, ttl)


@pytest.mark.asyncio
async def test_overlapping_login_cannot_revive_older_session():
    core = make_core(cache_cls=SlowMirrorCache)
    await register_verified(core)
    first = asyncio.create_task(core.sessions.login("alice@example.com", PASSWORD))
    await asyncio.sleep(0.01)
    second = await core.sessions.login("alice@example.com", PASSWORD)
    stale = await first

    with pytest.raises(InvalidToken):
        await core.sessions.authenticate(stale.access_token)
    assert (await core.sessions.authenticate(second.access_token)).email == "alice@example.com"


@pytest.mark.asyncio
async def test_login_racing_password_change_gets_no_session(core):
    await register_verified(core)
    alice = await core.users.find_by_email("alice@example.com")
    # Password change holds the lock while the login is past its password check
    async with core.ledger.session_lock(alice.id):
        login = asyncio.create_task(core.sessions.login("alice@example.com", PASSWORD))
        await asyncio.sleep(0.01)
        alice.change_password(core.hasher.hash("a-brand-new-password"))
        await core.users.save(alice)
        await core.ledger.revoke_all(alice.id)
    with pytest.raises(InvalidCredentials):
        await login
    assert await core.store.find_active_by_owner(alice.id) == []


class DownLedger(MemoryTokenLedgerStore):
    async def save_all(self, tokens):
        raise ConnectionError("database unreachable")


@pytest.mark.asyncio
async def test_ledger_failure_fails_register_without_tokens():
    core = make_core(store_cls=DownLedger)
    with pytest.raises(DependencyFailure):
        await core.sessions.register("alice", "alice@example.com", PASSWORD)


# ═══════════════════════════════════════════════════════════
# Refresh
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_refresh_rotates(core):
    """register alice → refresh → new pair; the old refresh token is dead."""
    pair = await core.sessions.register("alice", "alice@example.com", PASSWORD)
    rotated = await core.sessions.refresh(pair.refresh_token, CLIENT)
    assert rotated.refresh_token != pair.refresh_token
    assert await core.ledger.is_active(rotated.refresh_token)
    assert not await core.ledger.is_active(pair.refresh_token)
    with pytest.raises(InvalidToken):
        await core.sessions.refresh(pair.refresh_token)


@pytest.mark.asyncio
async def test_concurrent_refresh_single_success(core):
    pair = await core.sessions.register("alice", "alice@example.com", PASSWORD)
    results = await asyncio.gather(
        *(core.sessions.refresh(pair.refresh_token) for _ in range(5)),
        return_exceptions=True,
    )
    successes = [r for r in results if not isinstance(r, Exception)]
    failures = [r for r in results if isinstance(r, Exception)]
    assert len(successes) == 1
    assert all(isinstance(f, InvalidToken) for f in failures)


@pytest.mark.asyncio
async def test_refresh_with_access_token_rejected(core):
    pair = await core.sessions.register("alice", "alice@example.com", PASSWORD)
    with pytest.raises(InvalidToken):
        await core.sessions.refresh(pair.access_token)


@pytest.mark.asyncio
async def test_refresh_garbage_rejected(core):
    with pytest.raises(InvalidToken):
        await core.sessions.refresh("garbage")


@pytest.mark.asyncio
async def test_refresh_unknown_but_validly_signed_rejected(core):
    forged = core.signer.sign(
        {"sub": str(uuid.uuid4()), "type": "REFRESH"}, core.ledger.refresh_ttl
    )
    with pytest.raises(InvalidToken):
        await core.sessions.refresh(forged)


@pytest.mark.asyncio
async def test_refresh_after_ledger_expiry(core):
    pair = await core.sessions.register("alice", "alice@example.com", PASSWORD)
    core.clock.advance(days=8)
    with pytest.raises(TokenExpired):
        await core.sessions.refresh(pair.refresh_token)


@pytest.mark.asyncio
async def test_refresh_for_deleted_account_rejected(core):
    pair = await core.sessions.register("alice", "alice@example.com", PASSWORD)
    alice = await core.users.find_by_email("alice@example.com")
    await core.users.soft_delete(alice.id)
    with pytest.raises(InvalidToken):
        await core.sessions.refresh(pair.refresh_token)


# ═══════════════════════════════════════════════════════════
# Logout
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_logout_revokes(core):
    pair = await core.sessions.register("alice", "alice@example.com", PASSWORD)
    await core.sessions.logout(f"Bearer {pair.access_token}")
    assert not await core.ledger.is_active(pair.access_token)
    with pytest.raises(InvalidToken):
        await core.sessions.authenticate(pair.access_token)


@pytest.mark.asyncio
async def test_second_logout_fails(core):
    pair = await core.sessions.register("alice", "alice@example.com", PASSWORD)
    await core.sessions.logout(f"Bearer {pair.access_token}")
    with pytest.raises(InvalidToken):
        await core.sessions.logout(f"Bearer {pair.access_token}")


@pytest.mark.asyncio
@pytest.mark.parametrize("header", [None, "", "Token abc", "Bearer", "Bearer   "])
async def test_logout_malformed_header(core, header):
    with pytest.raises(InvalidToken):
        await core.sessions.logout(header)


@pytest.mark.asyncio
async def test_logout_unknown_token(core):
    with pytest.raises(InvalidToken):
        await core.sessions.logout("Bearer never-issued")


# ═══════════════════════════════════════════════════════════
# Authenticate
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_authenticate_rejects_refresh_token(core):
    pair = await core.sessions.register("alice", "alice@example.com", PASSWORD)
    with pytest.raises(InvalidToken):
        await core.sessions.authenticate(pair.refresh_token)


@pytest.mark.asyncio
async def test_authenticate_rejects_deactivated_principal(core):
    pair = await core.sessions.register("alice", "alice@example.com", PASSWORD)
    alice = await core.users.find_by_email("alice@example.com")
    alice.deactivate()
    await core.users.save(alice)
    with pytest.raises(InvalidToken):
        await core.sessions.authenticate(pair.access_token)
