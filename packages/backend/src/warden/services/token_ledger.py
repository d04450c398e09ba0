"""Token ledger — mint, record, mirror, revoke.

Learn: two stores hold token state, with different roles:

    TokenLedgerStore (Postgres)  authoritative, append-only, every token ever
    CacheStore (Redis)           fast mirror of ACTIVE tokens, TTL = lifetime

Issuing writes the ledger first (authoritative — failure aborts and no
token leaves the service), then mirrors into the cache (best effort).

Revoking runs the other way round: evict from the cache FIRST, then flip
the ledger row with a conditional update, then evict once more. A mirror
write still in flight when the ledger flipped is caught on the issuing
side: after mirroring, the ledger row is read back and a revoked token
is evicted again. Once the ledger says "revoked", the cache can no longer
say "active".

session_lock() serializes revoke-then-issue sequences (login, refresh,
credential changes) per principal across instances, so concurrent logins
leave exactly one live pair.

Cache layout (see cache/keys.py):
    {prefix}:token:{value}           JSON {user_id, token_type, active, ...}
    {prefix}:user-tokens:{user_id}   set of cached values for revoke-all
    {prefix}:session-lock:{user_id}  holder id while a sequence runs
"""

import asyncio
import json
import secrets
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable, Optional

import structlog

from warden.auth.jwt import JwtSigner
from warden.cache.keys import CacheKeys
from warden.domain.models import (
    ClientInfo,
    Principal,
    Token,
    TokenPair,
    TokenType,
    utcnow,
)
from warden.domain.ports import CacheStore, TokenLedgerStore
from warden.errors import DependencyFailure
from warden.services.store_calls import authoritative, best_effort

logger = structlog.get_logger()

LOCK_POLL_SECONDS = 0.02


class TokenLedger:
    def __init__(
        self,
        store: TokenLedgerStore,
        cache: CacheStore,
        keys: CacheKeys,
        signer: JwtSigner,
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
        timeout: float = 2.0,
        clock: Callable[[], datetime] = utcnow,
        lock_ttl: timedelta = timedelta(seconds=10),
    ):
        self.store = store
        self.cache = cache
        self.keys = keys
        self.signer = signer
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.timeout = timeout
        self._clock = clock
        self.lock_ttl = lock_ttl

    # ─── Issue ───────────────────────────────────────────

    def mint(
        self,
        principal: Principal,
        token_type: TokenType,
        client: Optional[ClientInfo] = None,
    ) -> Token:
        """Sign a token for `principal`. Nothing is stored yet."""
        client = client or ClientInfo()
        claims = {"sub": str(principal.id), "type": token_type.value}
        if token_type is TokenType.ACCESS:
            claims["email"] = principal.email
            claims["roles"] = sorted(r.value for r in principal.roles)
            ttl = self.access_ttl
        else:
            ttl = self.refresh_ttl

        signed = self.signer.mint(claims, ttl)
        return Token(
            value=signed.value,
            token_type=token_type,
            owner_id=principal.id,
            issued_at=signed.issued_at,
            expires_at=signed.expires_at,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
        )

    async def issue_pair(
        self, principal: Principal, client: Optional[ClientInfo] = None
    ) -> TokenPair:
        """Mint access + refresh, record both, mirror both.

        Raises DependencyFailure if the ledger write fails; the tokens are
        then discarded and never returned.
        """
        access = self.mint(principal, TokenType.ACCESS, client)
        refresh = self.mint(principal, TokenType.REFRESH, client)

        await authoritative(
            self.store.save_all([access, refresh]), self.timeout, "ledger.save"
        )
        await self.cache_token(access)
        await self.cache_token(refresh)

        logger.info(
            "ledger.pair_issued",
            user_id=str(principal.id),
            ip_address=access.ip_address,
        )
        return TokenPair(access_token=access.value, refresh_token=refresh.value)

    async def cache_token(self, token: Token) -> None:
        await best_effort(self._mirror(token), self.timeout, "cache.mirror")
        # A revoke that ran while the mirror was in flight: drop the mirror
        current = await best_effort(
            self.store.find_by_value(token.value), self.timeout, "ledger.recheck"
        )
        if current is None or not current.active:
            await best_effort(
                self._evict(token.owner_id, token.value), self.timeout, "cache.evict"
            )

    async def _mirror(self, token: Token) -> None:
        ttl = token.expires_at - self._clock()
        if ttl <= timedelta(0):
            return
        payload = json.dumps(
            {
                "user_id": str(token.owner_id),
                "token_type": token.token_type.value,
                "active": token.active,
                "expires_at": token.expires_at.isoformat(),
                "ip_address": token.ip_address,
                "user_agent": token.user_agent,
            }
        )
        index = self.keys.user_tokens(token.owner_id)
        await self.cache.set(self.keys.token(token.value), payload, ttl)
        await self.cache.add_to_set(index, token.value)
        await self.cache.expire(index, self.refresh_ttl)

    # ─── Revoke ──────────────────────────────────────────

    async def _evict(self, owner_id: uuid.UUID, value: str) -> None:
        await self.cache.delete(self.keys.token(value))
        await self.cache.remove_from_set(self.keys.user_tokens(owner_id), value)

    async def revoke(self, token: Token) -> bool:
        """Revoke one token. True only for the caller that flipped it."""
        await best_effort(
            self._evict(token.owner_id, token.value), self.timeout, "cache.evict"
        )
        revoked = await authoritative(
            self.store.revoke_if_active(token.value), self.timeout, "ledger.revoke"
        )
        await best_effort(
            self._evict(token.owner_id, token.value), self.timeout, "cache.evict"
        )
        if revoked:
            token.revoke()
            logger.info(
                "ledger.token_revoked",
                user_id=str(token.owner_id),
                token_type=token.token_type.value,
            )
        return revoked

    async def revoke_all(self, owner_id: uuid.UUID) -> int:
        """Revoke every currently-valid token of a principal.

        Not atomic across the set; each token is evicted and then revoked,
        same as revoke(). Returns how many ledger rows this call flipped.
        """
        tokens = await authoritative(
            self.store.find_active_by_owner(owner_id),
            self.timeout,
            "ledger.find_active",
        )
        cached = await best_effort(
            self.cache.members_of(self.keys.user_tokens(owner_id)),
            self.timeout,
            "cache.members",
        )
        # Cached values the ledger no longer lists as valid still get evicted
        stale = (cached or set()) - {t.value for t in tokens}
        for value in stale:
            await best_effort(
                self._evict(owner_id, value), self.timeout, "cache.evict"
            )

        count = 0
        for token in tokens:
            if await self.revoke(token):
                count += 1
        logger.info("ledger.revoked_all", user_id=str(owner_id), count=count)
        return count

    async def revoke_sessions(self, owner_id: uuid.UUID) -> int:
        """revoke_all() under the principal's session lock."""
        async with self.session_lock(owner_id):
            return await self.revoke_all(owner_id)

    # ─── Session lock ────────────────────────────────────

    @asynccontextmanager
    async def session_lock(self, owner_id: uuid.UUID) -> AsyncIterator[None]:
        """Run one revoke-then-issue sequence for `owner_id` at a time.

        The lock lives in the cache store with a TTL, so a crashed holder
        frees it on expiry. With the cache unreachable the sequence runs
        unlocked; the ledger stays correct, only overlapping sequences can
        then leave an extra pair alive.
        """
        key = self.keys.session_lock(owner_id)
        holder = secrets.token_hex(16)
        acquired = await self._acquire(key, holder)
        try:
            yield
        finally:
            if acquired:
                await best_effort(
                    self.cache.delete_if_equals(key, holder), self.timeout, "cache.unlock"
                )

    async def _acquire(self, key: str, holder: str) -> bool:
        deadline = time.monotonic() + self.lock_ttl.total_seconds()
        while True:
            taken = await best_effort(
                self.cache.set_if_absent(key, holder, self.lock_ttl),
                self.timeout,
                "cache.lock",
            )
            if taken is None:
                return False
            if taken:
                return True
            if time.monotonic() >= deadline:
                logger.error("ledger.lock_timeout", key=key)
                raise DependencyFailure("Timed out waiting for the session lock")
            await asyncio.sleep(LOCK_POLL_SECONDS)

    # ─── Lookup ──────────────────────────────────────────

    async def find(self, value: str) -> Optional[Token]:
        return await authoritative(
            self.store.find_by_value(value), self.timeout, "ledger.find"
        )

    async def is_active(self, value: str) -> bool:
        """Cache fast path, ledger fallback.

        A cache hit is trusted only while its recorded expiry is in the
        future. A miss, an unreadable entry, or an unreachable cache all
        fall through to the ledger.
        """
        raw = await best_effort(
            self.cache.get(self.keys.token(value)), self.timeout, "cache.get"
        )
        if raw:
            try:
                cached = json.loads(raw)
                expires_at = datetime.fromisoformat(cached["expires_at"])
            except (ValueError, KeyError, TypeError):
                cached = None
            if cached is not None:
                return bool(cached.get("active")) and self._clock() < expires_at

        token = await self.find(value)
        return token is not None and token.is_valid(self._clock())
