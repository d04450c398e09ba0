"""Service wiring — builds the core services on top of a storage backend.

Learn: the services only know the Protocols in domain/ports.py. This is
the one place that decides which adapters stand behind them:

    WARDEN_STORAGE_BACKEND=postgres   SQLAlchemy repos (one AsyncSession
                                      per scope) + Redis cache + Redis events
    WARDEN_STORAGE_BACKEND=memory     in-process adapters, single worker only

Long-lived pieces (signer, hasher, cache, event bus, RNG) are built once
per container. Session-bound pieces are built per scope(): one scope per
HTTP request or CLI command.
"""

import random
import secrets
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import redis.asyncio as aioredis

from warden.auth.jwt import JwtSigner
from warden.auth.password import BcryptHasher
from warden.cache.keys import CacheKeys
from warden.cache.memory import MemoryCacheStore
from warden.cache.redis_store import RedisCacheStore
from warden.config import Settings
from warden.domain.ports import (
    CacheStore,
    EventBus,
    TokenLedgerStore,
    UserRepository,
)
from warden.realtime.pubsub import MemoryEventBus, RedisEventBus
from warden.services.credentials import CredentialService
from warden.services.ephemeral import EphemeralTokenIssuer
from warden.services.session_manager import SessionManager
from warden.services.throttle import LOGIN_FAILURES, RESET_FAILURES, ThrottleGuard
from warden.services.token_ledger import TokenLedger
from warden.storage.memory import MemoryTokenLedgerStore, MemoryUserRepository


@dataclass
class Services:
    """Everything one request needs, bound to one storage scope."""

    users: UserRepository
    ledger: TokenLedger
    throttle: ThrottleGuard
    sessions: SessionManager
    credentials: CredentialService


class ServiceContainer:
    def __init__(
        self,
        settings: Settings,
        cache: CacheStore,
        events: EventBus,
        signer: Optional[JwtSigner] = None,
        hasher: Optional[BcryptHasher] = None,
        rng: Optional[random.Random] = None,
    ):
        self.settings = settings
        self.cache = cache
        self.events = events
        self.keys = CacheKeys(settings.cache_prefix)
        self.signer = signer or JwtSigner.from_settings(settings)
        self.hasher = hasher or BcryptHasher(rounds=settings.bcrypt_rounds)
        self.rng = rng or secrets.SystemRandom()
        # memory backend: shared for the container's lifetime
        self._memory_users: Optional[MemoryUserRepository] = None
        self._memory_ledger: Optional[MemoryTokenLedgerStore] = None
        if settings.storage_backend == "memory":
            self._memory_users = MemoryUserRepository()
            self._memory_ledger = MemoryTokenLedgerStore()

    def build(self, users: UserRepository, store: TokenLedgerStore) -> Services:
        s = self.settings
        timeout = s.store_timeout_seconds
        ledger = TokenLedger(
            store,
            self.cache,
            self.keys,
            self.signer,
            access_ttl=s.access_token_ttl,
            refresh_ttl=s.refresh_token_ttl,
            timeout=timeout,
        )
        throttle = ThrottleGuard(
            self.cache,
            self.keys,
            max_attempts=s.login_max_attempts,
            window=s.login_attempt_window,
            namespace=LOGIN_FAILURES,
            timeout=timeout,
        )
        reset_throttle = ThrottleGuard(
            self.cache,
            self.keys,
            max_attempts=s.login_max_attempts,
            window=s.login_attempt_window,
            namespace=RESET_FAILURES,
            timeout=timeout,
        )
        issuer = EphemeralTokenIssuer(
            self.cache,
            self.keys,
            self.signer,
            self.rng,
            verification_ttl=s.email_verification_ttl,
            reset_ttl=s.password_reset_ttl,
            timeout=timeout,
        )
        sessions = SessionManager(
            users,
            ledger,
            throttle,
            self.hasher,
            self.signer,
            self.events,
            check_password_first=s.login_check_password_first,
            timeout=timeout,
        )
        credentials = CredentialService(
            users,
            ledger,
            issuer,
            reset_throttle,
            self.hasher,
            self.events,
            frontend_base_url=s.frontend_base_url,
            timeout=timeout,
        )
        return Services(
            users=users,
            ledger=ledger,
            throttle=throttle,
            sessions=sessions,
            credentials=credentials,
        )

    @asynccontextmanager
    async def scope(self) -> AsyncIterator[Services]:
        if self._memory_users is not None and self._memory_ledger is not None:
            yield self.build(self._memory_users, self._memory_ledger)
            return

        from warden.db.engine import get_session_factory
        from warden.db.repositories import SqlTokenLedgerStore, SqlUserRepository

        async with get_session_factory()() as session:
            yield self.build(SqlUserRepository(session), SqlTokenLedgerStore(session))


def build_container(
    settings: Settings, redis: Optional[aioredis.Redis] = None
) -> ServiceContainer:
    """Container for `settings.storage_backend`.

    The postgres backend needs a live Redis client for its cache store and
    event bus; the memory backend ignores `redis`.
    """
    if settings.storage_backend == "memory":
        return ServiceContainer(settings, MemoryCacheStore(), MemoryEventBus())
    if redis is None:
        raise RuntimeError("The postgres backend needs a Redis client")
    return ServiceContainer(
        settings,
        RedisCacheStore(redis),
        RedisEventBus(redis, prefix=settings.cache_prefix),
    )
