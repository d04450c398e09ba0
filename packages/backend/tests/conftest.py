"""Test fixtures — the whole core on in-memory adapters with a movable clock.

Learn: every collaborator behind a Protocol has an in-memory twin, so the
service tests need neither Postgres nor Redis:

1. `clock` is a FakeClock shared by the ledger store, the principal store,
   the cache (as epoch seconds) and the services. Tests jump past a lockout
   window or a refresh lifetime with clock.advance(...) instead of sleeping.
2. `core` bundles every service wired the same way bootstrap.py wires them.
3. `client` is an httpx AsyncClient over ASGITransport against an app
   built with a memory-backend container (no lifespan, no network).

Adapter tests against real Redis/Postgres live in test_redis_store.py and
test_sql_repositories.py and skip when those services are not reachable.
"""

import random
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from warden.auth.jwt import JwtSigner
from warden.auth.password import BcryptHasher
from warden.bootstrap import ServiceContainer
from warden.cache.keys import CacheKeys
from warden.cache.memory import MemoryCacheStore
from warden.config import Settings
from warden.domain.models import ClientInfo, Principal
from warden.main import create_app
from warden.realtime.pubsub import MemoryEventBus
from warden.services.credentials import CredentialService
from warden.services.ephemeral import EphemeralTokenIssuer
from warden.services.session_manager import SessionManager
from warden.services.throttle import LOGIN_FAILURES, RESET_FAILURES, ThrottleGuard
from warden.services.token_ledger import TokenLedger
from warden.storage.memory import MemoryTokenLedgerStore, MemoryUserRepository

TEST_SECRET = "test-secret-not-for-production-use-0123456789"
PASSWORD = "correct-horse-battery"
CLIENT = ClientInfo(ip_address="203.0.113.7", user_agent="pytest")


class FakeClock:
    """Callable returning a settable 'now'. Starts at the real current time
    so PyJWT's own exp checks agree with the services."""

    def __init__(self):
        self.now = datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def monotonic(self) -> float:
        return self.now.timestamp()

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@dataclass
class Core:
    clock: FakeClock
    cache: MemoryCacheStore
    keys: CacheKeys
    users: MemoryUserRepository
    store: MemoryTokenLedgerStore
    events: MemoryEventBus
    signer: JwtSigner
    hasher: BcryptHasher
    ledger: TokenLedger
    throttle: ThrottleGuard
    issuer: EphemeralTokenIssuer
    sessions: SessionManager
    credentials: CredentialService


def make_core(
    *,
    cache_cls=MemoryCacheStore,
    store_cls=MemoryTokenLedgerStore,
    events=None,
    check_password_first: bool = True,
    timeout: float = 0.5,
) -> Core:
    clock = FakeClock()
    cache = cache_cls(clock=clock.monotonic)
    keys = CacheKeys("test")
    users = MemoryUserRepository(clock=clock)
    store = store_cls(clock=clock)
    events = events or MemoryEventBus()
    signer = JwtSigner(TEST_SECRET, issuer="warden-test")
    hasher = BcryptHasher(rounds=4)

    ledger = TokenLedger(
        store, cache, keys, signer,
        access_ttl=timedelta(minutes=15),
        refresh_ttl=timedelta(days=7),
        timeout=timeout,
        clock=clock,
    )
    throttle = ThrottleGuard(
        cache, keys, max_attempts=5, window=timedelta(minutes=15),
        namespace=LOGIN_FAILURES, timeout=timeout,
    )
    reset_throttle = ThrottleGuard(
        cache, keys, max_attempts=5, window=timedelta(minutes=15),
        namespace=RESET_FAILURES, timeout=timeout,
    )
    issuer = EphemeralTokenIssuer(
        cache, keys, signer, random.Random(1234),
        verification_ttl=timedelta(hours=24),
        reset_ttl=timedelta(minutes=10),
        timeout=timeout,
    )
    sessions = SessionManager(
        users, ledger, throttle, hasher, signer, events,
        check_password_first=check_password_first,
        timeout=timeout,
        clock=clock,
    )
    credentials = CredentialService(
        users, ledger, issuer, reset_throttle, hasher, events,
        frontend_base_url="https://app.example.com",
        timeout=timeout,
    )
    return Core(
        clock=clock, cache=cache, keys=keys, users=users, store=store,
        events=events, signer=signer, hasher=hasher, ledger=ledger,
        throttle=throttle, issuer=issuer, sessions=sessions,
        credentials=credentials,
    )


async def register_verified(
    core: Core, username: str = "alice", email: str = "alice@example.com",
    password: str = PASSWORD,
) -> Principal:
    """Register, then flip email_verified directly (login requires it)."""
    await core.sessions.register(username, email, password, CLIENT)
    principal = await core.users.find_by_email(email)
    principal.verify_email()
    return await core.users.save(principal)


@pytest.fixture()
def core() -> Core:
    return make_core()


# ─── HTTP ────────────────────────────────────────────────


@pytest.fixture()
def test_settings() -> Settings:
    return Settings(
        storage_backend="memory",
        jwt_secret=TEST_SECRET,
        bcrypt_rounds=4,
        store_timeout_seconds=0.5,
        frontend_base_url="https://app.example.com",
    )


@pytest.fixture()
def container(test_settings) -> ServiceContainer:
    return ServiceContainer(
        test_settings,
        MemoryCacheStore(),
        MemoryEventBus(),
        rng=random.Random(1234),
    )


@pytest_asyncio.fixture()
async def client(test_settings, container):
    """HTTP client against an app wired to the memory container."""
    app = create_app(settings=test_settings, container=container)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
