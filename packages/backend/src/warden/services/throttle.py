"""Throttle guard — failed-attempt counter with a fixed window.

Learn: one counter per (namespace, identity), e.g. login-fail:bob@x.io.
The first failure creates the counter AND its TTL in one atomic step
(CacheStore.increment_window), so a crash between "INCR" and "EXPIRE" can
never leave a counter that locks the account forever. Later failures in
the same window increment without extending it.

    check_allowed  → TooManyAttempts once counter >= max_attempts
    record_failure → counter + 1
    reset          → counter gone (successful login)

The counter lives in the shared cache, so every service instance sees the
same lockout state.
"""

from datetime import timedelta

import structlog

from warden.cache.keys import CacheKeys
from warden.domain.ports import CacheStore
from warden.errors import TooManyAttempts
from warden.services.store_calls import authoritative, best_effort

logger = structlog.get_logger()

LOGIN_FAILURES = "login-fail"
RESET_FAILURES = "reset-fail"


class ThrottleGuard:
    def __init__(
        self,
        cache: CacheStore,
        keys: CacheKeys,
        max_attempts: int = 5,
        window: timedelta = timedelta(minutes=15),
        namespace: str = LOGIN_FAILURES,
        timeout: float = 2.0,
    ):
        self.cache = cache
        self.keys = keys
        self.max_attempts = max_attempts
        self.window = window
        self.namespace = namespace
        self.timeout = timeout

    def _key(self, identity: str) -> str:
        return self.keys.failures(self.namespace, identity)

    async def attempts(self, identity: str) -> int:
        raw = await authoritative(
            self.cache.get(self._key(identity)), self.timeout, "throttle.get"
        )
        return int(raw) if raw else 0

    async def is_blocked(self, identity: str) -> bool:
        return await self.attempts(identity) >= self.max_attempts

    async def check_allowed(self, identity: str) -> None:
        count = await self.attempts(identity)
        if count >= self.max_attempts:
            logger.warning(
                "throttle.blocked",
                namespace=self.namespace,
                identity=identity,
                attempts=count,
            )
            raise TooManyAttempts()

    async def record_failure(self, identity: str) -> int:
        count = await authoritative(
            self.cache.increment_window(self._key(identity), self.window),
            self.timeout,
            "throttle.increment",
        )
        logger.info(
            "throttle.failure_recorded",
            namespace=self.namespace,
            identity=identity,
            attempts=count,
        )
        return count

    async def reset(self, identity: str) -> None:
        await best_effort(
            self.cache.delete(self._key(identity)), self.timeout, "throttle.reset"
        )
