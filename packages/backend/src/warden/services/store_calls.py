"""Bounded calls into the ledger, principal store, cache and event bus.

Learn: every call the services make to a backing store goes through one of
two wrappers, and both bound it with asyncio.wait_for:

- authoritative(): the operation cannot succeed without this result
  (ledger writes, principal lookups, throttle counters, single-use records).
  A timeout or backend error becomes DependencyFailure and propagates.
- best_effort(): the result is a mirror or a notification (cache mirror,
  cache eviction, throttle reset, event publish). Failures are logged and
  the caller continues.

Failures the store raises on purpose (DuplicateIdentity) pass through
authoritative() untouched.
"""

import asyncio
from typing import Awaitable, Optional, TypeVar

import structlog

from warden.errors import DependencyFailure, WardenError

logger = structlog.get_logger()

T = TypeVar("T")


async def authoritative(call: Awaitable[T], timeout: float, operation: str) -> T:
    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except WardenError:
        raise
    except asyncio.TimeoutError as e:
        logger.error("store.timeout", operation=operation, timeout=timeout)
        raise DependencyFailure(f"{operation} timed out") from e
    except Exception as e:
        logger.error("store.failed", operation=operation, error=str(e))
        raise DependencyFailure(f"{operation} failed") from e


async def best_effort(
    call: Awaitable[T], timeout: float, operation: str
) -> Optional[T]:
    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except Exception as e:
        logger.warning(
            "store.best_effort_failed",
            operation=operation,
            error=str(e) or type(e).__name__,
        )
        return None
