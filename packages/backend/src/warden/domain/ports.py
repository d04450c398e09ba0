"""Interfaces the core consumes from its collaborators.

Learn: the services only depend on these Protocols. Production wiring
plugs in SQLAlchemy repositories and a Redis cache/event bus; tests and
`WARDEN_STORAGE_BACKEND=memory` plug in the in-memory adapters. Any
object with matching async methods satisfies a Protocol — no base class.
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Any, Optional, Protocol

from warden.domain.models import Principal, Token


class UserRepository(Protocol):
    """Durable principal storage. Lookups ignore soft-deleted principals."""

    async def find_by_id(self, user_id: uuid.UUID) -> Optional[Principal]: ...

    async def find_by_email(self, email: str) -> Optional[Principal]: ...

    async def find_by_username(self, username: str) -> Optional[Principal]: ...

    async def exists_by_email(self, email: str) -> bool: ...

    async def exists_by_username(self, username: str) -> bool: ...

    async def save(self, principal: Principal) -> Principal:
        """Insert or update. Raises DuplicateIdentity on a uniqueness race."""
        ...

    async def soft_delete(self, user_id: uuid.UUID) -> bool: ...


class TokenLedgerStore(Protocol):
    """Append-only record of issued tokens."""

    async def find_by_value(self, value: str) -> Optional[Token]: ...

    async def find_active_by_owner(self, owner_id: uuid.UUID) -> list[Token]:
        """Tokens with active=True and not yet expired."""
        ...

    async def save(self, token: Token) -> None:
        """Append a newly issued token."""
        ...

    async def save_all(self, tokens: list[Token]) -> None: ...

    async def revoke_if_active(self, value: str) -> bool:
        """Atomically flip active True -> False.

        Returns True only for the single caller that performed the flip.
        """
        ...


class CacheStore(Protocol):
    """TTL key/value store shared by every service instance."""

    async def set(self, key: str, value: str, ttl: Optional[timedelta] = None) -> None: ...

    async def get(self, key: str) -> Optional[str]: ...

    async def delete(self, key: str) -> int:
        """Returns the number of keys removed (0 or 1)."""
        ...

    async def increment(self, key: str) -> int: ...

    async def expire(self, key: str, ttl: timedelta) -> bool: ...

    async def add_to_set(self, key: str, member: str) -> None: ...

    async def remove_from_set(self, key: str, member: str) -> None: ...

    async def members_of(self, key: str) -> set[str]: ...

    async def increment_window(self, key: str, ttl: timedelta) -> int:
        """Increment a counter; a newly created counter gets `ttl` in the same step."""
        ...

    async def set_if_absent(self, key: str, value: str, ttl: timedelta) -> bool:
        """SET NX with a TTL. True only for the caller that created the key."""
        ...

    async def delete_if_equals(self, key: str, value: str) -> int:
        """Delete `key` only while it still holds `value`."""
        ...


class EventBus(Protocol):
    """Fire-and-forget notifications, ordered per key."""

    async def publish(self, topic: str, key: str, payload: dict[str, Any]) -> None: ...
