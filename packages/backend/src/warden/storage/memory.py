"""In-memory principal repository and token ledger.

Learn: used with WARDEN_STORAGE_BACKEND=memory (local demos) and by the
test-suite. They honor the same contracts as the SQLAlchemy adapters:

- lookups skip soft-deleted principals,
- live emails/usernames are unique (DuplicateIdentity on a clash),
- the ledger is append-only and revoke_if_active is an atomic
  check-and-set, so exactly one concurrent caller wins a rotation.

Objects are copied on the way in and out; callers mutating a Principal
they fetched change nothing until they save() it.
"""

import copy
import threading
import uuid
from datetime import datetime
from typing import Callable, Optional

from warden.domain.models import Principal, Token, normalize_email, utcnow
from warden.errors import DuplicateIdentity


class MemoryUserRepository:
    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._users: dict[uuid.UUID, Principal] = {}
        self._lock = threading.RLock()

    def _live(self):
        return (u for u in self._users.values() if not u.is_deleted)

    async def find_by_id(self, user_id: uuid.UUID) -> Optional[Principal]:
        with self._lock:
            user = self._users.get(user_id)
            if user is None or user.is_deleted:
                return None
            return copy.deepcopy(user)

    async def find_by_email(self, email: str) -> Optional[Principal]:
        email = normalize_email(email)
        with self._lock:
            for user in self._live():
                if user.email == email:
                    return copy.deepcopy(user)
        return None

    async def find_by_username(self, username: str) -> Optional[Principal]:
        with self._lock:
            for user in self._live():
                if user.username == username:
                    return copy.deepcopy(user)
        return None

    async def exists_by_email(self, email: str) -> bool:
        return await self.find_by_email(email) is not None

    async def exists_by_username(self, username: str) -> bool:
        return await self.find_by_username(username) is not None

    async def save(self, principal: Principal) -> Principal:
        with self._lock:
            if not principal.is_deleted:
                for other in self._live():
                    if other.id == principal.id:
                        continue
                    if other.email == principal.email or other.username == principal.username:
                        raise DuplicateIdentity()
            self._users[principal.id] = copy.deepcopy(principal)
        return principal

    async def soft_delete(self, user_id: uuid.UUID) -> bool:
        with self._lock:
            user = self._users.get(user_id)
            if user is None or user.is_deleted:
                return False
            user.soft_delete(self._clock())
            return True


class MemoryTokenLedgerStore:
    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._tokens: dict[str, Token] = {}
        self._lock = threading.RLock()

    async def find_by_value(self, value: str) -> Optional[Token]:
        with self._lock:
            token = self._tokens.get(value)
            return copy.copy(token) if token else None

    async def find_active_by_owner(self, owner_id: uuid.UUID) -> list[Token]:
        now = self._clock()
        with self._lock:
            return [
                copy.copy(t)
                for t in self._tokens.values()
                if t.owner_id == owner_id and t.is_valid(now)
            ]

    async def save(self, token: Token) -> None:
        await self.save_all([token])

    async def save_all(self, tokens: list[Token]) -> None:
        with self._lock:
            for token in tokens:
                if token.value in self._tokens:
                    raise ValueError("Token already recorded in ledger")
            for token in tokens:
                self._tokens[token.value] = copy.copy(token)

    async def revoke_if_active(self, value: str) -> bool:
        with self._lock:
            token = self._tokens.get(value)
            if token is None or not token.active:
                return False
            token.revoke()
            return True

    def all_tokens(self) -> list[Token]:
        """Full audit trail, revoked tokens included."""
        with self._lock:
            return [copy.copy(t) for t in self._tokens.values()]
