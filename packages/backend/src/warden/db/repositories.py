"""SQLAlchemy adapters for the principal store and the token ledger.

Learn: each adapter wraps one AsyncSession and translates ORM rows
(db.models) to domain objects (domain.models). Every write commits
immediately; the services never hold a transaction open across calls.

Two properties live in SQL rather than in Python:
- Uniqueness of live emails/usernames — the partial unique indexes turn a
  registration race into an IntegrityError, which becomes DuplicateIdentity.
- Exactly-once revocation — revoke_if_active is a conditional UPDATE, and
  only the statement that actually changed the row sees rowcount == 1.
"""

import uuid
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from warden.db.models import IssuedToken, User
from warden.domain.models import (
    Principal,
    Role,
    Token,
    TokenType,
    normalize_email,
    utcnow,
)
from warden.errors import DuplicateIdentity


# ─── Row ↔ domain mapping ────────────────────────────────


def _to_principal(row: User) -> Principal:
    return Principal(
        id=row.id,
        username=row.username,
        email=row.email,
        password_hash=row.password_hash,
        roles={Role(r) for r in row.roles or []},
        active=row.active,
        email_verified=row.email_verified,
        deleted_at=row.deleted_at,
        created_at=row.created_at,
    )


def _apply_principal(row: User, principal: Principal) -> None:
    row.username = principal.username
    row.email = principal.email
    row.password_hash = principal.password_hash
    row.roles = sorted(r.value for r in principal.roles)
    row.active = principal.active
    row.email_verified = principal.email_verified
    row.deleted_at = principal.deleted_at


def _to_token(row: IssuedToken) -> Token:
    return Token(
        value=row.token,
        token_type=TokenType(row.token_type),
        owner_id=row.user_id,
        issued_at=row.issued_at,
        expires_at=row.expires_at,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        active=row.active,
    )


def _to_row(token: Token) -> IssuedToken:
    return IssuedToken(
        token=token.value,
        token_type=token.token_type.value,
        user_id=token.owner_id,
        issued_at=token.issued_at,
        expires_at=token.expires_at,
        ip_address=token.ip_address,
        user_agent=token.user_agent,
        active=token.active,
    )


# ─── Principals ──────────────────────────────────────────


class SqlUserRepository:
    def __init__(self, session: AsyncSession):
        self.db = session

    async def _live_row(self, *criteria) -> Optional[User]:
        q = select(User).where(User.deleted_at.is_(None), *criteria)
        result = await self.db.execute(q)
        return result.scalars().first()

    async def find_by_id(self, user_id: uuid.UUID) -> Optional[Principal]:
        row = await self._live_row(User.id == user_id)
        return _to_principal(row) if row else None

    async def find_by_email(self, email: str) -> Optional[Principal]:
        row = await self._live_row(User.email == normalize_email(email))
        return _to_principal(row) if row else None

    async def find_by_username(self, username: str) -> Optional[Principal]:
        row = await self._live_row(User.username == username)
        return _to_principal(row) if row else None

    async def exists_by_email(self, email: str) -> bool:
        return await self._count(User.email == normalize_email(email)) > 0

    async def exists_by_username(self, username: str) -> bool:
        return await self._count(User.username == username) > 0

    async def _count(self, criterion) -> int:
        q = select(func.count()).select_from(User).where(
            User.deleted_at.is_(None), criterion
        )
        result = await self.db.execute(q)
        return result.scalar_one()

    async def save(self, principal: Principal) -> Principal:
        """Insert or update, keyed on principal.id."""
        row = await self.db.get(User, principal.id)
        if row is None:
            row = User(id=principal.id, created_at=principal.created_at)
            self.db.add(row)
        _apply_principal(row, principal)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise DuplicateIdentity() from e
        return _to_principal(row)

    async def soft_delete(self, user_id: uuid.UUID) -> bool:
        stmt = (
            update(User)
            .where(User.id == user_id, User.deleted_at.is_(None))
            .values(deleted_at=utcnow(), active=False)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount == 1


# ─── Token ledger ────────────────────────────────────────


class SqlTokenLedgerStore:
    """Append-only: rows are inserted, and `active` only ever goes to false."""

    def __init__(self, session: AsyncSession):
        self.db = session

    async def find_by_value(self, value: str) -> Optional[Token]:
        q = select(IssuedToken).where(IssuedToken.token == value)
        result = await self.db.execute(q)
        row = result.scalars().first()
        return _to_token(row) if row else None

    async def find_active_by_owner(self, owner_id: uuid.UUID) -> list[Token]:
        q = select(IssuedToken).where(
            IssuedToken.user_id == owner_id,
            IssuedToken.active.is_(True),
            IssuedToken.expires_at > utcnow(),
        )
        result = await self.db.execute(q)
        return [_to_token(row) for row in result.scalars().all()]

    async def save(self, token: Token) -> None:
        await self.save_all([token])

    async def save_all(self, tokens: list[Token]) -> None:
        self.db.add_all([_to_row(t) for t in tokens])
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise

    async def revoke_if_active(self, value: str) -> bool:
        stmt = (
            update(IssuedToken)
            .where(IssuedToken.token == value, IssuedToken.active.is_(True))
            .values(active=False)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount == 1
