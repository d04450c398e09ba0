"""Domain objects — Principal and Token.

Learn: these are plain dataclasses, independent of SQLAlchemy and Redis.
The storage adapters translate to and from them, so the services (and
their tests) never touch ORM rows or cache payloads.

The one invariant worth remembering: a Token's `active` flag only ever
moves from True to False. There is no un-revoke.
"""

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class Role(str, enum.Enum):
    USER = "ROLE_USER"
    ADMIN = "ROLE_ADMIN"


class TokenType(str, enum.Enum):
    ACCESS = "ACCESS"
    REFRESH = "REFRESH"


# Purpose tags for ephemeral tokens (carried in the "type" claim)
EMAIL_VERIFICATION = "email-verification"


@dataclass
class ClientInfo:
    """Where a token was requested from."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass
class Principal:
    """An account that can authenticate."""

    username: str
    email: str
    password_hash: str
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    roles: set[Role] = field(default_factory=lambda: {Role.USER})
    active: bool = True
    email_verified: bool = False
    deleted_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)

    @classmethod
    def register(cls, username: str, email: str, password_hash: str) -> "Principal":
        return cls(
            username=username,
            email=normalize_email(email),
            password_hash=password_hash,
        )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def verify_email(self) -> None:
        self.email_verified = True

    def change_email(self, new_email: str) -> None:
        """A new address has to be verified again."""
        self.email = normalize_email(new_email)
        self.email_verified = False

    def change_username(self, new_username: str) -> None:
        self.username = new_username

    def change_password(self, new_hash: str) -> None:
        self.password_hash = new_hash

    def deactivate(self) -> None:
        self.active = False

    def soft_delete(self, at: Optional[datetime] = None) -> None:
        self.deleted_at = at or utcnow()
        self.active = False


@dataclass
class Token:
    """An issued access or refresh token, as recorded in the ledger."""

    value: str
    token_type: TokenType
    owner_id: uuid.UUID
    issued_at: datetime
    expires_at: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    active: bool = True

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        return self.active and not self.is_expired(now)

    def revoke(self) -> None:
        self.active = False


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
