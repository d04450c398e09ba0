"""Session manager — register, login, refresh, logout, authenticate.

Learn: the state machine of a session, on top of TokenLedger and
ThrottleGuard. The HTTP layer calls these with already-validated input and
turns the raised WardenError into a status code.

    register ─► pair issued
    login    ─► throttle check ─► password ─► account state ─► [lock] revoke old ─► pair issued
    refresh  ─► signature ─► ledger lookup ─► [lock] revoke_if_active (one winner) ─► pair issued
    logout   ─► ledger lookup ─► revoke

Refresh rotation is exactly-once: when two requests present the same
refresh token, the ledger's conditional update lets only one of them flip
it, and the loser gets InvalidToken.
"""

import uuid
from datetime import datetime
from typing import Callable, Optional

import structlog

from warden.auth.jwt import JwtSigner, TokenError, TokenExpiredError
from warden.auth.password import BcryptHasher
from warden.domain.models import (
    ClientInfo,
    Principal,
    TokenPair,
    TokenType,
    normalize_email,
    utcnow,
)
from warden.domain.ports import EventBus, UserRepository
from warden.errors import (
    DuplicateIdentity,
    EmailNotVerified,
    InactiveAccount,
    InvalidCredentials,
    InvalidToken,
    TokenExpired,
)
from warden.events.types import USER_REGISTERED
from warden.services.store_calls import authoritative, best_effort
from warden.services.throttle import ThrottleGuard
from warden.services.token_ledger import TokenLedger

logger = structlog.get_logger()


def bearer_token(authorization: Optional[str]) -> str:
    """Pull the token out of an `Authorization: Bearer <token>` header."""
    if not authorization:
        raise InvalidToken("Missing bearer token")
    scheme, _, token = authorization.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token or " " in token:
        raise InvalidToken("Malformed bearer token")
    return token


class SessionManager:
    def __init__(
        self,
        users: UserRepository,
        ledger: TokenLedger,
        throttle: ThrottleGuard,
        hasher: BcryptHasher,
        signer: JwtSigner,
        events: EventBus,
        check_password_first: bool = True,
        timeout: float = 2.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.users = users
        self.ledger = ledger
        self.throttle = throttle
        self.hasher = hasher
        self.signer = signer
        self.events = events
        self.check_password_first = check_password_first
        self.timeout = timeout
        self._clock = clock

    # ─── Register ────────────────────────────────────────

    async def register(
        self,
        username: str,
        email: str,
        raw_password: str,
        client: Optional[ClientInfo] = None,
    ) -> TokenPair:
        email = normalize_email(email)
        if await authoritative(
            self.users.exists_by_email(email), self.timeout, "users.exists"
        ) or await authoritative(
            self.users.exists_by_username(username), self.timeout, "users.exists"
        ):
            logger.info("auth.register_duplicate", email=email, username=username)
            raise DuplicateIdentity()

        principal = Principal.register(
            username, email, self.hasher.hash(raw_password)
        )
        # A concurrent registration that slipped past the check above is
        # caught by the store's unique constraint and raised as DuplicateIdentity.
        principal = await authoritative(
            self.users.save(principal), self.timeout, "users.save"
        )
        pair = await self.ledger.issue_pair(principal, client)

        await best_effort(
            self.events.publish(
                USER_REGISTERED,
                str(principal.id),
                {
                    "user_id": str(principal.id),
                    "username": principal.username,
                    "email": principal.email,
                },
            ),
            self.timeout,
            "events.publish",
        )
        logger.info("auth.registered", user_id=str(principal.id), email=email)
        return pair

    # ─── Login ───────────────────────────────────────────

    def _check_account_state(self, principal: Principal) -> None:
        if not principal.active:
            raise InactiveAccount()
        if not principal.email_verified:
            raise EmailNotVerified()

    async def _check_password(
        self, principal: Principal, raw_password: str, identity: str
    ) -> None:
        if not self.hasher.verify(raw_password, principal.password_hash):
            await self.throttle.record_failure(identity)
            logger.info("auth.login_failed", email=identity, reason="bad_password")
            raise InvalidCredentials()

    async def login(
        self, email: str, raw_password: str, client: Optional[ClientInfo] = None
    ) -> TokenPair:
        identity = normalize_email(email)
        # Locked out: reject before any password comparison
        await self.throttle.check_allowed(identity)

        principal = await authoritative(
            self.users.find_by_email(identity), self.timeout, "users.find"
        )
        if principal is None:
            self.hasher.dummy_verify(raw_password)
            await self.throttle.record_failure(identity)
            logger.info("auth.login_failed", email=identity, reason="unknown_email")
            raise InvalidCredentials()

        if self.check_password_first:
            await self._check_password(principal, raw_password, identity)
            self._check_account_state(principal)
        else:
            self._check_account_state(principal)
            await self._check_password(principal, raw_password, identity)

        await self.throttle.reset(identity)
        async with self.ledger.session_lock(principal.id):
            # A credential change may have landed while we waited for the lock
            current = await authoritative(
                self.users.find_by_id(principal.id), self.timeout, "users.find"
            )
            if (
                current is None
                or not current.active
                or current.password_hash != principal.password_hash
            ):
                raise InvalidCredentials()
            await self.ledger.revoke_all(principal.id)
            pair = await self.ledger.issue_pair(current, client)
        logger.info("auth.login_succeeded", user_id=str(principal.id))
        return pair

    # ─── Refresh ─────────────────────────────────────────

    async def refresh(
        self, refresh_token: str, client: Optional[ClientInfo] = None
    ) -> TokenPair:
        try:
            # Expiry is judged against the ledger record below
            claims = self.signer.verify(refresh_token, verify_exp=False)
        except TokenError as e:
            raise InvalidToken() from e
        if claims.get("type") != TokenType.REFRESH.value:
            raise InvalidToken()

        token = await self.ledger.find(refresh_token)
        if (
            token is None
            or token.token_type is not TokenType.REFRESH
            or not token.active
            or str(token.owner_id) != claims.get("sub")
        ):
            raise InvalidToken()
        if token.is_expired(self._clock()):
            raise TokenExpired()

        async with self.ledger.session_lock(token.owner_id):
            if not await self.ledger.revoke(token):
                logger.warning("auth.refresh_replayed", user_id=str(token.owner_id))
                raise InvalidToken()

            principal = await authoritative(
                self.users.find_by_id(token.owner_id), self.timeout, "users.find"
            )
            if principal is None or not principal.active:
                raise InvalidToken()

            pair = await self.ledger.issue_pair(principal, client)
        logger.info("auth.refreshed", user_id=str(principal.id))
        return pair

    # ─── Logout ──────────────────────────────────────────

    async def logout(self, authorization: Optional[str]) -> None:
        """Revoke the presented token. A second logout with it fails."""
        value = bearer_token(authorization)
        token = await self.ledger.find(value)
        if token is None:
            raise InvalidToken()
        if not await self.ledger.revoke(token):
            raise InvalidToken("Token already revoked")
        logger.info("auth.logged_out", user_id=str(token.owner_id))

    # ─── Authenticate ────────────────────────────────────

    async def authenticate(self, access_token: str) -> Principal:
        """Resolve an access token to its (live, active) principal."""
        try:
            claims = self.signer.verify(access_token)
        except TokenExpiredError as e:
            raise TokenExpired() from e
        except TokenError as e:
            raise InvalidToken() from e
        if claims.get("type") != TokenType.ACCESS.value:
            raise InvalidToken()
        if not await self.ledger.is_active(access_token):
            raise InvalidToken()

        try:
            user_id = uuid.UUID(claims["sub"])
        except (KeyError, ValueError, TypeError) as e:
            raise InvalidToken() from e
        principal = await authoritative(
            self.users.find_by_id(user_id), self.timeout, "users.find"
        )
        if principal is None or not principal.active:
            raise InvalidToken()
        return principal
