"""Credential service — changes to who a principal is and how they prove it.

Learn: every mutation here that touches identity or proof (password,
email, username, deletion, password reset) ends in
TokenLedger.revoke_sessions, so a stolen session cannot outlive a
credential change.

Flows that start from an unauthenticated caller (verification request,
forgot password) answer the same way whether or not the email exists;
an unknown email is logged and otherwise ignored.
"""

import uuid
from typing import Optional

import structlog

from warden.auth.password import BcryptHasher
from warden.domain.models import Principal, normalize_email
from warden.domain.ports import EventBus, UserRepository
from warden.errors import (
    DuplicateIdentity,
    InvalidCredentials,
    InvalidOrExpiredToken,
    PrincipalNotFound,
)
from warden.events.types import (
    EMAIL_VERIFICATION_REQUESTED,
    PASSWORD_RESET_REQUESTED,
    USER_DELETED,
)
from warden.services.ephemeral import EphemeralTokenIssuer
from warden.services.store_calls import authoritative, best_effort
from warden.services.throttle import ThrottleGuard
from warden.services.token_ledger import TokenLedger

logger = structlog.get_logger()


class CredentialService:
    def __init__(
        self,
        users: UserRepository,
        ledger: TokenLedger,
        issuer: EphemeralTokenIssuer,
        reset_throttle: ThrottleGuard,
        hasher: BcryptHasher,
        events: EventBus,
        frontend_base_url: str = "http://localhost:5173",
        timeout: float = 2.0,
    ):
        self.users = users
        self.ledger = ledger
        self.issuer = issuer
        self.reset_throttle = reset_throttle
        self.hasher = hasher
        self.events = events
        self.frontend_base_url = frontend_base_url.rstrip("/")
        self.timeout = timeout

    # ─── Helpers ─────────────────────────────────────────

    async def _get(self, user_id: uuid.UUID) -> Principal:
        principal = await authoritative(
            self.users.find_by_id(user_id), self.timeout, "users.find"
        )
        if principal is None:
            raise PrincipalNotFound()
        return principal

    async def _find_by_email(self, email: str) -> Optional[Principal]:
        return await authoritative(
            self.users.find_by_email(email), self.timeout, "users.find"
        )

    def _require_password(self, principal: Principal, raw_password: str) -> None:
        if not self.hasher.verify(raw_password, principal.password_hash):
            raise InvalidCredentials("Current password is incorrect")

    async def _save(self, principal: Principal) -> Principal:
        return await authoritative(
            self.users.save(principal), self.timeout, "users.save"
        )

    async def _publish(self, topic: str, principal: Principal, payload: dict) -> None:
        await best_effort(
            self.events.publish(topic, str(principal.id), payload),
            self.timeout,
            "events.publish",
        )

    # ─── Change credential ───────────────────────────────

    async def change_password(
        self, user_id: uuid.UUID, current_password: str, new_password: str
    ) -> None:
        principal = await self._get(user_id)
        self._require_password(principal, current_password)
        principal.change_password(self.hasher.hash(new_password))
        await self._save(principal)
        await self.ledger.revoke_sessions(principal.id)
        logger.info("credentials.password_changed", user_id=str(user_id))

    async def change_email(
        self, user_id: uuid.UUID, current_password: str, new_email: str
    ) -> Principal:
        principal = await self._get(user_id)
        self._require_password(principal, current_password)
        new_email = normalize_email(new_email)
        if new_email != principal.email and await authoritative(
            self.users.exists_by_email(new_email), self.timeout, "users.exists"
        ):
            raise DuplicateIdentity("Email is already in use")
        principal.change_email(new_email)
        principal = await self._save(principal)
        await self.ledger.revoke_sessions(principal.id)
        logger.info("credentials.email_changed", user_id=str(user_id))
        return principal

    async def change_username(
        self, user_id: uuid.UUID, current_password: str, new_username: str
    ) -> Principal:
        principal = await self._get(user_id)
        self._require_password(principal, current_password)
        if new_username != principal.username and await authoritative(
            self.users.exists_by_username(new_username), self.timeout, "users.exists"
        ):
            raise DuplicateIdentity("Username is already in use")
        principal.change_username(new_username)
        principal = await self._save(principal)
        await self.ledger.revoke_sessions(principal.id)
        logger.info("credentials.username_changed", user_id=str(user_id))
        return principal

    # ─── Email verification ──────────────────────────────

    async def request_email_verification(self, email: str) -> None:
        principal = await self._find_by_email(email)
        if principal is None or principal.email_verified:
            logger.info(
                "credentials.verification_skipped",
                email=normalize_email(email),
                reason="unknown" if principal is None else "already_verified",
            )
            return
        token = await self.issuer.issue_email_verification(principal)
        await self._publish(
            EMAIL_VERIFICATION_REQUESTED,
            principal,
            {
                "email": principal.email,
                "verification_link": f"{self.frontend_base_url}/verify-email?token={token}",
            },
        )

    async def verify_email(self, token: str) -> Principal:
        user_id, email = await self.issuer.consume_email_verification(token)
        principal = await authoritative(
            self.users.find_by_id(user_id), self.timeout, "users.find"
        )
        if principal is None:
            raise InvalidOrExpiredToken()
        if principal.email != email:
            # Link was sent before an email change; it proves the old address
            logger.info("credentials.verification_stale", user_id=str(user_id))
            raise InvalidOrExpiredToken()
        principal.verify_email()
        principal = await self._save(principal)
        logger.info("credentials.email_verified", user_id=str(user_id))
        return principal

    # ─── Password reset ──────────────────────────────────

    async def forgot_password(self, email: str) -> None:
        principal = await self._find_by_email(email)
        if principal is None:
            logger.info(
                "credentials.reset_skipped", email=normalize_email(email), reason="unknown"
            )
            return
        code = await self.issuer.issue_reset_code(principal)
        await self.reset_throttle.reset(principal.email)
        await self._publish(
            PASSWORD_RESET_REQUESTED,
            principal,
            {"email": principal.email, "code": code},
        )

    async def reset_password(self, email: str, code: str, new_password: str) -> None:
        identity = normalize_email(email)
        principal = await self._find_by_email(identity)
        if principal is None:
            raise InvalidOrExpiredToken()

        try:
            await self.issuer.consume_reset_code(principal, code)
        except InvalidOrExpiredToken:
            attempts = await self.reset_throttle.record_failure(identity)
            if attempts >= self.reset_throttle.max_attempts:
                # Too many guesses: the pending code is burned
                await self.issuer.discard_reset_code(principal)
                logger.warning("credentials.reset_code_discarded", user_id=str(principal.id))
            raise

        principal.change_password(self.hasher.hash(new_password))
        await self._save(principal)
        await self.reset_throttle.reset(identity)
        await self.ledger.revoke_sessions(principal.id)
        logger.info("credentials.password_reset", user_id=str(principal.id))

    # ─── Deletion ────────────────────────────────────────

    async def delete_account(self, user_id: uuid.UUID) -> None:
        principal = await self._get(user_id)
        deleted = await authoritative(
            self.users.soft_delete(user_id), self.timeout, "users.soft_delete"
        )
        if not deleted:
            raise PrincipalNotFound()
        await self.ledger.revoke_sessions(user_id)
        await self._publish(
            USER_DELETED,
            principal,
            {"user_id": str(user_id), "email": principal.email},
        )
        logger.info("credentials.account_deleted", user_id=str(user_id))
