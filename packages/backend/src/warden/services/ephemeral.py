"""Ephemeral tokens — email verification links and password reset codes.

Learn: a short-lived, purpose-bound credential is only as single-use as
its index entry. The signature of a verification link stays valid for a
day; what makes the link work exactly once is the cache record next to it:

    {prefix}:email-verification:{user_id}:{token}   the link's record
    {prefix}:password-reset:{user_id}               the current 6-digit code

Consuming deletes the record, and only the caller whose delete actually
removed it (count == 1) succeeds. A replay, an expired record, a wrong
purpose tag, or a bad signature all end as InvalidOrExpiredToken.
"""

import random
import secrets
import uuid
from datetime import timedelta
from typing import NamedTuple, Optional

import structlog

from warden.auth.jwt import JwtSigner, TokenError
from warden.cache.keys import CacheKeys
from warden.domain.models import EMAIL_VERIFICATION, Principal
from warden.domain.ports import CacheStore
from warden.errors import InvalidOrExpiredToken
from warden.services.store_calls import authoritative

logger = structlog.get_logger()

RESET_CODE_DIGITS = 6


class VerifiedLink(NamedTuple):
    user_id: uuid.UUID
    email: str


class EphemeralTokenIssuer:
    def __init__(
        self,
        cache: CacheStore,
        keys: CacheKeys,
        signer: JwtSigner,
        rng: random.Random,
        verification_ttl: timedelta = timedelta(hours=24),
        reset_ttl: timedelta = timedelta(minutes=10),
        timeout: float = 2.0,
    ):
        # rng must be a CSPRNG (secrets.SystemRandom) outside tests
        self.cache = cache
        self.keys = keys
        self.signer = signer
        self.rng = rng
        self.verification_ttl = verification_ttl
        self.reset_ttl = reset_ttl
        self.timeout = timeout

    # ─── Email verification ──────────────────────────────

    async def issue_email_verification(self, principal: Principal) -> str:
        token = self.signer.sign(
            {
                "sub": principal.email,
                "user_id": str(principal.id),
                "type": EMAIL_VERIFICATION,
            },
            self.verification_ttl,
        )
        await authoritative(
            self.cache.set(
                self.keys.email_verification(principal.id, token),
                token,
                self.verification_ttl,
            ),
            self.timeout,
            "ephemeral.store",
        )
        logger.info("ephemeral.verification_issued", user_id=str(principal.id))
        return token

    async def consume_email_verification(self, token: str) -> VerifiedLink:
        """Single-use check of a verification link.

        Returns the user id and the address the link was sent to; the caller
        decides whether that address is still the principal's.
        """
        try:
            claims = self.signer.verify(token)
            if claims.get("type") != EMAIL_VERIFICATION:
                raise InvalidOrExpiredToken()
            user_id = uuid.UUID(str(claims.get("user_id")))
            email = str(claims["sub"])
        except (TokenError, ValueError, KeyError) as e:
            raise InvalidOrExpiredToken() from e

        removed = await authoritative(
            self.cache.delete(self.keys.email_verification(user_id, token)),
            self.timeout,
            "ephemeral.consume",
        )
        if removed != 1:
            logger.info("ephemeral.verification_rejected", user_id=str(user_id))
            raise InvalidOrExpiredToken()
        return VerifiedLink(user_id, email)

    # ─── Password reset codes ────────────────────────────

    def _new_code(self) -> str:
        return "".join(
            str(self.rng.randrange(10)) for _ in range(RESET_CODE_DIGITS)
        )

    async def issue_reset_code(self, principal: Principal) -> str:
        """Issue a fresh code. A newer code replaces any pending one."""
        code = self._new_code()
        await authoritative(
            self.cache.set(self.keys.password_reset(principal.id), code, self.reset_ttl),
            self.timeout,
            "ephemeral.store",
        )
        logger.info("ephemeral.reset_code_issued", user_id=str(principal.id))
        return code

    async def consume_reset_code(self, principal: Principal, code: str) -> None:
        key = self.keys.password_reset(principal.id)
        stored: Optional[str] = await authoritative(
            self.cache.get(key), self.timeout, "ephemeral.read"
        )
        if stored is None or not secrets.compare_digest(
            stored.encode(), code.strip().encode()
        ):
            raise InvalidOrExpiredToken()

        removed = await authoritative(
            self.cache.delete(key), self.timeout, "ephemeral.consume"
        )
        if removed != 1:
            raise InvalidOrExpiredToken()

    async def discard_reset_code(self, principal: Principal) -> None:
        await authoritative(
            self.cache.delete(self.keys.password_reset(principal.id)),
            self.timeout,
            "ephemeral.discard",
        )
