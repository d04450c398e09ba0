"""JWT signing and verification.

Learn: JWT (JSON Web Token) carries signed claims.
- Access token: short-lived (15min), used for API calls
- Refresh token: longer-lived (7 days), single-use, swapped for a new pair
- Email verification token: purpose-tagged, single-use

Signatures alone do NOT make a token valid here — the ledger and the cache
decide whether it is still active. The signer only answers "was this
minted by us, and what does it say".

Every token gets a random `jti`, so two tokens minted in the same second
with the same claims are still distinct strings (the ledger keys on the
token string).
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

import jwt

from warden.config import Settings


class TokenError(Exception):
    """Raised when token verification fails."""


class TokenExpiredError(TokenError):
    """Signature is fine but `exp` is in the past."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JwtSigner:
    """Signs and verifies claim sets.

    HS* algorithms use the shared secret for both directions; RS*/ES*
    sign with the private key and verify with the public key.
    """

    def __init__(
        self,
        signing_key: str,
        verify_key: Optional[str] = None,
        algorithm: str = "HS256",
        issuer: Optional[str] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.signing_key = signing_key
        self.verify_key = verify_key or signing_key
        self.algorithm = algorithm
        self.issuer = issuer
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "JwtSigner":
        if settings.jwt_algorithm.startswith("HS"):
            return cls(
                settings.jwt_secret,
                algorithm=settings.jwt_algorithm,
                issuer=settings.jwt_issuer,
            )
        return cls(
            settings.jwt_private_key,
            settings.jwt_public_key,
            algorithm=settings.jwt_algorithm,
            issuer=settings.jwt_issuer,
        )

    def sign(self, claims: dict[str, Any], expires_in: timedelta) -> str:
        """Sign `claims`, adding iat/exp/jti (and iss when configured)."""
        return self.mint(claims, expires_in).value

    def mint(self, claims: dict[str, Any], expires_in: timedelta) -> "SignedToken":
        """Like sign(), but also returns the issued/expiry instants.

        JWT timestamps are whole seconds, so the instants are truncated
        the same way and match what verify() will later read back.
        """
        issued_at = self._clock().replace(microsecond=0)
        expires_at = issued_at + expires_in
        payload = {
            **claims,
            "iat": issued_at,
            "exp": expires_at,
            "jti": secrets.token_hex(16),
        }
        if self.issuer:
            payload["iss"] = self.issuer
        # PyJWT 2.x returns str
        value = jwt.encode(payload, self.signing_key, algorithm=self.algorithm)
        return SignedToken(value=value, issued_at=issued_at, expires_at=expires_at)

    def verify(self, token: str, verify_exp: bool = True) -> dict[str, Any]:
        """Verify and decode a token.

        Returns the payload dict on success. Raises TokenExpiredError for
        an expired signature, TokenError for anything else.
        """
        try:
            return jwt.decode(
                token,
                self.verify_key,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={
                    "require": ["exp", "iat", "jti"],
                    "verify_exp": verify_exp,
                },
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenExpiredError("Token has expired") from e
        except jwt.InvalidTokenError as e:
            raise TokenError(f"Invalid token: {e}") from e

    def extract_claim(self, token: str, name: str) -> Any:
        """Verified lookup of a single claim (None if absent)."""
        return self.verify(token).get(name)


@dataclass(frozen=True)
class SignedToken:
    value: str
    issued_at: datetime
    expires_at: datetime
