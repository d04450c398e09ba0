"""Failure taxonomy for the token lifecycle core.

Learn: every failure a caller can observe is one of these classes. Each
carries the HTTP status it maps to and a stable machine-readable code, so
the API layer renders them with a single exception handler and the
services never import FastAPI.

    AuthenticationFailure  — bad credentials, locked, inactive, unverified
    ConflictFailure        — duplicate identity
    TokenFailure           — invalid / expired / already-used token
    NotFoundFailure        — principal does not exist
    DependencyFailure      — ledger, principal store or cache unreachable

None of these are retried by the core.
"""

from typing import Optional


class WardenError(Exception):
    """Base class for failures surfaced to callers."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "Something went wrong"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# ─── Authentication ──────────────────────────────────────


class AuthenticationFailure(WardenError):
    status_code = 401
    code = "authentication_failed"
    default_message = "Authentication failed"


class InvalidCredentials(AuthenticationFailure):
    """Wrong password or unknown email. Same error for both on purpose."""

    status_code = 401
    code = "invalid_credentials"
    default_message = "Invalid email or password"


class InactiveAccount(AuthenticationFailure):
    status_code = 403
    code = "inactive_account"
    default_message = "User account is inactive"


class EmailNotVerified(AuthenticationFailure):
    status_code = 403
    code = "email_not_verified"
    default_message = "Email is not verified"


class TooManyAttempts(AuthenticationFailure):
    status_code = 423
    code = "too_many_attempts"
    default_message = "Too many failed login attempts. Try again later."


# ─── Conflict ────────────────────────────────────────────


class ConflictFailure(WardenError):
    status_code = 409
    code = "conflict"
    default_message = "Conflict"


class DuplicateIdentity(ConflictFailure):
    code = "duplicate_identity"
    default_message = "Email or username is already in use"


# ─── Tokens ──────────────────────────────────────────────


class TokenFailure(WardenError):
    status_code = 401
    code = "token_invalid"
    default_message = "Invalid token"


class InvalidToken(TokenFailure):
    """Malformed, unknown, wrong type, revoked, or lost a rotation race."""


class TokenExpired(TokenFailure):
    code = "token_expired"
    default_message = "Token has expired"


class InvalidOrExpiredToken(TokenFailure):
    """Ephemeral token or code that is wrong, expired, or already used."""

    status_code = 400
    code = "invalid_or_expired_token"
    default_message = "Token is invalid, expired or already used"


# ─── Lookup ──────────────────────────────────────────────


class NotFoundFailure(WardenError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class PrincipalNotFound(NotFoundFailure):
    code = "principal_not_found"
    default_message = "User not found"


# ─── Dependencies ────────────────────────────────────────


class DependencyFailure(WardenError):
    """An authoritative store call failed or timed out."""

    status_code = 500
    code = "dependency_failure"
    default_message = "A backing service is unavailable"
