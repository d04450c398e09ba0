"""Auth API — sessions and the unauthenticated credential flows.

Learn: Routes are thin: validate the body, call one service method,
shape the response. Failures are WardenErrors rendered by api/errors.py.

- POST /auth/register               → new account + token pair (201)
- POST /auth/login                  → email/password → token pair
- POST /auth/refresh                → Bearer refresh token → new pair
- POST /auth/logout                 → Bearer token → revoked
- GET  /auth/me                     → current principal
- POST /auth/verify-email/request   → email a verification link
- POST /auth/verify-email           → consume the link's token
- POST /auth/password/forgot        → email a 6-digit reset code
- POST /auth/password/reset         → consume the code, set new password
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header

from warden.auth.dependencies import client_info, get_current_principal, get_services
from warden.bootstrap import Services
from warden.domain.models import ClientInfo, Principal
from warden.schemas.auth import (
    EmailRequest,
    LoginRequest,
    MessageResponse,
    PrincipalRead,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
    VerifyEmailRequest,
)
from warden.services.session_manager import bearer_token

router = APIRouter(prefix="/auth")


def principal_read(principal: Principal) -> PrincipalRead:
    return PrincipalRead(
        id=principal.id,
        username=principal.username,
        email=principal.email,
        roles=sorted(r.value for r in principal.roles),
        active=principal.active,
        email_verified=principal.email_verified,
        created_at=principal.created_at,
    )


# ─── Sessions ────────────────────────────────────────────


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(
    body: RegisterRequest,
    client: ClientInfo = Depends(client_info),
    services: Services = Depends(get_services),
):
    pair = await services.sessions.register(
        body.username, body.email, body.password, client
    )
    return TokenResponse(access_token=pair.access_token, refresh_token=pair.refresh_token)


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    client: ClientInfo = Depends(client_info),
    services: Services = Depends(get_services),
):
    pair = await services.sessions.login(body.email, body.password, client)
    return TokenResponse(access_token=pair.access_token, refresh_token=pair.refresh_token)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    authorization: Optional[str] = Header(None),
    client: ClientInfo = Depends(client_info),
    services: Services = Depends(get_services),
):
    pair = await services.sessions.refresh(bearer_token(authorization), client)
    return TokenResponse(access_token=pair.access_token, refresh_token=pair.refresh_token)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    authorization: Optional[str] = Header(None),
    services: Services = Depends(get_services),
):
    await services.sessions.logout(authorization)
    return MessageResponse(message="Logged out")


@router.get("/me", response_model=PrincipalRead)
async def me(principal: Principal = Depends(get_current_principal)):
    return principal_read(principal)


# ─── Email verification ──────────────────────────────────


@router.post("/verify-email/request", response_model=MessageResponse, status_code=202)
async def request_email_verification(
    body: EmailRequest, services: Services = Depends(get_services)
):
    await services.credentials.request_email_verification(body.email)
    # Same answer for unknown emails
    return MessageResponse(message="If the account exists, a verification email was sent")


@router.post("/verify-email", response_model=PrincipalRead)
async def verify_email(
    body: VerifyEmailRequest, services: Services = Depends(get_services)
):
    principal = await services.credentials.verify_email(body.token)
    return principal_read(principal)


# ─── Password reset ──────────────────────────────────────


@router.post("/password/forgot", response_model=MessageResponse, status_code=202)
async def forgot_password(
    body: EmailRequest, services: Services = Depends(get_services)
):
    await services.credentials.forgot_password(body.email)
    return MessageResponse(message="If the account exists, a reset code was sent")


@router.post("/password/reset", response_model=MessageResponse)
async def reset_password(
    body: ResetPasswordRequest, services: Services = Depends(get_services)
):
    await services.credentials.reset_password(body.email, body.code, body.new_password)
    return MessageResponse(message="Password has been reset")
