"""Account API — credential changes for the authenticated principal.

Learn: every route here requires a valid access token, and every one of
them revokes all of the caller's tokens on success. The client must log
in again afterwards, on every device.

- PUT    /account/password
- PUT    /account/email      (email becomes unverified)
- PUT    /account/username
- DELETE /account            (soft delete)
"""

from fastapi import APIRouter, Depends, Response

from warden.api.auth import principal_read
from warden.auth.dependencies import get_current_principal, get_services
from warden.bootstrap import Services
from warden.domain.models import Principal
from warden.schemas.auth import (
    ChangeEmailRequest,
    ChangePasswordRequest,
    ChangeUsernameRequest,
    MessageResponse,
    PrincipalRead,
)

router = APIRouter(prefix="/account")


@router.put("/password", response_model=MessageResponse)
async def change_password(
    body: ChangePasswordRequest,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    await services.credentials.change_password(
        principal.id, body.current_password, body.new_password
    )
    return MessageResponse(message="Password changed")


@router.put("/email", response_model=PrincipalRead)
async def change_email(
    body: ChangeEmailRequest,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    updated = await services.credentials.change_email(
        principal.id, body.current_password, body.new_email
    )
    return principal_read(updated)


@router.put("/username", response_model=PrincipalRead)
async def change_username(
    body: ChangeUsernameRequest,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    updated = await services.credentials.change_username(
        principal.id, body.current_password, body.new_username
    )
    return principal_read(updated)


@router.delete("", status_code=204)
async def delete_account(
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    await services.credentials.delete_account(principal.id)
    return Response(status_code=204)
