"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers.

- get_services: opens one ServiceContainer scope per request (one DB
  session on the postgres backend) and closes it after the response.
- get_current_principal: the "hard" auth dependency. It reads the Bearer
  access token and runs SessionManager.authenticate, which checks the
  signature, the token type, the ledger/cache active flag, and the owner.
"""

from typing import AsyncIterator, Optional

from fastapi import Depends, Header, Request

from warden.bootstrap import ServiceContainer, Services
from warden.domain.models import ClientInfo, Principal
from warden.services.session_manager import bearer_token


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


async def get_services(
    container: ServiceContainer = Depends(get_container),
) -> AsyncIterator[Services]:
    async with container.scope() as services:
        yield services


def client_info(
    request: Request, user_agent: Optional[str] = Header(None)
) -> ClientInfo:
    """IP + User-Agent recorded on every issued token."""
    return ClientInfo(
        ip_address=request.client.host if request.client else None,
        user_agent=user_agent,
    )


async def get_current_principal(
    authorization: Optional[str] = Header(None),
    services: Services = Depends(get_services),
) -> Principal:
    token = bearer_token(authorization)
    return await services.sessions.authenticate(token)
