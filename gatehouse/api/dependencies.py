"""Route Dependencies — reach the startup-built handles and the current principal.

Invariants:
    - Services come from app.state (built once in the lifespan), never from globals
    - get_principal raises 401 UNAUTHORIZED for any missing/invalid session cookie
"""

from fastapi import Depends, Request

from gatehouse.bootstrap import Services
from gatehouse.services.session_auth import Principal


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def get_client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


async def get_principal(
    request: Request, services: Services = Depends(get_services),
) -> Principal:
    token = request.cookies.get(services.settings.session_cookie_name)
    return await services.sessions.authenticate(token)
