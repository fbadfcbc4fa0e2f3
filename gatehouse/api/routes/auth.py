"""Auth Routes — login, logout, current user and password reset.

Invariants:
    - Every authentication failure is 401 {"error": {"code": "UNAUTHORIZED", ...}}
      with an identical body whatever the cause
    - The session cookie is HttpOnly, Path=/, SameSite=Lax, Secure in production,
      and expires exactly at the session's expires_at
    - logout / logout-all answer 204 and clear the cookie
    - /me is never cached (Cache-Control: no-store)
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Request, Response, status

from gatehouse.api.dependencies import (
    get_client_ip, get_principal, get_request_id, get_services,
)
from gatehouse.bootstrap import Services
from gatehouse.config import Settings
from gatehouse.schemas.auth import (
    LoginRequest, LoginResponse, MeResponse, PasswordResetConfirm,
    PasswordResetRequest, PasswordResetRequestResponse,
    PasswordResetValidateResponse,
)
from gatehouse.services.session_auth import Principal

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


def _set_session_cookie(
    response: Response, settings: Settings, token: str, expires_at: datetime,
) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        expires=expires_at,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


def _clear_session_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=settings.session_cookie_name,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


@router.post("/login", response_model=LoginResponse)
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    services: Services = Depends(get_services),
):
    result = await services.login.login(
        body.email,
        body.password,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
        request_id=get_request_id(request),
    )
    _set_session_cookie(
        response, services.settings, result.token, result.session.expires_at,
    )
    return LoginResponse(success=True)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    request: Request,
    principal: Principal = Depends(get_principal),
    services: Services = Depends(get_services),
):
    await services.sessions.logout(principal, get_request_id(request))
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    _clear_session_cookie(response, services.settings)
    return response


@router.post("/logout-all", status_code=status.HTTP_204_NO_CONTENT)
async def logout_all(
    request: Request,
    principal: Principal = Depends(get_principal),
    services: Services = Depends(get_services),
):
    await services.sessions.logout_all(principal, get_request_id(request))
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    _clear_session_cookie(response, services.settings)
    return response


@router.get("/me", response_model=MeResponse)
async def me(
    response: Response, principal: Principal = Depends(get_principal),
):
    response.headers["Cache-Control"] = "no-store"
    user = principal.user
    return MeResponse(
        id=user.id,
        email=user.email,
        email_verified_at=user.email_verified_at,
        role=user.role_name,
    )


@router.post(
    "/password-reset/request", response_model=PasswordResetRequestResponse,
)
async def request_password_reset(
    body: PasswordResetRequest,
    request: Request,
    services: Services = Depends(get_services),
):
    await services.password_reset.request(body.email, get_request_id(request))
    return PasswordResetRequestResponse()


@router.get(
    "/password-reset/{token}", response_model=PasswordResetValidateResponse,
)
async def validate_reset_token(
    token: str, services: Services = Depends(get_services),
):
    expires_at = await services.password_reset.validate(token)
    return PasswordResetValidateResponse(expires_at=expires_at)


@router.post("/password-reset/confirm")
async def confirm_password_reset(
    body: PasswordResetConfirm,
    request: Request,
    response: Response,
    services: Services = Depends(get_services),
):
    await services.password_reset.confirm(
        body.token, body.password, get_request_id(request),
    )
    _clear_session_cookie(response, services.settings)
    return {"message": "Password has been reset"}
