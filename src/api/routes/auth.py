"""Authentication routes — signup, login, token verification, logout, sessions."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response, status

from config.settings import Settings, get_settings
from src.api.deps import get_auth, get_rate_limiter, require_principal
from src.api.middleware import clear_auth_cookie, extract_token, set_auth_cookie
from src.api.models.schemas import (
    AuthResponse,
    LoginRequest,
    LoginSessionOut,
    MessageResponse,
    SessionOut,
    SessionsResponse,
    SignupRequest,
    TokenInfo,
    UserOut,
)
from src.auth.rate_limit import RateLimiter
from src.auth.service import AuthService, ClientInfo
from src.core.constants import SECURITY_HEADERS
from src.core.exceptions import AccountDeactivatedError, NotAuthenticatedError
from src.core.logging import get_logger
from src.core.types import Principal

log = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _client_info(request: Request, device: dict[str, str] | None = None) -> ClientInfo:
    forwarded = request.headers.get("x-forwarded-for", "")
    ip = forwarded.split(",")[0].strip() if forwarded else ""
    if not ip and request.client is not None:
        ip = request.client.host
    return ClientInfo(
        ip_address=ip,
        user_agent=request.headers.get("user-agent", ""),
        device=device,
    )


def _harden(response: Response) -> None:
    for name, value in SECURITY_HEADERS.items():
        response.headers[name] = value


@router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def signup(
    body: SignupRequest,
    request: Request,
    response: Response,
    auth: AuthService = Depends(get_auth),
    settings: Settings = Depends(get_settings),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> AuthResponse:
    """Create an account, open its first session and set the auth cookie."""
    client = _client_info(request)
    limiter.check("signup:ip", client.ip_address or "unknown", settings.signup_rate_limit)
    result = await auth.signup(
        email=body.email,
        password=body.password,
        plan=body.plan,
        full_name=body.full_name,
        client=client,
    )
    set_auth_cookie(response, result.issued, secure=settings.is_prod)
    _harden(response)
    return AuthResponse(
        message="Account created successfully! Welcome to Affilify!",
        user=UserOut.from_user(result.user),
        session=LoginSessionOut(
            id=result.session.session_id,
            expires_at=result.session.expires_at,
            remember_me=False,
        ),
    )


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    auth: AuthService = Depends(get_auth),
    settings: Settings = Depends(get_settings),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> AuthResponse:
    """Verify credentials, open a session and set the auth cookie."""
    device = body.device_info.model_dump(exclude_none=True) if body.device_info else None
    client = _client_info(request, device)
    limiter.check("login:ip", client.ip_address or "unknown", settings.login_rate_limit)
    limiter.check("login:email", body.email, settings.login_rate_limit)
    result = await auth.login(
        email=body.email,
        password=body.password,
        remember_me=body.remember_me,
        client=client,
    )
    set_auth_cookie(response, result.issued, secure=settings.is_prod)
    _harden(response)
    return AuthResponse(
        message="Login successful! Welcome back to Affilify!",
        user=UserOut.from_user(result.user),
        session=LoginSessionOut(
            id=result.session.session_id,
            expires_at=result.session.expires_at,
            remember_me=result.remember_me,
        ),
    )


@router.get("/verify-token", response_model=AuthResponse)
async def verify_token(
    request: Request,
    response: Response,
    auth: AuthService = Depends(get_auth),
) -> AuthResponse:
    """Validate the presented token against signature, user and session."""
    token = extract_token(request)
    if token is None:
        raise NotAuthenticatedError()

    principal, claims = await auth.verifier.verify_with_claims(token)
    user = await auth.store.get_by_id(principal.user_id)
    if user is None:
        raise AccountDeactivatedError(context={"user_id": principal.user_id})

    _harden(response)
    return AuthResponse(
        message="Token is valid",
        user=UserOut.from_user(user),
        token_info=TokenInfo(
            issued_at=claims.issued_at,
            expires_at=claims.expires_at,
            session_id=claims.session_id,
        ),
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    response: Response,
    auth: AuthService = Depends(get_auth),
    settings: Settings = Depends(get_settings),
) -> MessageResponse:
    """Revoke the current session and clear the cookie."""
    await auth.logout(extract_token(request))
    clear_auth_cookie(response, secure=settings.is_prod)
    return MessageResponse(message="Logged out successfully")


@router.post("/logout-all", response_model=MessageResponse)
async def logout_all(
    response: Response,
    principal: Principal = Depends(require_principal),
    auth: AuthService = Depends(get_auth),
    settings: Settings = Depends(get_settings),
) -> MessageResponse:
    """Revoke every session of the caller, on every device."""
    count = await auth.logout_everywhere(principal)
    clear_auth_cookie(response, secure=settings.is_prod)
    return MessageResponse(message=f"Logged out of {count} session(s)")


@router.get("/sessions", response_model=SessionsResponse)
async def list_sessions(
    principal: Principal = Depends(require_principal),
    auth: AuthService = Depends(get_auth),
) -> SessionsResponse:
    """The caller's live sessions, newest first."""
    sessions = await auth.sessions.list_sessions(principal.user_id)
    return SessionsResponse(
        sessions=[SessionOut.from_session(s, principal.session_id) for s in sessions],
    )
