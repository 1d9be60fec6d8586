"""
api/routes/v1/auth.py -- Registration, login, logout and password-reset endpoints.

Routes:
  POST /api/v1/auth/register          -- create a staff account; 201
  POST /api/v1/auth/login             -- password login; sets session cookie
  POST /api/v1/auth/logout            -- ends the session, clears cookie; 200
  GET  /api/v1/auth/me                -- current user (requires session)
  POST /api/v1/auth/forgot-password   -- request a reset link; always 202
  GET  /api/v1/auth/reset-password    -- is this reset token still usable?
  POST /api/v1/auth/reset-password    -- set a new password with a reset token

Every handler is a thin adapter: it unpacks the body, calls one AuthService
method and maps the result. Failures are AuthError subclasses and are turned
into the error envelope by the handler registered in api/main.py.

Security:
  [H2] POST /login and /forgot-password are rate-limited per IP.
  [C1] Login failures share one error; forgot-password shares one answer.
  [M5] Cache-Control: no-store on responses that carry a session token.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RegisterRequest,
    ResetPasswordRequest,
    ResetTokenStatus,
    UserResponse,
)
from auth.dependencies import get_auth_service, get_current_user, session_token_from_request
from auth.models import UserSummary
from auth.service import AuthService
from auth.tokens import clear_session_cookie, set_session_cookie
from core.config import get_settings

# Auth policy:
# - POST /api/v1/auth/register:          public
# - POST /api/v1/auth/login:             public, rate limited
# - POST /api/v1/auth/logout:            public -- ending an absent session is a no-op
# - GET  /api/v1/auth/me:                requires session (get_current_user)
# - POST /api/v1/auth/forgot-password:   public, rate limited
# - GET  /api/v1/auth/reset-password:    public -- token is the credential
# - POST /api/v1/auth/reset-password:    public -- token is the credential
router = APIRouter()


def _login_rate_limit() -> str:
    return get_settings().login_rate_limit


# ---------------------------------------------------------------------------
# Registration and session lifecycle
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=UserResponse, status_code=201)
def register(body: RegisterRequest, service: AuthService = Depends(get_auth_service)) -> UserResponse:
    """Create a staff account. The caller still has to log in."""
    user = service.register(body.name, body.email, body.password)
    return UserResponse.from_summary(user)


@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit(_login_rate_limit)  # [H2] must sit BELOW @router so the limited wrapper is the registered endpoint
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Verify credentials, open a session and set the session cookie.

    The same token is returned in the body for Bearer clients. Unknown email,
    wrong password and a locked account all produce the same 401 [C1].
    """
    service = get_auth_service(request)
    user, token = service.login(body.email, body.password)
    expires_in = int(service.sessions.ttl.total_seconds())
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            user=UserResponse.from_summary(user),
            token=token,
            expires_in=expires_in,
        ).model_dump(mode="json"),
    )
    set_session_cookie(resp, token, max_age=expires_in)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request) -> JSONResponse:
    """Invalidate the current session (if any) and clear the cookie."""
    get_auth_service(request).logout(session_token_from_request(request))
    resp = JSONResponse(content=MessageResponse(message="You have been logged out successfully.").model_dump())
    clear_session_cookie(resp)
    return resp


@router.get("/auth/me", response_model=UserResponse)
def me(current_user: UserSummary = Depends(get_current_user)) -> UserResponse:
    return UserResponse.from_summary(current_user)


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


@router.post("/auth/forgot-password", response_model=MessageResponse, status_code=202)
@limiter.limit(_login_rate_limit)  # [H2]
def forgot_password(request: Request, body: ForgotPasswordRequest) -> MessageResponse:
    """Send a reset link if the account exists. The answer never says which [C1]."""
    message = get_auth_service(request).request_password_reset(body.email)
    return MessageResponse(message=message)


@router.get("/auth/reset-password", response_model=ResetTokenStatus)
def reset_token_status(token: str = "", service: AuthService = Depends(get_auth_service)) -> ResetTokenStatus:
    """Tell a reset form whether to render. Reveals validity only, never the owner."""
    return ResetTokenStatus(valid=service.is_reset_token_valid(token))


@router.post("/auth/reset-password", response_model=MessageResponse)
def reset_password(body: ResetPasswordRequest, service: AuthService = Depends(get_auth_service)) -> MessageResponse:
    service.reset_password(body.token, body.password, body.confirm_password)
    return MessageResponse(message="Your password has been reset successfully. Please log in with your new password.")
