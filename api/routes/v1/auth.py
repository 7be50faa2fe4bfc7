"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/login                          -- password login; returns user summary + bearer token
  POST /api/v1/auth/register                       -- self-registration (role "Customer", unconfirmed)
  POST /api/v1/auth/send-confirmation              -- (re)send the email-confirmation link
  GET  /api/v1/auth/confirm-email?token=...        -- confirmation link target
  GET  /api/v1/auth/me                             -- identity from the bearer token (requires auth)
  GET  /api/v1/auth/users/{user_id}/roles/{role}   -- role membership check (Admin only)

Workflow failures (auth/errors.py) are raised straight out of the handlers;
the AuthError handler in api/main.py maps each kind to its HTTP status.

Security:
  POST /login is rate-limited per client IP (LOGIN_RATE_LIMIT).
  Cache-Control: no-store on login responses.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import (
    ErrorDetail,
    ErrorResponse,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    RegisterRequest,
    RoleCheckResponse,
    SendConfirmationRequest,
    SendConfirmationResponse,
)
from auth.dependencies import Identity, get_current_identity, require_role
from auth.service import AuthService

# Auth policy:
# - POST /api/v1/auth/login:               public, rate limited
# - POST /api/v1/auth/register:            public
# - POST /api/v1/auth/send-confirmation:   public
# - GET  /api/v1/auth/confirm-email:       public -- the token is the credential
# - GET  /api/v1/auth/me:                  requires auth (get_current_identity)
# - GET  /api/v1/auth/users/{id}/roles/*:  requires Admin (require_role)
router = APIRouter()


def _callback_url(request: Request, supplied: str | None) -> str:
    return supplied or str(request.url_for("confirm_email"))


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Log in with a username or email and a password.

    Unconfirmed accounts receive a new confirmation email and a 403.
    """
    service: AuthService = request.app.state.auth_service
    result = service.login(body.identifier, body.password, _callback_url(request, body.callback_url))
    resp = JSONResponse(status_code=200, content=LoginResponse.from_result(result).model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/register", response_model=MessageResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create an account. Validation problems come back as a 400 with one entry per problem."""
    service: AuthService = request.app.state.auth_service
    errors = service.register(body.to_registration())
    if errors:
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(
                error=ErrorDetail(
                    code="validation_error",
                    message="Registration failed.",
                    errors=errors,
                )
            ).model_dump(exclude_none=True),
        )
    return JSONResponse(
        status_code=201,
        content=MessageResponse(message="Registration successful. Please confirm your email before logging in.").model_dump(),
    )


@router.post("/auth/send-confirmation", response_model=SendConfirmationResponse)
def send_confirmation(request: Request, body: SendConfirmationRequest) -> SendConfirmationResponse:
    """Send a fresh confirmation link. sent=false means the mail could not be dispatched."""
    service: AuthService = request.app.state.auth_service
    sent = service.send_email_confirmation(body.identifier, _callback_url(request, body.callback_url))
    return SendConfirmationResponse(sent=sent)


@router.get("/auth/confirm-email", response_model=MessageResponse, name="confirm_email")
def confirm_email(request: Request, token: str = Query(min_length=1, max_length=4096)) -> MessageResponse:
    """Target of the link in the confirmation email."""
    service: AuthService = request.app.state.auth_service
    user = service.confirm_email(token)
    return MessageResponse(message=f"Email confirmed for {user.username}. You can now log in.")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
async def me(identity: Identity = Depends(get_current_identity)) -> MeResponse:
    """Return identity information carried by the caller's token."""
    return MeResponse(
        user_id=identity.user_id,
        username=identity.username,
        email=identity.email,
        roles=identity.roles,
    )


@router.get("/auth/users/{user_id}/roles/{role}", response_model=RoleCheckResponse)
def check_role(
    request: Request,
    user_id: str,
    role: str,
    identity: Identity = Depends(require_role("Admin")),
) -> RoleCheckResponse:
    """Report whether a user holds a role. Unknown users simply are not in any role."""
    service: AuthService = request.app.state.auth_service
    return RoleCheckResponse(user_id=user_id, role=role, in_role=service.is_in_role(user_id, role))
