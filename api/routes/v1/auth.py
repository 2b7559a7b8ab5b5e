"""
api/routes/v1/auth.py -- Authentication, session and user management endpoints.

Routes:
  POST  /api/v1/auth/login                          -- password login (rate limited)
  POST  /api/v1/auth/2fa/verify                     -- second factor step (rate limited)
  POST  /api/v1/auth/refresh                        -- refresh token -> new access token
  POST  /api/v1/auth/logout                         -- revoke the presented access token
  GET   /api/v1/auth/me                             -- current identity (requires auth)
  POST  /api/v1/auth/password                       -- change own password (requires auth + 2FA)
  POST  /api/v1/auth/sessions/revoke                -- revoke all own sessions (requires auth)
  POST  /api/v1/auth/users                          -- create user (admin only)
  PATCH /api/v1/auth/users/{id}                     -- update profile/role/is_active (admin only)
  POST  /api/v1/auth/users/{id}/reset-password      -- admin password reset (admin only)
  POST  /api/v1/auth/users/{id}/sessions/revoke     -- revoke a user's sessions (admin only)

Security:
  POST /login and POST /2fa/verify are rate-limited per IP (LOGIN_RATE_LIMIT).
  Authenticator.login() equalizes timing for unknown users. Do not inline a
  lookup + verify in a route.
  The 2FA step takes the signed challenge from the login response, never a
  client-supplied user id.
  Cache-Control: no-store on every response that carries tokens.
  PATCH /users/{id} blocks self-deactivation and deactivating or demoting
  the last admin.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import (
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    PasswordChangedResponse,
    PasswordChangeRequest,
    PasswordResetRequest,
    RefreshRequest,
    RefreshResponse,
    RevokedResponse,
    RevokeSessionsRequest,
    SecondFactorRequest,
    SecondFactorRequiredResponse,
    UserCreate,
    UserPatch,
    UserResponse,
)
from auth.authenticator import Authenticator
from auth.dependencies import (
    bearer_token,
    get_authenticator,
    get_current_identity,
    request_context,
    require_admin,
    require_second_factor,
)
from auth.models import Identity, User
from auth.results import (
    Disabled,
    InvalidCode,
    InvalidCredentials,
    Locked,
    LoginSuccess,
    NotFound,
    PasswordChanged,
    PolicyViolation,
    Refreshed,
    Requires2FA,
    ReusedPassword,
    WrongCurrentPassword,
)

# Auth policy:
# - POST /auth/login, /auth/2fa/verify, /auth/refresh: public (credential or token in body)
# - POST /auth/logout:                 public -- revokes whatever Bearer token is presented
# - GET  /auth/me:                     requires auth (get_current_identity)
# - POST /auth/password:               requires auth + second factor (require_second_factor)
# - POST /auth/sessions/revoke:        requires auth (get_current_identity)
# - /auth/users*:                      requires admin (require_admin)
router = APIRouter()


def _error(status_code: int, code: str, message: str, detail: str | None = None, headers: dict | None = None):
    payload = {"code": code, "message": message}
    if detail is not None:
        payload["detail"] = detail
    return HTTPException(status_code=status_code, detail=payload, headers=headers)


def _no_store(content: dict, status_code: int = 200) -> JSONResponse:
    resp = JSONResponse(status_code=status_code, content=content)
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _locked(result: Locked) -> HTTPException:
    return _error(
        423,
        "account_locked",
        "Account is temporarily locked due to too many failed attempts.",
        detail=result.until.isoformat(),
        headers={"Cache-Control": "no-store"},
    )


def _login_response(result: LoginSuccess) -> JSONResponse:
    return _no_store(
        LoginResponse(
            access_token=result.access_token,
            refresh_token=result.refresh_token,
            expires_at=result.expires_at,
            is_2fa_verified=result.is_2fa_verified,
            user=_user_to_response(result.user),
        ).model_dump(mode="json")
    )


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username/email and password.

    Returns either a full LoginResponse or, for 2FA users, a challenge to
    pass to POST /auth/2fa/verify. The same error is returned for an unknown
    user and a wrong password.
    """
    authenticator: Authenticator = get_authenticator(request)
    result = authenticator.login(
        body.identifier,
        body.password,
        request_context(request, device_fingerprint=body.device_fingerprint),
    )
    match result:
        case LoginSuccess():
            return _login_response(result)
        case Requires2FA():
            return _no_store(SecondFactorRequiredResponse(challenge=result.challenge).model_dump())
        case Locked():
            raise _locked(result)
        case Disabled():
            raise _error(403, "account_disabled", "Account is disabled.")
        case InvalidCredentials():
            raise _error(
                401,
                "bad_credentials",
                "Invalid username or password.",
                detail=f"{result.remaining_attempts} attempt(s) remaining",
                headers={"Cache-Control": "no-store"},
            )
    raise _error(500, "internal_error", "Unexpected login result.")


@limiter.limit(login_rate_limit)
@router.post("/auth/2fa/verify", response_model=LoginResponse)
def verify_second_factor(request: Request, body: SecondFactorRequest) -> JSONResponse:
    """Complete a 2FA login with a TOTP code or an unused backup code."""
    authenticator: Authenticator = get_authenticator(request)
    user_id = authenticator.resolve_challenge(body.challenge)
    if user_id is None:
        raise _error(401, "invalid_challenge", "Login challenge is invalid or expired.")
    result = authenticator.verify_second_factor(
        user_id,
        body.code,
        request_context(request, device_fingerprint=body.device_fingerprint, remember_device=body.remember_device),
    )
    if isinstance(result, LoginSuccess):
        return _login_response(result)
    if isinstance(result, Locked):
        raise _locked(result)
    raise _error(401, "invalid_code", "Invalid verification code.")


@router.post("/auth/refresh", response_model=RefreshResponse)
def refresh(request: Request, body: RefreshRequest) -> JSONResponse:
    result = get_authenticator(request).refresh_token(body.refresh_token, request_context(request))
    if not isinstance(result, Refreshed):
        raise _error(401, "invalid_token", "Invalid token.")
    return _no_store(RefreshResponse(access_token=result.access_token, expires_at=result.expires_at).model_dump(mode="json"))


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request) -> MessageResponse:
    """Revoke the presented access token. Idempotent."""
    token = bearer_token(request)
    if token:
        get_authenticator(request).logout(token)
    return MessageResponse(message="Logged out.")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
def me(identity: Identity = Depends(get_current_identity)) -> MeResponse:
    """Return identity information for the currently authenticated user."""
    return MeResponse(
        user_id=identity.user_id,
        username=identity.username,
        email=identity.email,
        display_name=identity.display_name,
        role=identity.role,
        session_id=identity.session_id,
        is_2fa_verified=identity.is_2fa_verified,
    )


@router.post("/auth/password", response_model=PasswordChangedResponse)
def change_password(
    request: Request,
    body: PasswordChangeRequest,
    identity: Identity = Depends(require_second_factor),
) -> PasswordChangedResponse:
    """Change the caller's password. Every session, including this one, is revoked."""
    result = get_authenticator(request).change_password(identity.user_id, body.current_password, body.new_password)
    match result:
        case PasswordChanged():
            return PasswordChangedResponse(sessions_revoked=result.sessions_revoked)
        case WrongCurrentPassword():
            raise _error(400, "wrong_password", "Current password is incorrect.")
        case ReusedPassword():
            raise _error(400, "password_reused", "Password was used recently. Choose a different one.")
        case PolicyViolation():
            raise _error(422, "password_policy", "Password does not meet requirements.", detail="; ".join(result.errors))
    raise _error(500, "internal_error", "Unexpected result.")


@router.post("/auth/sessions/revoke", response_model=RevokedResponse)
def revoke_own_sessions(
    request: Request,
    body: RevokeSessionsRequest | None = None,
    identity: Identity = Depends(get_current_identity),
) -> RevokedResponse:
    """Sign out everywhere."""
    reason = body.reason if body is not None else "user_request"
    count = get_authenticator(request).revoke_all_sessions(identity.user_id, reason, by=str(identity.user_id))
    return RevokedResponse(revoked=count)


# ---------------------------------------------------------------------------
# User management (admin only)
# ---------------------------------------------------------------------------


@router.post("/auth/users", response_model=UserResponse, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    admin: Identity = Depends(require_admin),
) -> UserResponse:
    """Create a new local user account. Admin only."""
    result = get_authenticator(request).create_user(
        body.username,
        body.email,
        body.password,
        role=body.role.value,
        display_name=body.display_name,
        created_by=str(admin.user_id),
    )
    if isinstance(result, PolicyViolation):
        status = 409 if any("already exists" in e for e in result.errors) else 422
        raise _error(status, "invalid_user", "User could not be created.", detail="; ".join(result.errors))
    return _user_to_response(result)


@router.patch("/auth/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: int,
    body: UserPatch,
    admin: Identity = Depends(require_admin),
) -> UserResponse:
    """Update a user's profile, role or active status. Admin only.

    Prevents:
      - Self-deactivation (admin accidentally locking themselves out).
      - Deactivating or demoting the last active admin (no recovery path
        without DB access).
    Deactivating a user revokes all of their sessions.
    """
    authenticator: Authenticator = get_authenticator(request)
    target = authenticator.store.get_by_id(user_id)
    if target is None:
        raise _error(404, "not_found", "User not found.")

    if body.is_active is False:
        if target.id == admin.user_id:
            raise _error(400, "self_deactivation", "You cannot deactivate your own account.")
        if target.role == "admin" and authenticator.store.count_active_admins() <= 1:
            raise _error(400, "last_admin", "Cannot deactivate the last active admin account.")

    demoting = body.role is not None and body.role.value != "admin"
    if demoting and target.role == "admin" and target.is_active and authenticator.store.count_active_admins() <= 1:
        raise _error(400, "last_admin", "Cannot demote the last active admin account.")

    result = authenticator.update_user(
        user_id,
        display_name=body.display_name,
        email=body.email,
        role=body.role.value if body.role is not None else None,
        is_active=body.is_active,
        updated_by=str(admin.user_id),
    )
    if isinstance(result, NotFound):
        raise _error(404, "not_found", "User not found.")
    if isinstance(result, PolicyViolation):
        raise _error(422, "invalid_user", "User could not be updated.", detail="; ".join(result.errors))
    return _user_to_response(result)


@router.post("/auth/users/{user_id}/reset-password", response_model=PasswordChangedResponse)
def reset_password(
    request: Request,
    user_id: int,
    body: PasswordResetRequest,
    admin: Identity = Depends(require_admin),
) -> PasswordChangedResponse:
    """Set a new password for a user. They must change it at next login."""
    result = get_authenticator(request).reset_password(user_id, body.new_password, admin.user_id)
    if isinstance(result, NotFound):
        raise _error(404, "not_found", "User not found.")
    if isinstance(result, PolicyViolation):
        raise _error(422, "password_policy", "Password does not meet requirements.", detail="; ".join(result.errors))
    return PasswordChangedResponse(message="Password reset.", sessions_revoked=result.sessions_revoked)


@router.post("/auth/users/{user_id}/sessions/revoke", response_model=RevokedResponse)
def revoke_user_sessions(
    request: Request,
    user_id: int,
    body: RevokeSessionsRequest | None = None,
    admin: Identity = Depends(require_admin),
) -> RevokedResponse:
    reason = body.reason if body is not None else "admin_action"
    count = get_authenticator(request).revoke_all_sessions(user_id, reason, by=str(admin.user_id))
    return RevokedResponse(revoked=count)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _user_to_response(user: User | None) -> UserResponse:
    if user is None:
        raise _error(500, "internal_error", "User not found after write.")
    return UserResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        display_name=user.display_name,
        role=user.role,
        is_active=user.is_active,
        force_password_change=user.force_password_change,
        last_login=user.last_login,
        created_at=user.created_at,
    )
