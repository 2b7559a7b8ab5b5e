"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Tokens arrive as "Authorization: Bearer <access token>". Verification is
delegated to Authenticator.authenticate(), which returns a typed Identity.
Nothing is attached to the request object.

try_get_identity() is the soft variant (returns None on failure).
get_current_identity() wraps it and raises HTTP 401 if unauthenticated.
require_admin() raises HTTP 403 unless role == "admin".
require_second_factor() raises HTTP 403 when the user has 2FA enabled but
the session was issued without passing it.

Layer rule: auth/dependencies.py may import from fastapi (for
Depends/HTTPException/Request) because this module is part of the FastAPI
dependency injection system. Nothing else in auth/ does.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request

from auth.authenticator import Authenticator
from auth.models import Identity, RequestContext
from auth.results import TokenRejected


def get_authenticator(request: Request) -> Authenticator:
    return request.app.state.authenticator


def bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def request_context(request: Request, device_fingerprint: str | None = None, remember_device: bool = False) -> RequestContext:
    """Collect client facts for session bookkeeping.

    The fingerprint comes from the request body when the route has one,
    otherwise from the X-Device-Fingerprint header.
    """
    return RequestContext(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("User-Agent"),
        device_fingerprint=device_fingerprint or request.headers.get("X-Device-Fingerprint"),
        remember_device=remember_device,
    )


def try_get_identity(request: Request) -> Identity | None:
    """Resolve the Bearer token to an Identity. Never raises."""
    token = bearer_token(request)
    if not token:
        return None
    result = get_authenticator(request).authenticate(token)
    if isinstance(result, TokenRejected):
        return None
    return result


def get_current_identity(request: Request) -> Identity:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: Identity = Depends(get_current_identity)): ...
    """
    identity = try_get_identity(request)
    if identity is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity


def require_admin(identity: Identity = Depends(get_current_identity)) -> Identity:
    """Require admin role. Raises HTTP 401 if unauthenticated, HTTP 403 if not admin."""
    if identity.role != "admin":
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Admin access required."},
        )
    return identity


def require_second_factor(request: Request, identity: Identity = Depends(get_current_identity)) -> Identity:
    """Reject sessions of 2FA-enabled users that did not pass the second factor.

    Users without 2FA pass through unchanged.
    """
    if not identity.is_2fa_verified and get_authenticator(request).two_factor.is_enabled(identity.user_id):
        raise HTTPException(
            status_code=403,
            detail={"code": "2fa_required", "message": "Two-factor verification required."},
        )
    return identity
