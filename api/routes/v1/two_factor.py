"""
api/routes/v1/two_factor.py -- TOTP enrollment and trusted device endpoints.

Routes:
  GET    /api/v1/2fa/status        -- enabled flag, codes remaining, device count
  POST   /api/v1/2fa/setup         -- new seed + QR + backup codes (shown once)
  POST   /api/v1/2fa/confirm       -- enable with a TOTP code
  POST   /api/v1/2fa/disable       -- disable with a TOTP or backup code
  POST   /api/v1/2fa/backup-codes  -- regenerate backup codes with a TOTP or backup code
  GET    /api/v1/2fa/devices       -- list active trusted devices
  POST   /api/v1/2fa/devices       -- trust a device for this user
  DELETE /api/v1/2fa/devices       -- forget every trusted device

Every route requires an authenticated session that passed the second factor
when 2FA is enabled (require_second_factor). Setup and confirm run before 2FA
is enabled, so for them this is the same as plain authentication.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.models import (
    BackupCodesResponse,
    CodeRequest,
    RevokedResponse,
    TrustDeviceRequest,
    TrustedDeviceResponse,
    TwoFactorDisabledResponse,
    TwoFactorEnabledResponse,
    TwoFactorSetupResponse,
    TwoFactorStatusResponse,
)
from auth.dependencies import get_authenticator, request_context, require_second_factor
from auth.models import DeviceDescriptor, Identity
from auth.results import AlreadyEnabled, BackupCodesIssued, TwoFactorDisabled, TwoFactorEnabled

router = APIRouter()


def _invalid_code() -> HTTPException:
    return HTTPException(status_code=400, detail={"code": "invalid_code", "message": "Invalid verification code."})


@router.get("/2fa/status", response_model=TwoFactorStatusResponse)
def status(request: Request, identity: Identity = Depends(require_second_factor)) -> TwoFactorStatusResponse:
    result = get_authenticator(request).get_2fa_status(identity.user_id)
    return TwoFactorStatusResponse(
        enabled=result.enabled,
        backup_codes_remaining=result.backup_codes_remaining,
        trusted_devices_count=result.trusted_devices_count,
        enabled_at=result.enabled_at,
        last_verified_at=result.last_verified_at,
    )


@router.post("/2fa/setup", response_model=TwoFactorSetupResponse)
def setup(request: Request, identity: Identity = Depends(require_second_factor)) -> JSONResponse:
    """Generate a pending seed. Calling again before confirm replaces it."""
    result = get_authenticator(request).generate_2fa_setup(identity.user_id, identity.email)
    if isinstance(result, AlreadyEnabled):
        raise HTTPException(
            status_code=409,
            detail={"code": "already_enabled", "message": "Two-factor authentication is already enabled."},
        )
    resp = JSONResponse(
        content=TwoFactorSetupResponse(
            secret=result.secret,
            provisioning_uri=result.provisioning_uri,
            qr_image=result.qr_image,
            backup_codes=result.backup_codes,
        ).model_dump()
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/2fa/confirm", response_model=TwoFactorEnabledResponse)
def confirm(
    request: Request, body: CodeRequest, identity: Identity = Depends(require_second_factor)
) -> TwoFactorEnabledResponse:
    result = get_authenticator(request).confirm_2fa(identity.user_id, body.code)
    if not isinstance(result, TwoFactorEnabled):
        raise _invalid_code()
    return TwoFactorEnabledResponse(enabled_at=result.enabled_at)


@router.post("/2fa/disable", response_model=TwoFactorDisabledResponse)
def disable(
    request: Request, body: CodeRequest, identity: Identity = Depends(require_second_factor)
) -> TwoFactorDisabledResponse:
    result = get_authenticator(request).disable_2fa(identity.user_id, body.code)
    if not isinstance(result, TwoFactorDisabled):
        raise _invalid_code()
    return TwoFactorDisabledResponse(disabled_at=result.disabled_at)


@router.post("/2fa/backup-codes", response_model=BackupCodesResponse)
def regenerate_backup_codes(
    request: Request, body: CodeRequest, identity: Identity = Depends(require_second_factor)
) -> JSONResponse:
    result = get_authenticator(request).regenerate_backup_codes(identity.user_id, body.code)
    if not isinstance(result, BackupCodesIssued):
        raise _invalid_code()
    resp = JSONResponse(content=BackupCodesResponse(backup_codes=result.codes).model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/2fa/devices", response_model=list[TrustedDeviceResponse])
def list_devices(request: Request, identity: Identity = Depends(require_second_factor)) -> list[TrustedDeviceResponse]:
    devices = get_authenticator(request).list_trusted_devices(identity.user_id)
    return [
        TrustedDeviceResponse(
            fingerprint=d.fingerprint,
            ip_address=d.ip_address,
            user_agent=d.user_agent,
            trusted_until=d.trusted_until,
            created_at=d.created_at,
        )
        for d in devices
    ]


@router.post("/2fa/devices", response_model=TwoFactorStatusResponse, status_code=201)
def trust_device(
    request: Request, body: TrustDeviceRequest, identity: Identity = Depends(require_second_factor)
) -> TwoFactorStatusResponse:
    authenticator = get_authenticator(request)
    if not authenticator.get_2fa_status(identity.user_id).enabled:
        raise HTTPException(
            status_code=400,
            detail={"code": "2fa_not_enabled", "message": "Enable two-factor authentication first."},
        )
    context = request_context(request, device_fingerprint=body.device_fingerprint)
    authenticator.trust_device(
        identity.user_id,
        DeviceDescriptor(
            fingerprint=body.device_fingerprint,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        ),
    )
    return status(request, identity)


@router.delete("/2fa/devices", response_model=RevokedResponse)
def revoke_devices(request: Request, identity: Identity = Depends(require_second_factor)) -> RevokedResponse:
    return RevokedResponse(revoked=get_authenticator(request).revoke_all_trusted_devices(identity.user_id))
