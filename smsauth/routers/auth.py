"""
Phone login: send code, verify code, logout
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from ..core.env import is_local_env
from ..core.security import create_session_token, session_cookie_params
from ..dependencies import get_coordinator
from ..schemas.auth import (
    LogoutResponse,
    RateLimitStatus,
    RateLimitStatusResponse,
    SendCodeRequest,
    SendCodeResponse,
    VerifyRequest,
    VerifyResponse,
)
from ..services.verification_service import PURPOSE_LOGIN, VerificationCoordinator
from ..utils.client_ip import get_client_origin

router = APIRouter(prefix="/v1/auth", tags=["auth"])


@router.post("/send-code", response_model=SendCodeResponse)
async def send_code(
    payload: SendCodeRequest,
    request: Request,
    coordinator: VerificationCoordinator = Depends(get_coordinator),
):
    """
    Send a login code by SMS.

    Answers the same way for unknown phones unless
    AUTH_CONCEAL_UNKNOWN_PHONE is off.
    """
    await coordinator.request_code(
        payload.phone,
        ip=get_client_origin(request),
        purpose=PURPOSE_LOGIN,
        request_id=getattr(request.state, "request_id", None),
    )
    return SendCodeResponse()


@router.post("/verify", response_model=VerifyResponse)
async def verify(
    payload: VerifyRequest,
    request: Request,
    response: Response,
    coordinator: VerificationCoordinator = Depends(get_coordinator),
):
    """Check a login code and issue the session cookie."""
    result = await coordinator.check_code(
        payload.phone,
        payload.code,
        ip=get_client_origin(request),
        purpose=PURPOSE_LOGIN,
        request_id=getattr(request.state, "request_id", None),
    )
    response.set_cookie(value=create_session_token(result.subject_id), **session_cookie_params())
    return VerifyResponse(user_id=result.subject_id, already_verified=result.already_verified)


@router.get("/rate-limit", response_model=RateLimitStatusResponse)
async def rate_limit_status(
    request: Request,
    phone: Optional[str] = None,
    coordinator: VerificationCoordinator = Depends(get_coordinator),
):
    """Local-only view of the caller's rate-limit counters. Does not consume a slot."""
    if not is_local_env():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")

    results = coordinator.rate_limit_status(get_client_origin(request), phone=phone)
    return RateLimitStatusResponse(
        limits=[
            RateLimitStatus(
                purpose=r.key.purpose,
                scope=r.key.scope,
                allowed=r.allowed,
                remaining=r.remaining,
                limit=r.limit,
                reset_at=r.reset_at,
                degraded=r.degraded,
            )
            for r in results
        ]
    )


@router.post("/logout", response_model=LogoutResponse)
async def logout(response: Response):
    params = session_cookie_params()
    response.delete_cookie(
        key=params["key"],
        path=params["path"],
        secure=params["secure"],
        httponly=params["httponly"],
        samesite=params["samesite"],
    )
    return LogoutResponse(ok=True)
