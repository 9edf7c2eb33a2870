"""
Registration phone verification.

Stops at "phone verified"; creating the account is the caller's job.
"""
from fastapi import APIRouter, Depends, Request

from ..dependencies import get_coordinator
from ..schemas.auth import (
    RegisterSendCodeRequest,
    RegisterVerifyRequest,
    RegisterVerifyResponse,
    SendCodeResponse,
)
from ..services.verification_service import PURPOSE_REGISTER, VerificationCoordinator
from ..utils.client_ip import get_client_origin

router = APIRouter(prefix="/v1/register", tags=["register"])


@router.post("/send-code", response_model=SendCodeResponse)
async def send_code(
    payload: RegisterSendCodeRequest,
    request: Request,
    coordinator: VerificationCoordinator = Depends(get_coordinator),
):
    await coordinator.request_code(
        payload.phone,
        ip=get_client_origin(request),
        purpose=PURPOSE_REGISTER,
        request_id=getattr(request.state, "request_id", None),
    )
    return SendCodeResponse()


@router.post("/verify", response_model=RegisterVerifyResponse)
async def verify(
    payload: RegisterVerifyRequest,
    request: Request,
    coordinator: VerificationCoordinator = Depends(get_coordinator),
):
    result = await coordinator.check_code(
        payload.phone,
        payload.code,
        ip=get_client_origin(request),
        purpose=PURPOSE_REGISTER,
        request_id=getattr(request.state, "request_id", None),
    )
    return RegisterVerifyResponse(phone=result.phone, already_verified=result.already_verified)
