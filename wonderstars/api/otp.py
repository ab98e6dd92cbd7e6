from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from wonderstars.api.deps import get_otp_service
from wonderstars.models.otp import SendOtpRequest, VerifyOtpRequest
from wonderstars.services import OtpService

router = APIRouter(tags=["手机验证码"])


@router.post("/send-otp-sms")
async def send_otp_sms(
    payload: SendOtpRequest,
    otp_service: OtpService = Depends(get_otp_service)
):
    outcome = await otp_service.send_otp(payload.phone)
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)


@router.post("/verify-otp")
async def verify_otp(
    payload: VerifyOtpRequest,
    otp_service: OtpService = Depends(get_otp_service)
):
    outcome = await otp_service.verify_otp(payload.phone, payload.code)
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)
