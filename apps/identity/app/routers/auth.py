import datetime as dt

from fastapi import APIRouter, Depends, Request

from ..auth import Principal, get_current_principal, get_otp_engine
from ..schemas import (
    PrincipalOut,
    ProfileOut,
    SendOTPIn,
    SendOTPOut,
    VerifyOTPIn,
    VerifyOTPOut,
    user_out,
)
from ..utils.otp import OTPEngine
from ..utils.tokens import issue_token


router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/send-otp", response_model=SendOTPOut, response_model_exclude_none=True)
def send_otp(payload: SendOTPIn, request: Request, engine: OTPEngine = Depends(get_otp_engine)):
    otp = engine.send_otp(payload.phone_number)
    resp = SendOTPOut(message="OTP sent successfully", expires_at=otp.expires_at)
    # Dev hint only; never enabled outside ENV=dev
    if request.app.state.otp_dev_echo:
        resp.dev_code = otp.code
    return resp


@router.post("/verify-otp", response_model=VerifyOTPOut)
def verify_otp(payload: VerifyOTPIn, request: Request, engine: OTPEngine = Depends(get_otp_engine)):
    result = engine.verify_otp(payload.phone_number, payload.code)
    user = result.user
    now = dt.datetime.now(dt.timezone.utc).replace(microsecond=0)
    expires_in = request.app.state.jwt_expires
    token = issue_token(user.id, user.phone_number, request.app.state.jwt_secret, expires_in=expires_in, now=now)
    return VerifyOTPOut(
        message="Registration successful" if result.registered else "Login successful",
        token=token,
        expires_at=now + expires_in,
        user=user_out(user),
    )


@router.get("/profile", response_model=ProfileOut)
def profile(principal: Principal = Depends(get_current_principal)):
    return ProfileOut(user=PrincipalOut(id=str(principal.user_id), phone_number=principal.phone_number))
