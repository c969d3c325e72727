from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from estatehub.api.deps import get_current_user, get_db, get_request_meta, get_sms_gateway
from estatehub.core.config import Settings, get_settings
from estatehub.core.responses import success_response
from estatehub.models.user import User
from estatehub.schemas.auth import (
    ApiResponse,
    LoginOut,
    OtpSentOut,
    SendOtpRequest,
    UserOut,
    VerifyOtpRequest,
)
from estatehub.services.otp import RequestMeta, issue_login_otp, verify_login_otp
from estatehub.services.sms import SmsGateway

router = APIRouter()


def _otp_sent(request: Request, db: Session, payload: SendOtpRequest, *, settings, sms_gateway, meta, message) -> dict:
    result = issue_login_otp(
        db,
        phone=payload.phone,
        settings=settings,
        sms_gateway=sms_gateway,
        meta=meta,
    )
    data = OtpSentOut(phone=result.phone, expires_in=result.expires_in, request_id=result.request_id)
    return success_response(request, data.model_dump(by_alias=True), message)


@router.post("/send-otp", response_model=ApiResponse[OtpSentOut], response_model_exclude_none=True)
def send_otp(
    payload: SendOtpRequest,
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    sms_gateway: SmsGateway = Depends(get_sms_gateway),
    meta: RequestMeta = Depends(get_request_meta),
) -> dict:
    return _otp_sent(
        request,
        db,
        payload,
        settings=settings,
        sms_gateway=sms_gateway,
        meta=meta,
        message="OTP sent successfully",
    )


@router.post("/resend-otp", response_model=ApiResponse[OtpSentOut], response_model_exclude_none=True)
def resend_otp(
    payload: SendOtpRequest,
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    sms_gateway: SmsGateway = Depends(get_sms_gateway),
    meta: RequestMeta = Depends(get_request_meta),
) -> dict:
    return _otp_sent(
        request,
        db,
        payload,
        settings=settings,
        sms_gateway=sms_gateway,
        meta=meta,
        message="OTP resent successfully",
    )


@router.post("/verify-otp", response_model=ApiResponse[LoginOut], response_model_exclude_none=True)
def verify_otp(
    payload: VerifyOtpRequest,
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    meta: RequestMeta = Depends(get_request_meta),
) -> dict:
    result = verify_login_otp(
        db,
        phone=payload.phone,
        code=payload.otp,
        settings=settings,
        meta=meta,
    )
    data = LoginOut(
        user=UserOut.model_validate(result.user),
        access_token=result.access_token,
        refresh_token=result.refresh_token,
    )
    return success_response(request, data.model_dump(by_alias=True), "Login successful")


@router.get("/me", response_model=ApiResponse[UserOut], response_model_exclude_none=True)
def me(request: Request, current_user: User = Depends(get_current_user)) -> dict:
    return success_response(request, UserOut.model_validate(current_user).model_dump(by_alias=True))
