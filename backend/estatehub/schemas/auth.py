from datetime import datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SendOtpRequest(BaseModel):
    phone: str = Field(min_length=1, max_length=32, examples=["+919876543210"])

    @field_validator("phone")
    @classmethod
    def normalize_phone(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("Phone is required")
        return trimmed


class VerifyOtpRequest(SendOtpRequest):
    otp: str = Field(min_length=1, max_length=16, examples=["1234"])

    @field_validator("otp")
    @classmethod
    def require_otp(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("OTP is required")
        return trimmed


class OtpSentOut(CamelModel):
    phone: str
    expires_in: str
    request_id: int


class UserOut(CamelModel):
    id: int
    name: str
    email: str | None = None
    phone: str

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class LoginOut(CamelModel):
    user: UserOut
    access_token: str
    refresh_token: str


class ErrorInfo(BaseModel):
    code: str
    details: dict | list | None = None


class ApiResponse(CamelModel, Generic[T]):
    success: bool
    status_code: int
    message: str
    data: T | None = None
    error: ErrorInfo | None = None
    timestamp: datetime
    path: str | None = None
