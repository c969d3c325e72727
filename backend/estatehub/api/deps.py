from collections.abc import Generator

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from estatehub.core.config import Settings, get_settings
from estatehub.core.security import decode_token
from estatehub.db.session import SessionLocal
from estatehub.models.user import User
from estatehub.services.identity import get_active_user
from estatehub.services.otp import RequestMeta
from estatehub.services.sms import SmsGateway

security = HTTPBearer()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_sms_gateway(settings: Settings = Depends(get_settings)) -> SmsGateway:
    return SmsGateway(settings)


def get_request_meta(request: Request) -> RequestMeta:
    forwarded = request.headers.get("x-forwarded-for", "")
    ip = forwarded.split(",")[0].strip() if forwarded else None
    if not ip and request.client and request.client.host:
        ip = request.client.host
    return RequestMeta(ip=ip or None, user_agent=request.headers.get("user-agent"))


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_token(credentials.credentials, settings=settings)
        user_id = int(payload.get("sub"))
    except (JWTError, TypeError, ValueError) as exc:
        raise credentials_exception from exc

    user = get_active_user(db, user_id)
    if user is None:
        raise credentials_exception
    return user
