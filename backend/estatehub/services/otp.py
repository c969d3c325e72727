"""Phone OTP login: code issuance, verification and session minting.

Every call re-reads and re-writes through the database session it is given;
nothing is cached between requests. Verification picks the most recently
created unexpired, unconsumed request for the phone. Older requests issued by
a resend stay in the table but can no longer be reached.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
import re
import secrets
import string

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from estatehub.core.config import Settings
from estatehub.core.exceptions import (
    DeliveryFailedError,
    InvalidInputError,
    InvalidOrExpiredOtpError,
    NotFoundError,
    OtpAttemptsExceededError,
)
from estatehub.core.security import (
    create_access_token,
    generate_refresh_token,
    hash_otp,
    hash_refresh_token,
    hashes_match,
    utcnow,
)
from estatehub.models.otp import OtpAttempt, OtpChannel, OtpPurpose, OtpRequest
from estatehub.models.session import UserSession
from estatehub.models.user import User
from estatehub.services.identity import find_active_user_by_phone
from estatehub.services.sms import SmsGateway

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"[^0-9]")


@dataclass(frozen=True)
class RequestMeta:
    ip: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class OtpIssueResult:
    phone: str
    expires_in: str
    request_id: int


@dataclass(frozen=True)
class LoginResult:
    user: User
    access_token: str
    refresh_token: str


def normalize_phone(phone: str | None) -> str:
    return (phone or "").strip()


def normalize_code(code: str | None) -> str:
    return _NON_DIGITS.sub("", code or "")


def generate_otp(settings: Settings) -> str:
    if not settings.is_production:
        return settings.otp_test_code
    return "".join(secrets.choice(string.digits) for _ in range(settings.otp_length))


def issue_login_otp(
    db: Session,
    *,
    phone: str,
    settings: Settings,
    sms_gateway: SmsGateway,
    meta: RequestMeta | None = None,
) -> OtpIssueResult:
    meta = meta or RequestMeta()
    phone = normalize_phone(phone)
    if not phone:
        raise InvalidInputError("Phone is required")

    user = find_active_user_by_phone(db, phone)
    if user is None:
        raise NotFoundError("User not found with this phone number")

    otp_code = generate_otp(settings)
    now = utcnow()

    # Nothing is persisted unless the provider accepted the message.
    if not sms_gateway.send_otp(phone, otp_code):
        logger.error("OTP delivery failed | phone=%s", phone)
        raise DeliveryFailedError()

    otp_request = OtpRequest(
        user_id=user.id,
        identifier=phone,
        purpose=OtpPurpose.web_login.value,
        channel=OtpChannel.sms.value,
        otp_hash=hash_otp(settings.otp_secret, phone, otp_code),
        expires_at=now + timedelta(minutes=settings.otp_expire_minutes),
        max_attempts=settings.otp_max_attempts,
        attempt_count=0,
        ip_address=meta.ip,
        user_agent=meta.user_agent,
        created_at=now,
    )
    db.add(otp_request)
    db.commit()
    db.refresh(otp_request)
    logger.info("OTP issued | phone=%s | request_id=%s", phone, otp_request.id)

    return OtpIssueResult(
        phone=phone,
        expires_in=f"{settings.otp_expire_minutes} minutes",
        request_id=otp_request.id,
    )


def find_active_otp_request(db: Session, *, phone: str, now: datetime) -> OtpRequest | None:
    statement = (
        select(OtpRequest)
        .where(
            OtpRequest.identifier == phone,
            OtpRequest.purpose == OtpPurpose.web_login.value,
            OtpRequest.expires_at > now,
            OtpRequest.consumed_at.is_(None),
        )
        .order_by(OtpRequest.created_at.desc(), OtpRequest.id.desc())
        .limit(1)
    )
    return db.execute(statement).scalar_one_or_none()


def record_verification_attempt(
    db: Session,
    *,
    otp_request_id: int,
    user_id: int,
    phone: str,
    succeeded: bool,
    now: datetime,
    meta: RequestMeta,
) -> bool:
    """Count the attempt and, on success, consume the request in one transaction.

    The update only matches a request that is still live, so of two racing
    verifications at most one can consume it. Returns ``False`` when the request
    was consumed, exhausted or expired in the meantime; the counter change is
    rolled back and a failed attempt is committed on its own.
    """
    values: dict = {
        "attempt_count": OtpRequest.attempt_count + 1,
        "last_attempt_at": now,
    }
    if succeeded:
        values["consumed_at"] = now

    def _attempt(outcome: bool) -> OtpAttempt:
        return OtpAttempt(
            otp_request_id=otp_request_id,
            user_id=user_id,
            identifier=phone,
            purpose=OtpPurpose.web_login.value,
            succeeded=outcome,
            ip_address=meta.ip,
            user_agent=meta.user_agent,
            created_at=now,
        )

    try:
        result = db.execute(
            update(OtpRequest)
            .where(
                OtpRequest.id == otp_request_id,
                OtpRequest.consumed_at.is_(None),
                OtpRequest.attempt_count < OtpRequest.max_attempts,
                OtpRequest.expires_at > now,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            db.add(_attempt(False))
            db.commit()
            return False

        db.add(_attempt(succeeded))
        db.commit()
    except Exception:
        db.rollback()
        raise
    return True


def _raise_for_lost_race(db: Session, otp_request_id: int) -> None:
    current = db.get(OtpRequest, otp_request_id)
    if current is not None and current.consumed_at is None and current.attempt_count >= current.max_attempts:
        raise OtpAttemptsExceededError()
    raise InvalidOrExpiredOtpError()


def issue_session_tokens(
    db: Session,
    *,
    user: User,
    settings: Settings,
    now: datetime,
    meta: RequestMeta,
) -> tuple[str, str]:
    access_token = create_access_token(
        user.id,
        claims={"phone": user.phone, "email": user.email},
        expires_delta=timedelta(minutes=settings.access_token_expire_minutes),
        settings=settings,
    )
    refresh_token = generate_refresh_token()
    db.add(
        UserSession(
            user_id=user.id,
            refresh_token_hash=hash_refresh_token(settings.otp_secret, refresh_token),
            expires_at=now + timedelta(days=settings.refresh_token_days),
            ip_address=meta.ip,
            user_agent=meta.user_agent,
            created_at=now,
        )
    )
    db.commit()
    return access_token, refresh_token


def verify_login_otp(
    db: Session,
    *,
    phone: str,
    code: str,
    settings: Settings,
    meta: RequestMeta | None = None,
) -> LoginResult:
    meta = meta or RequestMeta()
    phone = normalize_phone(phone)
    code = normalize_code(code)
    if not phone or not code:
        raise InvalidInputError("Phone and otp are required")

    user = find_active_user_by_phone(db, phone)
    if user is None:
        raise NotFoundError("User not found")

    now = utcnow()
    otp_request = find_active_otp_request(db, phone=phone, now=now)
    if otp_request is None:
        raise InvalidOrExpiredOtpError()
    if otp_request.attempt_count >= otp_request.max_attempts:
        raise OtpAttemptsExceededError()

    otp_request_id = otp_request.id
    ok = hashes_match(hash_otp(settings.otp_secret, phone, code), otp_request.otp_hash)

    recorded = record_verification_attempt(
        db,
        otp_request_id=otp_request_id,
        user_id=user.id,
        phone=phone,
        succeeded=ok,
        now=now,
        meta=meta,
    )
    if not recorded:
        _raise_for_lost_race(db, otp_request_id)
    if not ok:
        logger.info("OTP mismatch | phone=%s | request_id=%s", phone, otp_request_id)
        raise InvalidOrExpiredOtpError()

    access_token, refresh_token = issue_session_tokens(db, user=user, settings=settings, now=now, meta=meta)
    db.refresh(user)
    logger.info("OTP login succeeded | user_id=%s | request_id=%s", user.id, otp_request_id)
    return LoginResult(user=user, access_token=access_token, refresh_token=refresh_token)
