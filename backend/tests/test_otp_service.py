from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from estatehub.core.exceptions import (
    DeliveryFailedError,
    InvalidInputError,
    InvalidOrExpiredOtpError,
    NotFoundError,
    OtpAttemptsExceededError,
)
from estatehub.core.security import hash_otp, utcnow
from estatehub.db.base import Base
from estatehub.models.otp import OtpAttempt, OtpRequest
from estatehub.models.session import UserSession
from estatehub.models.user import User
from estatehub.services.otp import (
    RequestMeta,
    find_active_otp_request,
    generate_otp,
    issue_login_otp,
    normalize_code,
    record_verification_attempt,
    verify_login_otp,
)

from conftest import TEST_PHONE, FakeSmsGateway, make_settings


def test_generate_otp_is_fixed_outside_production():
    assert generate_otp(make_settings()) == "1234"
    assert generate_otp(make_settings(otp_test_code="0000")) == "0000"


def test_generate_otp_in_production_is_random_digits():
    settings = make_settings(environment="production", otp_length=6)
    codes = {generate_otp(settings) for _ in range(20)}
    assert all(len(code) == 6 and code.isdigit() for code in codes)
    assert len(codes) > 1


def test_normalize_code_strips_non_digits():
    assert normalize_code(" 1 2-3a4 ") == "1234"
    assert normalize_code(None) == ""


def test_issue_persists_only_the_hash(db, user, sms_gateway):
    settings = make_settings(environment="production", otp_length=4)
    result = issue_login_otp(
        db,
        phone=f"  {TEST_PHONE} ",
        settings=settings,
        sms_gateway=sms_gateway,
        meta=RequestMeta(ip="203.0.113.7", user_agent="pytest"),
    )
    code = sms_gateway.last_code

    assert result.phone == TEST_PHONE
    assert result.expires_in == "5 minutes"

    otp_request = db.get(OtpRequest, result.request_id)
    assert otp_request.identifier == TEST_PHONE
    assert otp_request.purpose == "WEB_LOGIN"
    assert otp_request.channel == "SMS"
    assert otp_request.attempt_count == 0
    assert otp_request.max_attempts == 5
    assert otp_request.consumed_at is None
    assert otp_request.ip_address == "203.0.113.7"
    assert otp_request.user_agent == "pytest"
    assert otp_request.otp_hash == hash_otp("test-otp-secret", TEST_PHONE, code)

    stored_values = [str(value) for value in vars(otp_request).values()]
    assert not any(value == code for value in stored_values)


def test_issue_requires_phone(db, sms_gateway):
    with pytest.raises(InvalidInputError):
        issue_login_otp(db, phone="  ", settings=make_settings(), sms_gateway=sms_gateway)
    assert sms_gateway.sent == []


def test_issue_for_unknown_phone_sends_nothing(db, sms_gateway):
    with pytest.raises(NotFoundError):
        issue_login_otp(db, phone="9000000000", settings=make_settings(), sms_gateway=sms_gateway)
    assert sms_gateway.sent == []
    assert db.execute(select(OtpRequest)).first() is None


def test_issue_delivery_failure_creates_no_request(db, user):
    with pytest.raises(DeliveryFailedError):
        issue_login_otp(
            db,
            phone=TEST_PHONE,
            settings=make_settings(environment="production"),
            sms_gateway=FakeSmsGateway(succeed=False),
        )
    assert db.execute(select(OtpRequest)).first() is None


def test_verify_returns_user_and_tokens(db, user, sms_gateway):
    settings = make_settings()
    issue_login_otp(db, phone=TEST_PHONE, settings=settings, sms_gateway=sms_gateway)

    result = verify_login_otp(db, phone=TEST_PHONE, code="1234", settings=settings)

    assert result.user.id == user.id
    assert result.access_token
    assert len(result.refresh_token) == 64
    assert db.execute(select(UserSession)).scalar_one().user_id == user.id


def test_stale_snapshot_cannot_consume_twice(db, user, sms_gateway):
    settings = make_settings()
    issue_login_otp(db, phone=TEST_PHONE, settings=settings, sms_gateway=sms_gateway)
    now = utcnow()
    otp_request = find_active_otp_request(db, phone=TEST_PHONE, now=now)
    otp_request_id = otp_request.id

    kwargs = dict(
        otp_request_id=otp_request_id,
        user_id=user.id,
        phone=TEST_PHONE,
        succeeded=True,
        now=now,
        meta=RequestMeta(),
    )
    assert record_verification_attempt(db, **kwargs) is True
    # A second verifier that read the request before the first committed.
    assert record_verification_attempt(db, **kwargs) is False

    attempts = db.execute(select(OtpAttempt).order_by(OtpAttempt.id)).scalars().all()
    assert [attempt.succeeded for attempt in attempts] == [True, False]
    assert all(attempt.otp_request_id == otp_request_id for attempt in attempts)
    assert db.get(OtpRequest, otp_request_id).attempt_count == 1


def test_lost_race_on_exhausted_request_reports_attempts_exceeded(db, user, sms_gateway, monkeypatch):
    settings = make_settings(otp_max_attempts=1)
    issue_login_otp(db, phone=TEST_PHONE, settings=settings, sms_gateway=sms_gateway)
    otp_request = find_active_otp_request(db, phone=TEST_PHONE, now=utcnow())
    snapshot = SimpleNamespace(id=otp_request.id, attempt_count=0, max_attempts=1, otp_hash=otp_request.otp_hash)
    otp_request.attempt_count = 1
    db.commit()

    # A reader that loaded the request before another verifier used up its budget.
    monkeypatch.setattr("estatehub.services.otp.find_active_otp_request", lambda session, **_: snapshot)
    with pytest.raises(OtpAttemptsExceededError):
        verify_login_otp(db, phone=TEST_PHONE, code="1234", settings=settings)


def test_concurrent_correct_submissions_succeed_once(tmp_path, sms_gateway):
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    settings = make_settings()

    with factory() as session:
        session.add(User(name="Ravi Kumar", email="ravi@example.com", phone=TEST_PHONE, is_active=True))
        session.commit()
        issue_login_otp(session, phone=TEST_PHONE, settings=settings, sms_gateway=sms_gateway)

    def attempt(_):
        with factory() as session:
            try:
                verify_login_otp(session, phone=TEST_PHONE, code="1234", settings=settings)
                return "ok"
            except InvalidOrExpiredOtpError:
                return "invalid"
            except OtpAttemptsExceededError:
                return "exceeded"

    with ThreadPoolExecutor(max_workers=6) as pool:
        outcomes = list(pool.map(attempt, range(6)))

    assert outcomes.count("ok") == 1
    assert set(outcomes) <= {"ok", "invalid", "exceeded"}

    with factory() as session:
        assert len(session.execute(select(UserSession)).scalars().all()) == 1
        successes = session.execute(select(OtpAttempt).where(OtpAttempt.succeeded.is_(True))).scalars().all()
        assert len(successes) == 1
    engine.dispose()
