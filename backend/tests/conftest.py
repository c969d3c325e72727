import os
import tempfile

# Point the module-level engine at a throwaway database before the app is imported.
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+pysqlite:///" + os.path.join(tempfile.mkdtemp(prefix="estatehub-tests-"), "app.db"),
)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from estatehub.api.deps import get_db, get_sms_gateway
from estatehub.core.config import Settings, get_settings
from estatehub.db.base import Base
from estatehub.main import app
from estatehub.models.user import User
import estatehub.models  # noqa: F401


TEST_PHONE = "9198248449609"


def make_settings(**overrides) -> Settings:
    defaults = dict(
        environment="development",
        database_url="sqlite+pysqlite://",
        otp_expire_minutes=5,
        otp_length=4,
        otp_max_attempts=5,
        otp_secret="test-otp-secret",
        jwt_secret_key="test-jwt-secret",
        sms_api_user=None,
        sms_api_password=None,
    )
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)


class FakeSmsGateway:
    """Records delivered codes instead of calling the provider."""

    def __init__(self, succeed: bool = True) -> None:
        self.succeed = succeed
        self.sent: list[tuple[str, str]] = []

    def send_otp(self, phone_number: str, otp: str) -> bool:
        if not self.succeed:
            return False
        self.sent.append((phone_number, otp))
        return True

    @property
    def last_code(self) -> str:
        return self.sent[-1][1]


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def settings():
    return make_settings()


@pytest.fixture()
def sms_gateway():
    return FakeSmsGateway()


@pytest.fixture()
def user(db):
    record = User(name="Asha Menon", email="asha@example.com", phone=TEST_PHONE, is_active=True)
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


@pytest.fixture()
def client(session_factory, settings, sms_gateway):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_sms_gateway] = lambda: sms_gateway

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
