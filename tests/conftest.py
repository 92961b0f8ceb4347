import os
import tempfile
from unittest.mock import Mock

import pytest

# focusapi 설정/엔진이 import 시점에 환경 변수를 읽으므로 먼저 지정
_DB_PATH = os.path.join(tempfile.gettempdir(), f"focusapi_test_{os.getpid()}.db")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_PATH}"
os.environ["AUTH_TOKEN"] = "test-internal-token"
os.environ["LEDGER_RETRY_BACKOFF_MS"] = "0"

from focusapi.config import Settings  # noqa: E402
from focusapi.database.connection import SessionLocal, engine  # noqa: E402
from focusapi.models.base import Base  # noqa: E402
from focusapi.repositories.ledger_repository import LedgerRepository  # noqa: E402
from focusapi.services.enforcement_service import EnforcementService  # noqa: E402

import focusapi.models.balance  # noqa: E402,F401
import focusapi.models.investment  # noqa: E402,F401
import focusapi.models.processed_window  # noqa: E402,F401
import focusapi.models.transaction  # noqa: E402,F401

# 2024-01-01 09:00:00 UTC (정시)
BASE_NOW = 1704099600000


@pytest.fixture(autouse=True)
def schema():
    """테스트마다 빈 스키마"""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    engine.dispose()


@pytest.fixture(scope="session", autouse=True)
def _remove_db_file():
    yield
    engine.dispose()
    if os.path.exists(_DB_PATH):
        os.remove(_DB_PATH)


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def other_db():
    """동시 요청을 흉내 내기 위한 별도 세션"""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def provision(db):
    """잔액 레코드 생성 헬퍼"""

    def _provision(user_id: str = "user-1", balance: int = 0):
        return LedgerRepository(db).provision_user(user_id, initial_balance=balance, now=BASE_NOW)

    return _provision


@pytest.fixture
def enforcement():
    mock_enforcement = Mock(spec=EnforcementService)
    mock_enforcement.sync_locked_set.return_value = True
    return mock_enforcement
