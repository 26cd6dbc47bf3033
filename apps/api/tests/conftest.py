import threading

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import app.models  # noqa: F401
from app.auth.dependencies import reset_rate_limits
from app.auth.jwt import issue_jwt
from app.config import settings
from app.db.base import Base
from app.db.session import engine as app_engine
from app.db.session import get_db
from app.integrations.errors import IntegrationRejectedError
from app.integrations.ledger_client import TransferReceipt
from app.main import app
from app.observability import metrics_store

CUSTODIAL_ADDRESS = "0x" + "c" * 40
TOKEN_UNIT = 10**18


class FakeLedger:
    """In-memory ERC-20 ledger with an 18-decimal token."""

    def __init__(self, balance_tokens: int = 0, decimals: int = 18) -> None:
        self.custodial_address = CUSTODIAL_ADDRESS
        self._decimals = decimals
        self.balances: dict[str, int] = {CUSTODIAL_ADDRESS: balance_tokens * 10**decimals}
        self.failing_recipients: set[str] = set()
        self.unconfirmed: set[str] = set()
        self.transfers: list[tuple[str, int, str]] = []

    def decimals(self) -> int:
        return self._decimals

    def balance_of(self, address: str) -> int:
        return self.balances.get(address.lower(), 0)

    def transfer(self, recipient: str, amount: int) -> str:
        if recipient in self.failing_recipients:
            raise IntegrationRejectedError("custodial_signer", "execution reverted: transfer rejected")
        self.balances[CUSTODIAL_ADDRESS] -= amount
        self.balances[recipient] = self.balances.get(recipient, 0) + amount
        tx_hash = f"0x{len(self.transfers) + 1:064x}"
        self.transfers.append((recipient, amount, tx_hash))
        return tx_hash

    def wait_for_confirmation(self, tx_hash: str) -> TransferReceipt:
        if tx_hash in self.unconfirmed:
            raise IntegrationRejectedError("ledger", f"Transfer {tx_hash} reverted on-chain")
        return TransferReceipt(tx_hash=tx_hash, block_number=1, succeeded=True)


@pytest.fixture(scope="session", autouse=True)
def setup_test_schema():
    Base.metadata.drop_all(bind=app_engine)
    Base.metadata.create_all(bind=app_engine)
    yield
    Base.metadata.drop_all(bind=app_engine)


@pytest.fixture(autouse=True)
def reset_db():
    reset_rate_limits()
    Base.metadata.drop_all(bind=app_engine)
    Base.metadata.create_all(bind=app_engine)
    yield


@pytest.fixture(autouse=True)
def reset_metrics_store():
    metrics_store.reset()
    yield


@pytest.fixture(scope="session", autouse=True)
def enable_testing_mode():
    original = settings.testing
    settings.testing = True
    yield
    settings.testing = original


@pytest.fixture
def db_session():
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=app_engine)
    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client(db_session):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=app_engine)
    db_session_lock = threading.Lock()

    def override_get_db():
        if db_session_lock.acquire(blocking=False):
            try:
                yield db_session
            finally:
                db_session_lock.release()
            return

        db = testing_session_local()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def fake_ledger():
    return FakeLedger(balance_tokens=5000)


@pytest.fixture
def auth_headers():
    def _headers(role: str, sub: str) -> dict[str, str]:
        token = issue_jwt({"sub": sub, "role": role}, settings.jwt_secret)
        return {"Authorization": f"Bearer {token}"}

    return {
        "admin": _headers("ADMIN", "admin-1"),
        "ops": _headers("OPS", "ops-1"),
        "buyer": _headers("BUYER", "buyer-1"),
    }
