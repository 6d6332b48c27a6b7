import os
import sys
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Configure the service before any walletauth import reads the environment
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-testing-only-do-not-use-in-production")
os.environ.setdefault("JWT_EXPIRY", "1h")
os.environ.setdefault("APP_ENV", "development")

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402
from eth_account import Account  # noqa: E402
from eth_account.messages import encode_defunct  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from walletauth.main import app  # noqa: E402
from walletauth.services.auth_service import build_auth_service, get_auth_service  # noqa: E402
from walletauth.services.signature_service import build_challenge_message  # noqa: E402


class FakeClock:
    """Thread-safe controllable UTC clock."""

    def __init__(self, start: datetime | None = None):
        self._now = start or datetime.now(timezone.utc)
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, **kwargs) -> None:
        with self._lock:
            self._now = self._now + timedelta(**kwargs)


def sign_challenge(account, nonce: str) -> str:
    """personal_sign the challenge for ``nonce``, as MetaMask would."""
    signed = Account.sign_message(encode_defunct(text=build_challenge_message(nonce)), private_key=account.key)
    return "0x" + bytes(signed.signature).hex()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def auth_service(clock):
    return build_auth_service(clock=clock)


@pytest.fixture
def wallet():
    return Account.create()


@pytest.fixture
def other_wallet():
    return Account.create()


@pytest.fixture
def client(auth_service):
    app.dependency_overrides[get_auth_service] = lambda: auth_service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
