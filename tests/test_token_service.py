"""Tests for access token issuance and validation."""

from datetime import timedelta

import pytest
from jose import jwt

from walletauth.services.errors import ConfigError, InvalidInputError, UnauthorizedError
from walletauth.services.refresh_token_service import RefreshTokenManager
from walletauth.services.token_service import TokenService
from walletauth.token_store import InMemoryRefreshTokenStore

SECRET = "unit-test-signing-secret"
ADDRESS = "0x" + "AB" * 20


@pytest.fixture
def token_service(clock):
    manager = RefreshTokenManager(InMemoryRefreshTokenStore(), clock=clock)
    return TokenService(manager, secret_key=SECRET, algorithm="HS256", expiry_source=lambda: "1h", clock=clock)


class TestIssueAccessToken:

    def test_claims(self, token_service, clock):
        token, expires_in = token_service.issue_access_token(ADDRESS)

        claims = jwt.decode(token, SECRET, algorithms=["HS256"])
        assert expires_in == 3600
        assert claims["sub"] == ADDRESS.lower()
        assert claims["type"] == "access_token"
        assert claims["iat"] == int(clock().timestamp())
        assert claims["exp"] - claims["iat"] == 3600

    def test_missing_address(self, token_service):
        with pytest.raises(InvalidInputError):
            token_service.issue_access_token("")

    def test_missing_secret(self, clock):
        manager = RefreshTokenManager(InMemoryRefreshTokenStore(), clock=clock)
        service = TokenService(manager, secret_key="", clock=clock)
        with pytest.raises(ConfigError) as excinfo:
            service.issue_access_token(ADDRESS)
        assert "secret" not in excinfo.value.message.lower()

    def test_secret_falls_back_to_config(self, clock, monkeypatch):
        monkeypatch.setattr("walletauth.config.JWT_SECRET_KEY", "from-config")
        manager = RefreshTokenManager(InMemoryRefreshTokenStore(), clock=clock)
        service = TokenService(manager, clock=clock, expiry_source=lambda: "2h")

        token, expires_in = service.issue_access_token(ADDRESS)

        assert expires_in == 7200
        assert jwt.decode(token, "from-config", algorithms=["HS256"])["sub"] == ADDRESS.lower()

    def test_bad_expiry_falls_back_to_default(self, clock):
        manager = RefreshTokenManager(InMemoryRefreshTokenStore(), clock=clock)
        service = TokenService(manager, secret_key=SECRET, expiry_source=lambda: "forever", clock=clock)
        assert service.issue_access_token(ADDRESS)[1] == 3600


class TestDecodeAccessToken:

    def test_round_trip(self, token_service):
        token, _ = token_service.issue_access_token(ADDRESS)
        assert token_service.decode_access_token(token)["sub"] == ADDRESS.lower()

    def test_expired(self, token_service, clock):
        clock.advance(hours=-2)
        token, _ = token_service.issue_access_token(ADDRESS)
        with pytest.raises(UnauthorizedError, match="expired"):
            token_service.decode_access_token(token)

    def test_wrong_secret(self, token_service):
        forged = jwt.encode({"sub": ADDRESS.lower(), "type": "access_token"}, "other-secret", algorithm="HS256")
        with pytest.raises(UnauthorizedError):
            token_service.decode_access_token(forged)

    def test_wrong_type(self, token_service, clock):
        other = jwt.encode(
            {"sub": ADDRESS.lower(), "type": "refresh", "exp": int((clock() + timedelta(hours=1)).timestamp())},
            SECRET,
            algorithm="HS256",
        )
        with pytest.raises(UnauthorizedError):
            token_service.decode_access_token(other)

    def test_empty(self, token_service):
        with pytest.raises(UnauthorizedError):
            token_service.decode_access_token("")


def test_issue_refresh_token_delegates_to_manager(token_service):
    secret = token_service.issue_refresh_token(ADDRESS, "id-9")
    assert [r.secret for r in token_service.refresh_tokens.active_tokens("id-9")] == [secret]
