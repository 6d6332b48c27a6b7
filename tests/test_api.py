"""HTTP-level tests for the users and auth routers."""

from unittest.mock import patch

from conftest import sign_challenge


def _login(client, wallet):
    nonce = client.post("/users", json={"publicAddress": wallet.address}).json()["nonce"]
    response = client.post(
        "/auth/authenticate",
        json={"publicAddress": wallet.address, "signature": sign_challenge(wallet, nonce)},
    )
    assert response.status_code == 200, response.text
    return response.json()


class TestHealth:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_health_without_node(self, client):
        with patch("walletauth.config.ETH_NODE_URL", None):
            response = client.get("/api/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["ethNode"] == {"configured": False, "connected": False}


class TestUsers:

    def test_post_find_or_create(self, client, wallet):
        response = client.post("/users", json={"publicAddress": wallet.address})

        assert response.status_code == 200
        body = response.json()
        assert body["publicAddress"] == wallet.address.lower()
        assert len(body["nonce"]) == 32

    def test_get_returns_same_nonce(self, client, wallet):
        created = client.post("/users", json={"publicAddress": wallet.address}).json()
        response = client.get("/users", params={"publicAddress": wallet.address.lower()})

        assert response.status_code == 200
        assert response.json() == {"nonce": created["nonce"]}

    def test_bad_address_is_400(self, client):
        response = client.post("/users", json={"publicAddress": "0xnope"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid Ethereum address format"

    def test_missing_address_is_400(self, client):
        response = client.post("/users", json={})
        assert response.status_code == 400

    def test_me_requires_bearer_token(self, client):
        assert client.get("/users/me").status_code == 401

    def test_me_with_access_token(self, client, wallet):
        tokens = _login(client, wallet)
        response = client.get("/users/me", headers={"Authorization": f"Bearer {tokens['accessToken']}"})

        assert response.status_code == 200
        assert response.json()["publicAddress"] == wallet.address.lower()
        assert response.json()["loginCount"] == 1

    def test_me_with_tampered_token(self, client, wallet):
        tokens = _login(client, wallet)
        response = client.get("/users/me", headers={"Authorization": f"Bearer {tokens['accessToken'][:-4]}AAAA"})
        assert response.status_code == 401


class TestAuthenticate:

    def test_end_to_end_flow(self, client, wallet):
        mixed_case = "0x" + wallet.address[2:].upper()
        found = client.post("/users", json={"publicAddress": mixed_case}).json()

        response = client.post(
            "/auth/authenticate",
            json={"publicAddress": mixed_case, "signature": sign_challenge(wallet, found["nonce"])},
        )
        assert response.status_code == 200
        tokens = response.json()
        assert tokens["expiresIn"] == 3600
        assert tokens["tokenType"] == "bearer"
        assert tokens["user"]["publicAddress"] == wallet.address.lower()
        assert "nonce" not in tokens["user"]
        assert found["nonce"] not in response.text

        refreshed = client.post("/auth/refresh-token", json={"refreshToken": tokens["refreshToken"]})
        assert refreshed.status_code == 200
        assert refreshed.json()["accessToken"]
        assert refreshed.json()["expiresIn"] == 3600

        logout = client.post("/auth/logout", json={"refreshToken": tokens["refreshToken"]})
        assert logout.status_code == 200
        assert logout.json()["ok"] is True

        after = client.post("/auth/refresh-token", json={"refreshToken": tokens["refreshToken"]})
        assert after.status_code == 401

    def test_replayed_signature_is_401(self, client, wallet):
        nonce = client.post("/users", json={"publicAddress": wallet.address}).json()["nonce"]
        payload = {"publicAddress": wallet.address, "signature": sign_challenge(wallet, nonce)}

        assert client.post("/auth/authenticate", json=payload).status_code == 200
        replay = client.post("/auth/authenticate", json=payload)
        assert replay.status_code == 401
        assert replay.headers["WWW-Authenticate"] == "Bearer"

    def test_wrong_key_is_401(self, client, wallet, other_wallet):
        nonce = client.post("/users", json={"publicAddress": wallet.address}).json()["nonce"]
        response = client.post(
            "/auth/authenticate",
            json={"publicAddress": wallet.address, "signature": sign_challenge(other_wallet, nonce)},
        )
        assert response.status_code == 401

    def test_unknown_user_is_404(self, client, wallet):
        response = client.post(
            "/auth/authenticate",
            json={"publicAddress": wallet.address, "signature": sign_challenge(wallet, "abc")},
        )
        assert response.status_code == 404

    def test_malformed_signature_is_400(self, client, wallet):
        client.post("/users", json={"publicAddress": wallet.address})
        response = client.post(
            "/auth/authenticate",
            json={"publicAddress": wallet.address, "signature": "0x1234"},
        )
        assert response.status_code == 400

    def test_missing_fields_is_400(self, client):
        response = client.post("/auth/authenticate", json={"publicAddress": "0x" + "a" * 40})
        assert response.status_code == 400
        assert "signature" in response.json()["detail"]

    def test_padded_address_authenticates(self, client, wallet):
        padded = "  " + wallet.address + " "
        nonce = client.post("/users", json={"publicAddress": padded}).json()["nonce"]
        response = client.post(
            "/auth/authenticate",
            json={"publicAddress": padded, "signature": sign_challenge(wallet, nonce)},
        )
        assert response.status_code == 200, response.text
        assert response.json()["user"]["publicAddress"] == wallet.address.lower()

    def test_config_error_does_not_leak(self, client, auth_service, wallet):
        auth_service.tokens._secret_key = ""
        nonce = client.post("/users", json={"publicAddress": wallet.address}).json()["nonce"]

        response = client.post(
            "/auth/authenticate",
            json={"publicAddress": wallet.address, "signature": sign_challenge(wallet, nonce)},
        )
        assert response.status_code == 500
        assert response.json() == {"detail": "Server configuration error."}


class TestRefreshAndLogout:

    def test_refresh_twice_with_same_token(self, client, wallet):
        tokens = _login(client, wallet)
        for _ in range(2):
            response = client.post("/auth/refresh-token", json={"refreshToken": tokens["refreshToken"]})
            assert response.status_code == 200

    def test_refresh_unknown_is_401(self, client):
        response = client.post("/auth/refresh-token", json={"refreshToken": "deadbeef"})
        assert response.status_code == 401

    def test_logout_twice_succeeds(self, client, wallet):
        tokens = _login(client, wallet)
        for _ in range(2):
            response = client.post("/auth/logout", json={"refreshToken": tokens["refreshToken"]})
            assert response.status_code == 200
            assert response.json()["ok"] is True

    def test_logout_requires_token(self, client):
        assert client.post("/auth/logout", json={}).status_code == 400

    def test_sixth_login_evicts_first_refresh_token(self, client, auth_service, wallet, clock):
        sessions = []
        for _ in range(6):
            sessions.append(_login(client, wallet))
            clock.advance(seconds=1)

        first = client.post("/auth/refresh-token", json={"refreshToken": sessions[0]["refreshToken"]})
        last = client.post("/auth/refresh-token", json={"refreshToken": sessions[-1]["refreshToken"]})
        assert first.status_code == 401
        assert last.status_code == 200


class TestClientMetadata:

    def test_login_and_refresh_record_ip_and_user_agent(self, client, auth_service, wallet):
        nonce = client.post("/users", json={"publicAddress": wallet.address}).json()["nonce"]
        response = client.post(
            "/auth/authenticate",
            json={"publicAddress": wallet.address, "signature": sign_challenge(wallet, nonce)},
            headers={"User-Agent": "wallet-app/2.1"},
        )
        assert response.status_code == 200, response.text

        identity = auth_service.identities.get_by_address(wallet.address.lower())
        assert identity.last_login_ip == "testclient"
        assert identity.last_user_agent == "wallet-app/2.1"

        secret = response.json()["refreshToken"]
        assert client.post("/auth/refresh-token", json={"refreshToken": secret}).status_code == 200
        record = auth_service.refresh_tokens.store.get(secret)
        assert record.user_agent == "wallet-app/2.1"
        assert record.last_used_ip == "testclient"
