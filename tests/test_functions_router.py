"""
Tests for the function surface.

These tests verify:
- Envelope parsing (userId, userEmail, functionId, params)
- Underscore and plain function names
- ArgumentError as HTTP 400, Google failures as structured results
- Callback and health endpoints
"""

import httpx
from fastapi.testclient import TestClient

from drive_broker.environments.base import TokenResult, TransportError


API_BASE = "https://drive.test/drive/v3"


class TestConnectionFunctions:
    """Tests for connectUser, disconnectUser, authenticationUrl, getUserInformation."""

    def test_connect_user(self, client: TestClient, auth_client, events):
        auth_client.exchange_code.return_value = TokenResult(access_token="ya29.new", refresh_token="1//new")

        response = client.post("/functions/connectUser", json={
            "userId": "user-1",
            "userEmail": "jane@example.com",
            "functionId": "f-1",
            "params": {"code": "4/0Ab"},
        })

        assert response.status_code == 200
        data = response.json()
        assert data["userId"] == "user-1"
        assert data["configuration"]["token"] == "ya29.new"
        assert data["configuration"]["result"] == "Connection established as Jane Doe."
        assert len(events.connected) == 1

    def test_connect_without_user_is_argument_error(self, client: TestClient):
        response = client.post("/functions/connectUser", json={"params": {"code": "4/0Ab"}})

        assert response.status_code == 400
        assert response.json() == {
            "code": "argument",
            "message": "User ID is required",
            "httpStatus": 400,
        }

    def test_disconnect_user(self, client: TestClient, auth_client, store, connected_user):
        response = client.post("/functions/disconnectUser", json={
            "userId": "user-1",
            "params": {"revokeToken": False},
        })

        assert response.status_code == 200
        assert response.json()["configuration"]["result"] == "Connection disabled."
        auth_client.revoke.assert_not_awaited()
        assert "user-1" not in store

    def test_authentication_url(self, client: TestClient):
        response = client.post("/functions/authenticationUrl", json={})

        assert response.json() == {"url": "https://accounts.google.com/o/oauth2/v2/auth?x=1"}

    def test_get_user_information(self, client: TestClient, connected_user):
        response = client.post("/functions/getUserInformation", json={"userId": "user-1"})

        assert response.json()["status"] is True
        assert response.json()["information"]["email"] == "jane@example.com"


class TestRequestFunctions:
    """Tests for the generic request functions."""

    def test_get_request_with_underscore_name(self, client: TestClient, google, connected_user):
        google.json("GET", f"{API_BASE}/files", {"files": [{"id": "a", "modifiedTime": "2024-05-01T10:20:30Z"}]})

        response = client.post("/functions/_getRequest", json={
            "userId": "user-1",
            "params": {"path": "files", "params": {"pageSize": 1}},
        })

        assert response.status_code == 200
        assert response.json() == {"files": [{"id": "a", "modifiedTime": "2024-05-01T10:20:30.000+0000"}]}

    def test_plain_name_is_accepted(self, client: TestClient, google, connected_user):
        google.json("DELETE", f"{API_BASE}/files/a", {})

        response = client.post("/functions/deleteRequest", json={"userId": "user-1", "params": {"path": "/files/a"}})

        assert response.status_code == 200
        assert response.json() == {}

    def test_upstream_error_is_structured(self, client: TestClient, google, connected_user):
        google.json("GET", f"{API_BASE}/files", {"error": {"code": 500, "message": "Backend Error"}}, status_code=500)

        response = client.post("/functions/_getRequest", json={"userId": "user-1", "params": {"path": "files"}})

        assert response.status_code == 200
        assert response.json() == {
            "code": "upstream",
            "message": "Exception when execute request [Backend Error]",
            "httpStatus": 500,
        }

    def test_missing_configuration_is_argument_error(self, client: TestClient):
        response = client.post("/functions/_postRequest", json={"params": {"path": "files"}})

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid user configuration"

    def test_refresh_outage_is_structured(self, client: TestClient, auth_client, connected_user):
        auth_client.validate_or_refresh.side_effect = TransportError("Error renewing the token [timed out]")

        response = client.post("/functions/_getRequest", json={"userId": "user-1", "params": {"path": "files"}})

        assert response.status_code == 200
        assert response.json() == {
            "code": "transport",
            "message": "Error renewing the token [timed out]",
            "httpStatus": None,
        }

    def test_patch_request_sends_body(self, client: TestClient, google, connected_user):
        google.on("PATCH", f"{API_BASE}/files/a", lambda request: httpx.Response(200, content=request.content))

        response = client.post("/functions/_patchRequest", json={
            "userId": "user-1",
            "params": {"path": "files/a", "body": {"name": "renamed"}},
        })

        assert response.json() == {"name": "renamed"}

    def test_unknown_function(self, client: TestClient):
        response = client.post("/functions/_sendMail", json={})

        assert response.status_code == 404


class TestPlainEndpoints:
    """Tests for callback and health endpoints."""

    def test_root_and_callback(self, client: TestClient):
        assert client.get("/").text == "ok"
        assert client.get("/callback", params={"code": "4/0Ab"}).text == "ok"

    def test_health(self, client: TestClient):
        assert client.get("/health").json() == {"status": "ok"}

    def test_ready(self, client: TestClient):
        assert client.get("/ready").json() == {"status": "ok", "database": "ok"}
