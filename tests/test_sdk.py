"""Python SDK tests."""

import base64
import json
from uuid import uuid4

import httpx
import pytest

from gateway_client import (
    GatewayAuthError,
    GatewayClient,
    GatewayForbiddenError,
    GatewayUnavailableError,
    GatewayValidationError,
)


def _client(handler, **kwargs) -> GatewayClient:
    return GatewayClient(
        base_url="http://gateway.test/",
        service_identifier="ci-runner",
        api_key="svc_secret",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestGatewayClient:
    """SDK client behavior tests."""

    def test_from_env_requires_service_credentials(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Reject missing service credential configuration.

        Parameters
        ----------
        monkeypatch : pytest.MonkeyPatch
            Environment monkeypatch helper.

        Returns
        -------
        None
            Asserts env validation.
        """
        monkeypatch.setenv("GATEWAY_BASE_URL", "http://gateway.test")
        monkeypatch.setenv("GATEWAY_SERVICE_ID", "ci-runner")
        monkeypatch.delenv("GATEWAY_SERVICE_API_KEY", raising=False)

        with pytest.raises(GatewayValidationError):
            GatewayClient.from_env()

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Build a client from the environment."""
        monkeypatch.setenv("GATEWAY_BASE_URL", "http://gateway.test/")
        monkeypatch.setenv("GATEWAY_SERVICE_ID", "ci-runner")
        monkeypatch.setenv("GATEWAY_SERVICE_API_KEY", "svc_secret")

        with GatewayClient.from_env() as client:
            assert client.base_url == "http://gateway.test"
            assert client.service_identifier == "ci-runner"

    def test_get_github_token_sends_basic_auth(self) -> None:
        """Send the service pair as Basic auth and parse the release.

        Returns
        -------
        None
            Asserts request shape and parsed response.
        """
        user_id = uuid4()
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "token": "gho_abc",
                    "expiresAt": "2026-03-01T20:00:00Z",
                    "user": {
                        "id": str(user_id),
                        "githubUserId": 42,
                        "isWhitelisted": True,
                    },
                },
            )

        with _client(handler) as client:
            released = client.get_github_token(user_id=user_id)

        request = seen[0]
        scheme, encoded = request.headers["authorization"].split(" ")
        assert scheme == "Basic"
        assert base64.b64decode(encoded).decode("utf-8") == "ci-runner:svc_secret"
        assert request.url.path == "/api/github-token"
        assert json.loads(request.content) == {"userId": str(user_id)}
        assert released.token == "gho_abc"
        assert released.expires_at.tzinfo is not None
        assert released.user.id == user_id
        assert released.user.github_user_id == 42

    def test_get_github_token_by_github_id(self) -> None:
        """Send the GitHub id when no user id is given."""
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(
                200,
                json={
                    "token": "gho_abc",
                    "expiresAt": None,
                    "user": {"id": str(uuid4()), "githubUserId": 7, "isWhitelisted": True},
                },
            )

        with _client(handler) as client:
            released = client.get_github_token(github_user_id=7)

        assert bodies == [{"githubUserId": 7}]
        assert released.expires_at is None

    def test_get_github_token_requires_identifier(self) -> None:
        """Refuse to call the broker without an identity."""
        with _client(lambda request: httpx.Response(500)) as client:
            with pytest.raises(GatewayValidationError):
                client.get_github_token()

    def test_error_codes_are_mapped(self) -> None:
        """Raise typed errors carrying the gateway error code."""
        responses = {
            "/api/token": httpx.Response(
                401, json={"error": "TOKEN_REVOKED", "message": "This token has been revoked."}
            ),
            "/api/github-token": httpx.Response(
                403, json={"error": "USER_NOT_WHITELISTED", "message": "Not whitelisted."}
            ),
        }

        def handler(request: httpx.Request) -> httpx.Response:
            return responses[request.url.path]

        with _client(handler) as client:
            with pytest.raises(GatewayAuthError) as auth_error:
                client.refresh_token("jwt")
            with pytest.raises(GatewayForbiddenError) as forbidden:
                client.get_github_token(github_user_id=1)

        assert auth_error.value.code == "TOKEN_REVOKED"
        assert auth_error.value.status_code == 401
        assert str(auth_error.value) == "This token has been revoked."
        assert forbidden.value.code == "USER_NOT_WHITELISTED"

    def test_retries_unavailable_then_succeeds(self) -> None:
        """Retry a transient 503 before returning."""
        calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.path)
            if len(calls) == 1:
                return httpx.Response(503, json={"error": "AUTHORIZATION_UNAVAILABLE"})
            return httpx.Response(
                200,
                json={
                    "token": "jwt-new",
                    "expiresIn": 3600,
                    "expiresAt": "2030-01-01T00:00:00Z",
                },
            )

        with _client(handler) as client:
            credential = client.refresh_token("jwt-old")

        assert calls == ["/api/token", "/api/token"]
        assert credential.token == "jwt-new"
        assert credential.ttl_remaining_seconds > 0

    def test_gives_up_on_persistent_unavailability(self) -> None:
        """Raise once retries are exhausted."""
        with _client(lambda request: httpx.Response(503), max_retries=0) as client:
            with pytest.raises(GatewayUnavailableError):
                client.get_jwks()

    def test_revocation_calls(self) -> None:
        """Parse revoke and revocation-status responses."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/token/revoke":
                assert json.loads(request.content)["revokedBy"] == "alice"
                return httpx.Response(
                    200, json={"success": True, "jti": "j1", "alreadyRevoked": False}
                )
            assert request.url.params["jti"] == "j1"
            return httpx.Response(
                200,
                json={
                    "revoked": True,
                    "jti": "j1",
                    "details": {
                        "revokedAt": "2026-03-01T12:00:00Z",
                        "revokedBy": "alice",
                        "reason": None,
                        "tokenExpiresAt": "2026-03-31T12:00:00Z",
                    },
                },
            )

        with _client(handler) as client:
            result = client.revoke_token("jwt", revoked_by="alice")
            status = client.revocation_status("j1")

        assert result.jti == "j1"
        assert not result.already_revoked
        assert status.revoked
        assert status.revoked_by == "alice"
        assert status.revoked_at.year == 2026
