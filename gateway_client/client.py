"""Synchronous Python SDK client."""

from __future__ import annotations

import base64
import os
from datetime import datetime
from time import sleep
from typing import Any
from uuid import UUID

import httpx

from gateway_client.exceptions import (
    GatewayAPIError,
    GatewayAuthError,
    GatewayForbiddenError,
    GatewayNotFoundError,
    GatewayRateLimitError,
    GatewayUnavailableError,
    GatewayValidationError,
)
from gateway_client.types import (
    BrokeredUser,
    GitHubToken,
    IssuedCredential,
    RevocationResult,
    RevocationStatus,
)


class GatewayClient:
    """Client for the credential gateway API.

    Parameters
    ----------
    base_url : str
        Gateway base URL.
    service_identifier : str | None, default=None
        Registered service name, required for broker calls.
    api_key : str | None, default=None
        Service API key, required for broker calls.
    timeout : float, default=10.0
        Request timeout in seconds.
    max_retries : int, default=2
        Number of retries for transient errors.
    transport : httpx.BaseTransport | None, default=None
        Optional transport for tests or advanced usage.
    """

    def __init__(
        self,
        *,
        base_url: str,
        service_identifier: str | None = None,
        api_key: str | None = None,
        timeout: float = 10.0,
        max_retries: int = 2,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.service_identifier = service_identifier
        self.api_key = api_key
        self.timeout = timeout
        self.max_retries = max_retries
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=transport,
        )

    @classmethod
    def from_env(cls) -> "GatewayClient":
        """Build a client from environment variables.

        Expected variables
        ------------------
        GATEWAY_BASE_URL
            Gateway base URL. Defaults to ``http://127.0.0.1:8000``.
        GATEWAY_SERVICE_ID
            Registered service name.
        GATEWAY_SERVICE_API_KEY
            Service API key.

        Returns
        -------
        GatewayClient
            Configured SDK client.
        """
        base_url = os.environ.get("GATEWAY_BASE_URL", "http://127.0.0.1:8000")
        service_identifier = os.environ.get("GATEWAY_SERVICE_ID")
        api_key = os.environ.get("GATEWAY_SERVICE_API_KEY")
        if not service_identifier or not api_key:
            raise GatewayValidationError(
                "GATEWAY_SERVICE_ID and GATEWAY_SERVICE_API_KEY are required to create the client"
            )
        return cls(base_url=base_url, service_identifier=service_identifier, api_key=api_key)

    def close(self) -> None:
        """Close the underlying HTTP client.

        Returns
        -------
        None
            Releases HTTP resources.
        """
        self._client.close()

    def get_github_token(
        self,
        *,
        user_id: UUID | str | None = None,
        github_user_id: int | None = None,
    ) -> GitHubToken:
        """Fetch a user's GitHub token through the broker.

        Parameters
        ----------
        user_id : UUID | str | None, default=None
            Gateway identity id.
        github_user_id : int | None, default=None
            GitHub account id, used when ``user_id`` is not given.

        Returns
        -------
        GitHubToken
            Released token and identity summary.
        """
        if user_id is None and github_user_id is None:
            raise GatewayValidationError("user_id or github_user_id is required")
        payload: dict[str, Any] = {}
        if user_id is not None:
            payload["userId"] = str(user_id)
        else:
            payload["githubUserId"] = github_user_id
        response = self._request(
            "POST",
            "/api/github-token",
            json=payload,
            headers={"Authorization": self._service_authorization()},
        )
        data = response.json()
        user = data["user"]
        return GitHubToken(
            token=data["token"],
            expires_at=(
                _parse_datetime(data["expiresAt"])
                if data.get("expiresAt") is not None
                else None
            ),
            user=BrokeredUser(
                id=UUID(user["id"]),
                github_user_id=int(user["githubUserId"]),
                is_whitelisted=bool(user["isWhitelisted"]),
            ),
        )

    def refresh_token(self, token: str) -> IssuedCredential:
        """Exchange a gateway credential for a new one.

        Parameters
        ----------
        token : str
            Live credential.

        Returns
        -------
        IssuedCredential
            New credential; the old one stays valid until it expires.
        """
        response = self._request("POST", "/api/token", json={"token": token})
        return _issued_credential(response.json())

    def revoke_token(
        self,
        token: str,
        *,
        reason: str | None = None,
        revoked_by: str | None = None,
    ) -> RevocationResult:
        """Revoke a gateway credential.

        Parameters
        ----------
        token : str
            Credential to revoke.
        reason : str | None, default=None
            Free-text reason.
        revoked_by : str | None, default=None
            Actor performing the revocation.

        Returns
        -------
        RevocationResult
            Revoked ``jti`` and whether it was already revoked.
        """
        response = self._request(
            "POST",
            "/api/token/revoke",
            json={"token": token, "reason": reason, "revokedBy": revoked_by},
        )
        data = response.json()
        return RevocationResult(jti=data["jti"], already_revoked=bool(data["alreadyRevoked"]))

    def revocation_status(self, jti: str) -> RevocationStatus:
        """Look up whether a credential identifier is revoked.

        Parameters
        ----------
        jti : str
            Credential identifier.

        Returns
        -------
        RevocationStatus
            Revocation state and details.
        """
        response = self._request(
            "GET", "/api/token/revocation-status", params={"jti": jti}
        )
        data = response.json()
        details = data.get("details") or {}
        return RevocationStatus(
            jti=data["jti"],
            revoked=bool(data["revoked"]),
            revoked_at=(
                _parse_datetime(details["revokedAt"]) if details.get("revokedAt") else None
            ),
            revoked_by=details.get("revokedBy"),
            reason=details.get("reason"),
        )

    def get_jwks(self) -> dict[str, Any]:
        """Fetch the gateway's JWKS document.

        Returns
        -------
        dict[str, Any]
            JWKS with the current verification key.
        """
        return self._request("GET", "/.well-known/jwks.json").json()

    def _service_authorization(self) -> str:
        if not self.service_identifier or not self.api_key:
            raise GatewayValidationError(
                "service_identifier and api_key are required for broker calls"
            )
        pair = f"{self.service_identifier}:{self.api_key}".encode("utf-8")
        return f"Basic {base64.b64encode(pair).decode('ascii')}"

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send an HTTP request with light retry logic.

        Parameters
        ----------
        method : str
            HTTP method.
        path : str
            Relative request path.
        **kwargs : Any
            Additional request arguments.

        Returns
        -------
        httpx.Response
            Successful response.
        """
        attempts = self.max_retries + 1
        last_exception: Exception | None = None
        for attempt in range(attempts):
            try:
                response = self._client.request(method, path, **kwargs)
            except httpx.HTTPError as exc:
                last_exception = exc
                if attempt < self.max_retries:
                    sleep(0.1 * (attempt + 1))
                    continue
                raise GatewayAPIError(str(exc)) from exc

            if response.status_code < 400:
                return response
            if _is_transient_response(response) and attempt < self.max_retries:
                sleep(0.1 * (attempt + 1))
                continue
            raise _exception_for_response(response)

        if last_exception is not None:
            raise GatewayAPIError(str(last_exception)) from last_exception
        raise GatewayAPIError("Request failed")

    def __enter__(self) -> "GatewayClient":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        _ = (exc_type, exc_value, traceback)
        self.close()


def _issued_credential(data: dict[str, Any]) -> IssuedCredential:
    return IssuedCredential(
        token=data["token"],
        expires_in=int(data["expiresIn"]),
        expires_at=_parse_datetime(data["expiresAt"]),
    )


def _parse_datetime(value: str) -> datetime:
    """Parse an ISO datetime string.

    Parameters
    ----------
    value : str
        ISO-formatted datetime string.

    Returns
    -------
    datetime
        Parsed datetime.
    """
    normalized = value.replace("Z", "+00:00")
    return datetime.fromisoformat(normalized)


def _is_transient_response(response: httpx.Response) -> bool:
    """Return whether a response is worth retrying."""
    return response.status_code in {429, 502, 503, 504}


def _exception_for_response(response: httpx.Response) -> GatewayAPIError:
    """Map an error response to a typed SDK exception.

    Parameters
    ----------
    response : httpx.Response
        HTTP response.

    Returns
    -------
    GatewayAPIError
        Typed SDK error carrying the gateway error code.
    """
    try:
        data = response.json()
    except ValueError:
        data = {}
    code = data.get("error") if isinstance(data, dict) else None
    message = (data.get("message") if isinstance(data, dict) else None) or (
        f"Gateway request failed with status {response.status_code}"
    )
    status_code = response.status_code

    if status_code == 401:
        return GatewayAuthError(message, status_code=status_code, code=code)
    if status_code == 403:
        return GatewayForbiddenError(message, status_code=status_code, code=code)
    if status_code == 404:
        return GatewayNotFoundError(message, status_code=status_code, code=code)
    if status_code == 429:
        return GatewayRateLimitError(message, status_code=status_code, code=code)
    if status_code in {400, 422}:
        return GatewayValidationError(message, status_code=status_code, code=code)
    if status_code == 503:
        return GatewayUnavailableError(message, status_code=status_code, code=code)
    return GatewayAPIError(message, status_code=status_code, code=code)
