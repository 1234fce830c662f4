"""GitHub OAuth token refresh client."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import anyio
import httpx

from app.config import Settings, get_settings
from app.models.mixins import utc_now

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class GitHubRefreshError(Exception):
    """Refresh grant failed after all attempts."""


@dataclass(frozen=True, slots=True)
class RefreshedGitHubToken:
    """Tokens returned by a refresh grant."""

    access_token: str
    refresh_token: str | None
    expires_at: datetime | None


class GitHubTokenRefresher:
    """Exchange a GitHub refresh token for a new access token.

    Transport failures and 429/5xx responses are retried with linear
    backoff; everything else fails immediately.

    Parameters
    ----------
    settings : Settings
        OAuth client credentials, endpoint, timeout and retry policy.
    transport : httpx.AsyncBaseTransport | None, default=None
        Optional transport for tests.
    """

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.client_id = settings.github_client_id
        self.client_secret = settings.github_client_secret
        self.token_url = settings.github_token_url
        self.timeout = settings.upstream_timeout_seconds
        self.max_attempts = max(1, settings.github_refresh_max_attempts)
        self.backoff_seconds = settings.github_refresh_backoff_seconds
        self.transport = transport

    async def refresh(self, refresh_token: str) -> RefreshedGitHubToken:
        """Run the refresh grant.

        Parameters
        ----------
        refresh_token : str
            Plaintext refresh token.

        Returns
        -------
        RefreshedGitHubToken
            New tokens and expiry.

        Raises
        ------
        GitHubRefreshError
            When every attempt fails or GitHub rejects the grant.
        """
        payload = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self.transport,
            headers={"Accept": "application/json"},
        ) as client:
            for attempt in range(1, self.max_attempts + 1):
                try:
                    response = await client.post(self.token_url, data=payload)
                except httpx.HTTPError as exc:
                    logger.warning(
                        "github_refresh_transport_error attempt=%s error_type=%s",
                        attempt,
                        type(exc).__name__,
                    )
                    if attempt < self.max_attempts:
                        await anyio.sleep(self.backoff_seconds * attempt)
                        continue
                    raise GitHubRefreshError("GitHub token refresh failed") from exc

                if response.status_code in TRANSIENT_STATUS_CODES:
                    logger.warning(
                        "github_refresh_transient_status attempt=%s status=%s",
                        attempt,
                        response.status_code,
                    )
                    if attempt < self.max_attempts:
                        await anyio.sleep(self.backoff_seconds * attempt)
                        continue
                    raise GitHubRefreshError(
                        f"GitHub token refresh failed with status {response.status_code}"
                    )
                return _parse_refresh_response(response)
        raise GitHubRefreshError("GitHub token refresh failed")


def _parse_refresh_response(response: httpx.Response) -> RefreshedGitHubToken:
    if response.status_code >= 400:
        raise GitHubRefreshError(
            f"GitHub token refresh failed with status {response.status_code}"
        )
    try:
        data: Any = response.json()
    except ValueError as exc:
        raise GitHubRefreshError("GitHub refresh response was not JSON") from exc
    if not isinstance(data, dict) or not data.get("access_token"):
        # GitHub reports grant errors with a 200 and an ``error`` field.
        error = data.get("error") if isinstance(data, dict) else None
        raise GitHubRefreshError(f"No access token in GitHub refresh response: {error}")
    expires_in = data.get("expires_in")
    expires_at = None
    if expires_in:
        try:
            expires_at = utc_now() + timedelta(seconds=int(expires_in))
        except (TypeError, ValueError, OverflowError) as exc:
            raise GitHubRefreshError(
                f"Invalid expires_in in GitHub refresh response: {expires_in!r}"
            ) from exc
    return RefreshedGitHubToken(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token") or None,
        expires_at=expires_at,
    )


def get_github_refresher() -> GitHubTokenRefresher:
    """Return a refresher bound to the current settings."""
    return GitHubTokenRefresher(get_settings())
