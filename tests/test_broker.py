"""Third-party token broker tests."""

import asyncio
from datetime import timedelta

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from app.config import get_settings
from app.crypto.envelope import CredentialEncryptor, is_envelope
from app.errors import ErrorCode
from app.models.mixins import as_utc
from app.services import broker as broker_module
from app.services.broker import fetch_third_party_token
from app.services.github import GitHubRefreshError, GitHubTokenRefresher
from app.services.vault import get_encryptor

FOREIGN_KEY = "f" * 32 + "-foreign-master-key"


class RecordingGitHub:
    """Scripted token endpoint that records the grants it receives."""

    def __init__(self, *responses: httpx.Response) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)

    def refresher(self) -> GitHubTokenRefresher:
        return GitHubTokenRefresher(get_settings(), transport=httpx.MockTransport(self))


def _granted(access_token: str = "gho_refreshed", **extra) -> httpx.Response:
    body = {"access_token": access_token, "token_type": "bearer", **extra}
    return httpx.Response(200, json=body)


def _expiry(identity):
    return as_utc(identity.github_token_expires_at)


class TestFetchThirdPartyToken:
    """Lookup, whitelist and release rules."""

    async def test_unknown_identity(self, session) -> None:
        """Report a missing identity for either lookup key."""
        by_github = await fetch_third_party_token(session, github_user_id=999)
        neither = await fetch_third_party_token(session)

        assert by_github.error is ErrorCode.USER_NOT_FOUND
        assert neither.error is ErrorCode.USER_NOT_FOUND

    async def test_not_whitelisted(self, session, make_identity) -> None:
        """Withhold tokens from identities without access."""
        identity = await make_identity(whitelisted=False)

        result = await fetch_third_party_token(session, identity_id=identity.id)

        assert result.error is ErrorCode.USER_NOT_WHITELISTED
        assert result.token is None

    async def test_no_stored_token(self, session, make_identity) -> None:
        """Report a missing token."""
        identity = await make_identity()
        identity.github_access_token = None
        await session.commit()

        result = await fetch_third_party_token(session, identity_id=identity.id)

        assert result.error is ErrorCode.TOKEN_NOT_AVAILABLE

    async def test_fresh_token_released_without_refresh(self, session, make_identity) -> None:
        """Release a token far from expiry without calling GitHub."""
        identity = await make_identity(1234, access_token="gho_fresh")
        github = RecordingGitHub()

        result = await fetch_third_party_token(
            session, github_user_id=1234, refresher=github.refresher()
        )

        assert result.error is None
        assert result.token == "gho_fresh"
        assert result.expires_at == _expiry(identity)
        assert not result.refreshed
        assert github.requests == []

    async def test_token_without_expiry_never_refreshed(self, session, make_identity) -> None:
        """Treat a token with no recorded expiry as non-expiring."""
        identity = await make_identity(access_token="gho_forever", expires_in=None)
        github = RecordingGitHub()

        result = await fetch_third_party_token(
            session, identity_id=identity.id, refresher=github.refresher()
        )

        assert result.token == "gho_forever"
        assert result.expires_at is None
        assert github.requests == []

    async def test_refresh_persists_encrypted_tokens(self, session, make_identity) -> None:
        """Store the refreshed pair encrypted and release the new token."""
        identity = await make_identity(expires_in=600)
        github = RecordingGitHub(
            _granted("gho_new", refresh_token="ghr_new", expires_in=28800)
        )

        result = await fetch_third_party_token(
            session, identity_id=identity.id, refresher=github.refresher()
        )
        await session.commit()

        assert result.refreshed
        assert result.token == "gho_new"
        form = dict(httpx.QueryParams(github.requests[0].content.decode("utf-8")))
        assert form["grant_type"] == "refresh_token"
        assert form["refresh_token"] == "ghr_initial"
        assert form["client_id"] == "test-client-id"

        await session.refresh(identity)
        encryptor = get_encryptor()
        assert is_envelope(identity.github_access_token)
        assert encryptor.decrypt(identity.github_access_token) == "gho_new"
        assert encryptor.decrypt(identity.github_refresh_token) == "ghr_new"
        assert _expiry(identity) == result.expires_at

    async def test_refresh_keeps_refresh_token_when_not_rotated(
        self, session, make_identity
    ) -> None:
        """Keep the stored refresh token when GitHub does not return one."""
        identity = await make_identity(expires_in=600)
        github = RecordingGitHub(_granted("gho_new", expires_in=28800))

        await fetch_third_party_token(
            session, identity_id=identity.id, refresher=github.refresher()
        )

        assert get_encryptor().decrypt(identity.github_refresh_token) == "ghr_initial"

    async def test_refresh_failure_releases_unexpired_token(
        self, session, make_identity
    ) -> None:
        """Fall back to the current token while it is still valid."""
        identity = await make_identity(access_token="gho_current", expires_in=600)
        github = RecordingGitHub(httpx.Response(400, json={"error": "bad_verification_code"}))

        result = await fetch_third_party_token(
            session, identity_id=identity.id, refresher=github.refresher()
        )

        assert result.error is None
        assert result.token == "gho_current"
        assert not result.refreshed

    async def test_refresh_failure_after_expiry(self, session, make_identity) -> None:
        """Report a failed refresh once the token has expired."""
        identity = await make_identity(expires_in=600)
        github = RecordingGitHub(httpx.Response(400, json={"error": "bad_refresh_token"}))

        result = await fetch_third_party_token(
            session,
            identity_id=identity.id,
            refresher=github.refresher(),
            now=_expiry(identity) + timedelta(minutes=1),
        )

        assert result.error is ErrorCode.TOKEN_REFRESH_FAILED
        assert result.token is None

    async def test_expired_without_refresh_token(self, session, make_identity) -> None:
        """Report no available token when it expired and cannot be refreshed."""
        identity = await make_identity(refresh_token=None, expires_in=600)

        result = await fetch_third_party_token(
            session, identity_id=identity.id, now=_expiry(identity) + timedelta(seconds=1)
        )

        assert result.error is ErrorCode.TOKEN_NOT_AVAILABLE

    async def test_near_expiry_without_refresh_token(self, session, make_identity) -> None:
        """Release a soon-expiring token that cannot be refreshed."""
        identity = await make_identity(
            access_token="gho_current", refresh_token=None, expires_in=600
        )

        result = await fetch_third_party_token(session, identity_id=identity.id)

        assert result.token == "gho_current"

    async def test_decryption_failure(self, session, make_identity) -> None:
        """Report a token stored under a different key."""
        identity = await make_identity()
        foreign = CredentialEncryptor(FOREIGN_KEY, iterations=1_000)
        identity.github_access_token = foreign.encrypt("gho_other")
        await session.commit()

        result = await fetch_third_party_token(session, identity_id=identity.id)

        assert result.error is ErrorCode.TOKEN_DECRYPTION_FAILED

    async def test_identity_lookup_timeout(self, session, make_identity, monkeypatch) -> None:
        """Report the store unavailable when the identity read stalls."""
        identity = await make_identity()

        async def _stalled_lookup(*_: object) -> None:
            await asyncio.sleep(1)

        monkeypatch.setattr(broker_module, "get_identity", _stalled_lookup)
        result = await fetch_third_party_token(session, identity_id=identity.id, timeout=0.01)

        assert result.error is ErrorCode.DATASTORE_UNAVAILABLE
        assert result.identity is None
        assert result.token is None

    async def test_identity_lookup_error(self, session, monkeypatch) -> None:
        """Report the store unavailable when the identity read fails."""

        async def _broken_lookup(*_: object) -> None:
            raise OperationalError("SELECT", {}, Exception("database is down"))

        monkeypatch.setattr(broker_module, "get_identity_by_github_id", _broken_lookup)
        result = await fetch_third_party_token(session, github_user_id=1001)

        assert result.error is ErrorCode.DATASTORE_UNAVAILABLE

    async def test_unparseable_refresh_expiry_releases_unexpired_token(
        self, session, make_identity
    ) -> None:
        """Keep serving the current token when GitHub sends a bad expiry."""
        identity = await make_identity(access_token="gho_current", expires_in=600)
        github = RecordingGitHub(_granted("gho_new", expires_in="soon"))

        result = await fetch_third_party_token(
            session, identity_id=identity.id, refresher=github.refresher()
        )

        assert result.token == "gho_current"
        assert not result.refreshed
        assert get_encryptor().decrypt(identity.github_access_token) == "gho_current"


class TestGitHubTokenRefresher:
    """Refresh grant client."""

    async def test_retries_transient_status(self) -> None:
        """Retry a 503 and return the next successful grant."""
        github = RecordingGitHub(httpx.Response(503), _granted("gho_after_retry"))

        refreshed = await github.refresher().refresh("ghr_token")

        assert refreshed.access_token == "gho_after_retry"
        assert refreshed.refresh_token is None
        assert refreshed.expires_at is None
        assert len(github.requests) == 2

    async def test_gives_up_after_max_attempts(self) -> None:
        """Fail after the configured number of attempts."""
        github = RecordingGitHub(*(httpx.Response(502) for _ in range(3)))

        with pytest.raises(GitHubRefreshError):
            await github.refresher().refresh("ghr_token")
        assert len(github.requests) == 3

    async def test_grant_error_in_ok_response(self) -> None:
        """Treat a 200 carrying an error field as a failed grant."""
        github = RecordingGitHub(httpx.Response(200, json={"error": "bad_refresh_token"}))

        with pytest.raises(GitHubRefreshError, match="bad_refresh_token"):
            await github.refresher().refresh("ghr_token")
        assert len(github.requests) == 1

    @pytest.mark.parametrize("expires_in", ["soon", "8h", 10**30, [28800]])
    async def test_unparseable_expiry(self, expires_in) -> None:
        """Reject a grant whose lifetime is not a usable number of seconds."""
        github = RecordingGitHub(_granted("gho_new", expires_in=expires_in))

        with pytest.raises(GitHubRefreshError, match="expires_in"):
            await github.refresher().refresh("ghr_token")
        assert len(github.requests) == 1

    async def test_transport_error_retried(self) -> None:
        """Retry connection failures."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return _granted("gho_recovered")

        refresher = GitHubTokenRefresher(
            get_settings(), transport=httpx.MockTransport(handler)
        )

        refreshed = await refresher.refresh("ghr_token")

        assert refreshed.access_token == "gho_recovered"
        assert len(calls) == 2
