"""Third-party token release for authenticated services."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.crypto.envelope import CredentialEncryptor, EncryptionError
from app.database import run_bounded
from app.errors import ErrorCode
from app.models.identity import Identity
from app.models.mixins import as_utc, utc_now
from app.services.github import GitHubRefreshError, GitHubTokenRefresher
from app.services.identities import get_identity, get_identity_by_github_id
from app.services.vault import get_encryptor

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BrokerResult:
    """Released token, or the typed reason it was withheld."""

    identity: Identity | None = None
    token: str | None = None
    expires_at: datetime | None = None
    refreshed: bool = False
    error: ErrorCode | None = None


async def fetch_third_party_token(
    session: AsyncSession,
    *,
    identity_id: uuid.UUID | None = None,
    github_user_id: int | None = None,
    encryptor: CredentialEncryptor | None = None,
    refresher: GitHubTokenRefresher | None = None,
    now: datetime | None = None,
    timeout: float | None = None,
) -> BrokerResult:
    """Return an identity's decrypted GitHub token, refreshing it when due.

    A token expiring within ``github_refresh_threshold_seconds`` is refreshed
    first when a refresh token is stored. If the refresh fails, a token that
    has not yet expired is still released.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    identity_id : uuid.UUID | None, default=None
        Identity primary key.
    github_user_id : int | None, default=None
        GitHub account id, used when ``identity_id`` is not given.
    encryptor : CredentialEncryptor | None, default=None
        Encryptor override.
    refresher : GitHubTokenRefresher | None, default=None
        Refresh client override.
    now : datetime | None, default=None
        Reference time.
    timeout : float | None, default=None
        Bound on the identity lookup; defaults to ``db_timeout_seconds``.

    Returns
    -------
    BrokerResult
        Token and expiry, or one of ``USER_NOT_FOUND``,
        ``USER_NOT_WHITELISTED``, ``TOKEN_NOT_AVAILABLE``,
        ``TOKEN_DECRYPTION_FAILED``, ``TOKEN_REFRESH_FAILED`` and
        ``DATASTORE_UNAVAILABLE``.
    """
    settings = get_settings()
    cipher = encryptor or get_encryptor()
    current_time = now or utc_now()

    try:
        if identity_id is not None:
            identity = await run_bounded(get_identity(session, identity_id), timeout)
        elif github_user_id is not None:
            identity = await run_bounded(
                get_identity_by_github_id(session, github_user_id), timeout
            )
        else:
            identity = None
    except (asyncio.TimeoutError, SQLAlchemyError) as exc:
        logger.error("broker_identity_lookup_failed error_type=%s", type(exc).__name__)
        return BrokerResult(error=ErrorCode.DATASTORE_UNAVAILABLE)
    if identity is None:
        return BrokerResult(error=ErrorCode.USER_NOT_FOUND)
    if not identity.is_whitelisted:
        return BrokerResult(identity=identity, error=ErrorCode.USER_NOT_WHITELISTED)
    if not identity.github_access_token:
        return BrokerResult(identity=identity, error=ErrorCode.TOKEN_NOT_AVAILABLE)

    try:
        access_token = cipher.decrypt(identity.github_access_token)
    except EncryptionError as exc:
        return _decryption_failed(identity, exc)

    expires_at = (
        as_utc(identity.github_token_expires_at)
        if identity.github_token_expires_at
        else None
    )
    # No recorded expiry means GitHub issued a non-expiring token.
    if expires_at is None or expires_at - current_time > timedelta(
        seconds=settings.github_refresh_threshold_seconds
    ):
        return BrokerResult(identity=identity, token=access_token, expires_at=expires_at)

    expired = expires_at <= current_time
    try:
        refresh_token = cipher.decrypt_optional(identity.github_refresh_token)
    except EncryptionError as exc:
        return _decryption_failed(identity, exc)

    if refresh_token is None:
        if expired:
            return BrokerResult(identity=identity, error=ErrorCode.TOKEN_NOT_AVAILABLE)
        return BrokerResult(identity=identity, token=access_token, expires_at=expires_at)

    client = refresher or GitHubTokenRefresher(settings)
    try:
        refreshed = await client.refresh(refresh_token)
    except GitHubRefreshError as exc:
        if expired:
            logger.error(
                "github_token_refresh_failed identity_id=%s expired=true error=%s",
                identity.id,
                exc,
            )
            return BrokerResult(identity=identity, error=ErrorCode.TOKEN_REFRESH_FAILED)
        logger.warning(
            "github_token_refresh_failed identity_id=%s expired=false error=%s",
            identity.id,
            exc,
        )
        return BrokerResult(identity=identity, token=access_token, expires_at=expires_at)

    identity.github_access_token = cipher.encrypt(refreshed.access_token)
    if refreshed.refresh_token:
        identity.github_refresh_token = cipher.encrypt(refreshed.refresh_token)
    identity.github_token_expires_at = refreshed.expires_at
    await session.flush()
    logger.info("github_token_refreshed identity_id=%s", identity.id)
    return BrokerResult(
        identity=identity,
        token=refreshed.access_token,
        expires_at=refreshed.expires_at,
        refreshed=True,
    )


def _decryption_failed(identity: Identity, exc: Exception) -> BrokerResult:
    logger.error(
        "github_token_decryption_failed identity_id=%s error_type=%s",
        identity.id,
        type(exc).__name__,
    )
    return BrokerResult(identity=identity, error=ErrorCode.TOKEN_DECRYPTION_FAILED)
