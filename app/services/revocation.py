"""Revoked credential store."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import insert_for, run_bounded
from app.errors import ErrorCode
from app.models.mixins import utc_now
from app.models.revoked_token import RevokedToken

if TYPE_CHECKING:
    from app.services.tokens import TokenService

logger = logging.getLogger(__name__)


class RevokeOutcome(str, Enum):
    """Result of a revoke write."""

    REVOKED = "revoked"
    ALREADY_REVOKED = "already_revoked"


@dataclass(frozen=True, slots=True)
class RevokeTokenResult:
    """Outcome of revoking a presented credential."""

    jti: str | None = None
    outcome: RevokeOutcome | None = None
    error: ErrorCode | None = None

    @property
    def already_revoked(self) -> bool:
        return self.outcome is RevokeOutcome.ALREADY_REVOKED


async def is_revoked(session: AsyncSession, jti: str) -> bool:
    """Return whether a credential identifier has been revoked.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    jti : str
        Credential identifier.

    Returns
    -------
    bool
        ``True`` when a revocation record exists.
    """
    result = await session.execute(
        select(RevokedToken.id).where(RevokedToken.jti == jti).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def revoke(
    session: AsyncSession,
    *,
    jti: str,
    identity_id: uuid.UUID,
    issued_at: datetime,
    expires_at: datetime,
    revoked_by: str | None = None,
    reason: str | None = None,
) -> RevokeOutcome:
    """Record a revocation, idempotently on ``jti``.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    jti : str
        Credential identifier.
    identity_id : uuid.UUID
        Owning identity.
    issued_at : datetime
        Credential ``iat``.
    expires_at : datetime
        Credential ``exp``; drives retention pruning.
    revoked_by : str | None, default=None
        Actor performing the revocation.
    reason : str | None, default=None
        Free-text reason.

    Returns
    -------
    RevokeOutcome
        ``REVOKED`` for a new record, ``ALREADY_REVOKED`` when one existed.
    """
    statement = (
        insert_for(session, RevokedToken)
        .values(
            id=uuid.uuid4(),
            jti=jti,
            identity_id=identity_id,
            token_issued_at=issued_at,
            token_expires_at=expires_at,
            revoked_at=utc_now(),
            revoked_by=revoked_by,
            reason=reason,
        )
        .on_conflict_do_nothing(index_elements=["jti"])
    )
    result = await session.execute(statement)
    if result.rowcount == 0:
        logger.info("token_already_revoked jti=%s", jti)
        return RevokeOutcome.ALREADY_REVOKED
    logger.info("token_revoked jti=%s identity_id=%s revoked_by=%s", jti, identity_id, revoked_by)
    return RevokeOutcome.REVOKED


async def revoke_token(
    session: AsyncSession,
    token_service: TokenService,
    token: str,
    *,
    revoked_by: str | None = None,
    reason: str | None = None,
) -> RevokeTokenResult:
    """Revoke a presented credential after checking it.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    token_service : TokenService
        Verifier for the presented credential.
    token : str
        Encoded credential.
    revoked_by : str | None, default=None
        Actor performing the revocation.
    reason : str | None, default=None
        Free-text reason.

    Returns
    -------
    RevokeTokenResult
        ``INVALID_TOKEN`` when the credential does not verify, or
        ``DATASTORE_UNAVAILABLE`` when the revocation cannot be stored in time.
    """
    verified = token_service.verify(token)
    if not verified.valid or verified.claims is None:
        return RevokeTokenResult(error=ErrorCode.INVALID_TOKEN)
    claims = verified.claims
    try:
        outcome = await run_bounded(
            revoke(
                session,
                jti=claims.token_id,
                identity_id=claims.subject_id,
                issued_at=claims.issued_at,
                expires_at=claims.expires_at,
                revoked_by=revoked_by,
                reason=reason,
            )
        )
    except (asyncio.TimeoutError, SQLAlchemyError) as exc:
        logger.error("token_revoke_failed jti=%s error_type=%s", claims.token_id, type(exc).__name__)
        return RevokeTokenResult(jti=claims.token_id, error=ErrorCode.DATASTORE_UNAVAILABLE)
    return RevokeTokenResult(jti=claims.token_id, outcome=outcome)


async def get_revocation_status(session: AsyncSession, jti: str) -> RevokedToken | None:
    """Return the revocation record for ``jti``, if any.

    Raises ``TimeoutError`` when the read exceeds ``db_timeout_seconds``.
    """
    result = await run_bounded(
        session.execute(select(RevokedToken).where(RevokedToken.jti == jti))
    )
    return result.scalar_one_or_none()


async def cleanup_expired(
    session: AsyncSession,
    retention_days: int,
    *,
    dry_run: bool = False,
    now: datetime | None = None,
) -> int:
    """Delete revocation records whose credential can no longer verify.

    A record is removed once ``token_expires_at + retention_days`` is in the
    past.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    retention_days : int
        Grace period after credential expiry.
    dry_run : bool, default=False
        Count matching records without deleting them.
    now : datetime | None, default=None
        Reference time; defaults to the current UTC time.

    Returns
    -------
    int
        Number of records deleted, or that would be deleted.
    """
    if retention_days < 0:
        raise ValueError("retention_days must be non-negative")
    cutoff = (now or utc_now()) - timedelta(days=retention_days)
    if dry_run:
        result = await session.execute(
            select(func.count())
            .select_from(RevokedToken)
            .where(RevokedToken.token_expires_at < cutoff)
        )
        count = int(result.scalar_one())
        logger.info("revoked_token_cleanup_dry_run count=%s cutoff=%s", count, cutoff.isoformat())
        return count

    result = await session.execute(
        delete(RevokedToken).where(RevokedToken.token_expires_at < cutoff)
    )
    count = int(result.rowcount or 0)
    logger.info("revoked_token_cleanup count=%s cutoff=%s", count, cutoff.isoformat())
    return count
