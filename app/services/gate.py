"""Per-request authorization of gateway credentials."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import run_bounded
from app.errors import ErrorCode
from app.models.identity import Identity
from app.services.claims import CredentialClaims, VerifyResult, VerifyStatus
from app.services.revocation import is_revoked

logger = logging.getLogger(__name__)


class CredentialVerifier(Protocol):
    def verify(self, token: str) -> VerifyResult: ...


@dataclass(frozen=True, slots=True)
class AuthContext:
    """Caller attached to an admitted request."""

    subject_id: uuid.UUID
    github_id: int
    token_id: str
    claims: CredentialClaims


@dataclass(frozen=True, slots=True)
class GateResult:
    """Admission decision."""

    context: AuthContext | None = None
    error: ErrorCode | None = None

    @property
    def admitted(self) -> bool:
        return self.context is not None


class AuthorizationGate:
    """Verify, revocation check and fresh whitelist read, in that order.

    Every datastore read is bounded by ``db_timeout_seconds``. A timeout or
    database failure rejects with ``AUTHORIZATION_UNAVAILABLE``.

    Parameters
    ----------
    verifier : CredentialVerifier
        Signature and claim verifier.
    timeout : float | None, default=None
        Override for the per-read time bound.
    """

    def __init__(self, verifier: CredentialVerifier, timeout: float | None = None) -> None:
        self.verifier = verifier
        self.timeout = timeout

    async def authorize(self, session: AsyncSession, token: str) -> GateResult:
        """Run the full admission check.

        Parameters
        ----------
        session : AsyncSession
            Active database session.
        token : str
            Encoded credential.

        Returns
        -------
        GateResult
            Admitted context or the typed rejection.
        """
        result = await self.authorize_without_whitelist(session, token)
        if not result.admitted or result.context is None:
            return result

        try:
            whitelisted = await run_bounded(
                _read_whitelist(session, result.context.subject_id), self.timeout
            )
        except (asyncio.TimeoutError, SQLAlchemyError) as exc:
            return _unavailable("whitelist", result.context.token_id, exc)

        if whitelisted is None:
            return _reject(ErrorCode.USER_NOT_FOUND, result.context.token_id)
        if not whitelisted:
            return _reject(ErrorCode.WHITELIST_REVOKED, result.context.token_id)
        return result

    async def authorize_without_whitelist(
        self, session: AsyncSession, token: str
    ) -> GateResult:
        """Verify and check revocation, skipping the whitelist read.

        Only for endpoints that must stay reachable by identities whose
        access has been removed.

        Parameters
        ----------
        session : AsyncSession
            Active database session.
        token : str
            Encoded credential.

        Returns
        -------
        GateResult
            Admitted context or the typed rejection.
        """
        verified = self.verifier.verify(token)
        if verified.status is VerifyStatus.EXPIRED:
            return _reject(ErrorCode.EXPIRED_TOKEN, _token_id(verified))
        if verified.status is not VerifyStatus.VALID or verified.claims is None:
            return _reject(ErrorCode.INVALID_TOKEN, None)

        claims = verified.claims
        try:
            revoked = await run_bounded(is_revoked(session, claims.token_id), self.timeout)
        except (asyncio.TimeoutError, SQLAlchemyError) as exc:
            return _unavailable("revocation", claims.token_id, exc)
        if revoked:
            return _reject(ErrorCode.TOKEN_REVOKED, claims.token_id)

        return GateResult(
            context=AuthContext(
                subject_id=claims.subject_id,
                github_id=claims.github_id,
                token_id=claims.token_id,
                claims=claims,
            )
        )


async def _read_whitelist(session: AsyncSession, identity_id: uuid.UUID) -> bool | None:
    result = await session.execute(
        select(Identity.is_whitelisted).where(Identity.id == identity_id)
    )
    return result.scalar_one_or_none()


def _token_id(verified: VerifyResult) -> str | None:
    return verified.claims.token_id if verified.claims else None


def _reject(code: ErrorCode, jti: str | None) -> GateResult:
    logger.info("authorization_rejected code=%s jti=%s", code.value, jti)
    return GateResult(error=code)


def _unavailable(step: str, jti: str, exc: Exception) -> GateResult:
    logger.error(
        "authorization_unavailable step=%s jti=%s error_type=%s",
        step,
        jti,
        type(exc).__name__,
    )
    return GateResult(error=ErrorCode.AUTHORIZATION_UNAVAILABLE)
