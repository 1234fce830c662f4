"""Gateway credential issuance, verification and refresh."""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache

import jwt
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, get_settings
from app.crypto.signing import SIGNING_ALGORITHM, SigningKeys
from app.database import run_bounded
from app.errors import ErrorCode
from app.models.identity import Identity
from app.models.mixins import utc_now
from app.services.claims import CredentialClaims, VerifyResult, VerifyStatus
from app.services.gate import AuthorizationGate
from app.services.vault import get_signing_keys

logger = logging.getLogger(__name__)

_DURATION_PATTERN = re.compile(r"^\s*(\d+)\s*([smhd])\s*$")
_DURATION_UNITS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value: str) -> int:
    """Convert ``30d``-style durations to seconds.

    Parameters
    ----------
    value : str
        Number followed by ``s``, ``m``, ``h`` or ``d``.

    Returns
    -------
    int
        Duration in seconds.

    Raises
    ------
    ValueError
        When the value is not a recognised positive duration.
    """
    match = _DURATION_PATTERN.match(value)
    if match is None:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    seconds = int(amount) * _DURATION_UNITS[unit]
    if seconds <= 0:
        raise ValueError(f"Duration must be positive: {value!r}")
    return seconds


@dataclass(frozen=True, slots=True)
class IssuedToken:
    """Freshly signed credential."""

    token: str
    token_id: str
    expires_in: int
    expires_at: datetime


@dataclass(frozen=True, slots=True)
class IssueResult:
    """Issued credential or the typed reason it was refused."""

    issued: IssuedToken | None = None
    error: ErrorCode | None = None


class TokenService:
    """RS256 credential issuer and verifier.

    Parameters
    ----------
    settings : Settings
        Issuer, audience, validity window and clock tolerance.
    keys : SigningKeys
        Signing pair.
    clock : Callable[[], datetime], default=utc_now
        Source of the current time.
    """

    def __init__(
        self,
        settings: Settings,
        keys: SigningKeys,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.issuer = settings.jwt_issuer
        self.audience = settings.jwt_audience
        self.validity_seconds = parse_duration(settings.jwt_expires_in)
        self.clock_tolerance = timedelta(seconds=settings.jwt_clock_tolerance_seconds)
        self.keys = keys
        self.clock = clock

    def issue(self, identity: Identity) -> IssuedToken:
        """Sign a credential for an identity.

        The whitelist flag is never embedded; it is read at request time.

        Parameters
        ----------
        identity : Identity
            Credential subject.

        Returns
        -------
        IssuedToken
            Encoded credential and its expiry.
        """
        issued_at = int(self.clock().timestamp())
        expires_at = issued_at + self.validity_seconds
        token_id = str(uuid.uuid4())
        payload = {
            "sub": str(identity.id),
            "githubId": int(identity.github_user_id),
            "jti": token_id,
            "iss": self.issuer,
            "aud": self.audience,
            "iat": issued_at,
            "exp": expires_at,
        }
        token = jwt.encode(
            payload,
            self.keys.private_pem,
            algorithm=SIGNING_ALGORITHM,
            headers={"kid": self.keys.key_id},
        )
        logger.info("token_issued identity_id=%s jti=%s", identity.id, token_id)
        return IssuedToken(
            token=token,
            token_id=token_id,
            expires_in=self.validity_seconds,
            expires_at=datetime.fromtimestamp(expires_at, tz=timezone.utc),
        )

    async def issue_for_identity_id(
        self, session: AsyncSession, identity_id: uuid.UUID
    ) -> IssueResult:
        """Issue a credential for a stored identity.

        Parameters
        ----------
        session : AsyncSession
            Active database session.
        identity_id : uuid.UUID
            Identity primary key.

        Returns
        -------
        IssueResult
            ``USER_NOT_FOUND`` when the identity does not exist, or
            ``DATASTORE_UNAVAILABLE`` when it cannot be read in time.
        """
        try:
            identity = await run_bounded(session.get(Identity, identity_id))
        except (asyncio.TimeoutError, SQLAlchemyError) as exc:
            logger.error(
                "token_issue_lookup_failed identity_id=%s error_type=%s",
                identity_id,
                type(exc).__name__,
            )
            return IssueResult(error=ErrorCode.DATASTORE_UNAVAILABLE)
        if identity is None:
            return IssueResult(error=ErrorCode.USER_NOT_FOUND)
        return IssueResult(issued=self.issue(identity))

    def verify(self, token: str) -> VerifyResult:
        """Check a credential's signature, issuer, audience, claims and expiry.

        Parameters
        ----------
        token : str
            Encoded credential.

        Returns
        -------
        VerifyResult
            ``EXPIRED`` iff the current time is past ``exp`` plus the clock
            tolerance; ``INVALID`` for any other defect.
        """
        try:
            payload = jwt.decode(
                token,
                self.keys.public_pem,
                algorithms=[SIGNING_ALGORITHM],
                audience=self.audience,
                issuer=self.issuer,
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                    "require": ["sub", "jti", "iat", "exp", "iss", "aud"],
                },
            )
            claims = CredentialClaims.from_payload(payload)
        except jwt.InvalidTokenError as exc:
            return VerifyResult(status=VerifyStatus.INVALID, error=type(exc).__name__)
        except (ValueError, TypeError, OverflowError) as exc:
            return VerifyResult(status=VerifyStatus.INVALID, error=str(exc))

        if self.clock() > claims.expires_at + self.clock_tolerance:
            return VerifyResult(status=VerifyStatus.EXPIRED, claims=claims, error="expired")
        return VerifyResult(status=VerifyStatus.VALID, claims=claims)

    async def refresh(self, session: AsyncSession, token: str) -> IssueResult:
        """Exchange a live credential for a new one.

        The presented credential passes the full authorization gate first. It
        is not revoked afterwards and stays usable until it expires.

        Parameters
        ----------
        session : AsyncSession
            Active database session.
        token : str
            Credential being refreshed.

        Returns
        -------
        IssueResult
            New credential, or the gate's rejection code.
        """
        gate = AuthorizationGate(self)
        decision = await gate.authorize(session, token)
        if decision.context is None:
            return IssueResult(error=decision.error)
        try:
            identity = await run_bounded(session.get(Identity, decision.context.subject_id))
        except (asyncio.TimeoutError, SQLAlchemyError) as exc:
            logger.error(
                "token_refresh_lookup_failed identity_id=%s error_type=%s",
                decision.context.subject_id,
                type(exc).__name__,
            )
            return IssueResult(error=ErrorCode.DATASTORE_UNAVAILABLE)
        if identity is None:
            return IssueResult(error=ErrorCode.USER_NOT_FOUND)
        issued = self.issue(identity)
        logger.info(
            "token_refreshed identity_id=%s old_jti=%s new_jti=%s",
            identity.id,
            decision.context.token_id,
            issued.token_id,
        )
        return IssueResult(issued=issued)


@lru_cache(maxsize=1)
def get_token_service() -> TokenService:
    """Return the cached settings-bound token service.

    Returns
    -------
    TokenService
        Service using the configured signing keys.
    """
    return TokenService(get_settings(), get_signing_keys())
