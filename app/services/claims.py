"""Credential claim and verification result types."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

REQUIRED_CLAIMS = ("sub", "githubId", "jti", "iss", "aud", "iat", "exp")


class VerifyStatus(str, Enum):
    """Outcome of checking a credential."""

    VALID = "valid"
    INVALID = "invalid"
    EXPIRED = "expired"


@dataclass(frozen=True, slots=True)
class CredentialClaims:
    """Validated claims carried by a gateway credential.

    Attributes
    ----------
    subject_id : uuid.UUID
        Identity primary key (``sub``).
    github_id : int
        External account reference (``githubId``).
    token_id : str
        Unique credential identifier (``jti``).
    issuer : str
        ``iss`` claim.
    audience : str
        ``aud`` claim.
    issued_at : datetime
        ``iat`` as an aware UTC timestamp.
    expires_at : datetime
        ``exp`` as an aware UTC timestamp.
    """

    subject_id: uuid.UUID
    github_id: int
    token_id: str
    issuer: str
    audience: str
    issued_at: datetime
    expires_at: datetime

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> CredentialClaims:
        """Build claims from a decoded payload.

        Parameters
        ----------
        payload : dict[str, Any]
            Decoded JWT body.

        Returns
        -------
        CredentialClaims
            Typed claims.

        Raises
        ------
        ValueError
            When a required claim is missing or has the wrong shape.
        """
        missing = [name for name in REQUIRED_CLAIMS if payload.get(name) in (None, "")]
        if missing:
            raise ValueError(f"Missing claims: {', '.join(missing)}")

        github_id = payload["githubId"]
        if isinstance(github_id, bool) or not isinstance(github_id, int):
            raise ValueError("githubId must be an integer")
        audience = payload["aud"]
        if isinstance(audience, list):
            if len(audience) != 1:
                raise ValueError("aud must name exactly one audience")
            audience = audience[0]
        for name in ("iat", "exp"):
            if isinstance(payload[name], bool) or not isinstance(payload[name], (int, float)):
                raise ValueError(f"{name} must be numeric")

        return cls(
            subject_id=uuid.UUID(str(payload["sub"])),
            github_id=github_id,
            token_id=str(payload["jti"]),
            issuer=str(payload["iss"]),
            audience=str(audience),
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )


@dataclass(frozen=True, slots=True)
class VerifyResult:
    """Verification outcome.

    ``claims`` is populated for ``VALID`` and ``EXPIRED`` results.
    """

    status: VerifyStatus
    claims: CredentialClaims | None = None
    error: str | None = None

    @property
    def valid(self) -> bool:
        return self.status is VerifyStatus.VALID

    @property
    def expired(self) -> bool:
        return self.status is VerifyStatus.EXPIRED
