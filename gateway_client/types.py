"""SDK response types."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID


@dataclass(frozen=True, slots=True)
class IssuedCredential:
    """Gateway credential.

    Attributes
    ----------
    token : str
        Signed credential.
    expires_in : int
        Validity window in seconds.
    expires_at : datetime
        Expiry timestamp.
    """

    token: str
    expires_in: int
    expires_at: datetime

    @property
    def ttl_remaining_seconds(self) -> int:
        """Return remaining validity.

        Returns
        -------
        int
            Remaining lifetime in seconds, clamped at zero.
        """
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        now = datetime.now(timezone.utc)
        return max(0, int((expires_at - now).total_seconds()))


@dataclass(frozen=True, slots=True)
class BrokeredUser:
    """Identity summary returned with a GitHub token."""

    id: UUID
    github_user_id: int
    is_whitelisted: bool


@dataclass(frozen=True, slots=True)
class GitHubToken:
    """GitHub token released by the broker.

    Attributes
    ----------
    token : str
        GitHub access token.
    expires_at : datetime | None
        Expiry, or ``None`` for non-expiring tokens.
    user : BrokeredUser
        Identity the token belongs to.
    """

    token: str
    expires_at: datetime | None
    user: BrokeredUser


@dataclass(frozen=True, slots=True)
class RevocationResult:
    """Outcome of a revoke call."""

    jti: str
    already_revoked: bool


@dataclass(frozen=True, slots=True)
class RevocationStatus:
    """Revocation lookup result."""

    jti: str
    revoked: bool
    revoked_at: datetime | None = None
    revoked_by: str | None = None
    reason: str | None = None
