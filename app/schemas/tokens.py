"""Credential lifecycle schemas."""

from datetime import datetime
from uuid import UUID

from app.schemas.common import CamelModel


class TokenRequest(CamelModel):
    """Body carrying a gateway credential."""

    token: str | None = None


class RevokeRequest(CamelModel):
    """Revocation request."""

    token: str | None = None
    reason: str | None = None
    revoked_by: str | None = None


class TokenResponse(CamelModel):
    """Issued credential."""

    token: str
    expires_in: int
    expires_at: datetime


class RevokeResponse(CamelModel):
    """Revocation outcome."""

    success: bool
    jti: str
    already_revoked: bool


class RevocationDetails(CamelModel):
    """Stored revocation record."""

    revoked_at: datetime
    revoked_by: str | None
    reason: str | None
    token_expires_at: datetime


class RevocationStatusResponse(CamelModel):
    """Revocation lookup result."""

    revoked: bool
    jti: str
    details: RevocationDetails | None = None


class SessionResponse(CamelModel):
    """Authenticated caller."""

    user_id: UUID
    github_id: int
    jti: str


class SessionStatusResponse(SessionResponse):
    """Authenticated caller with current access state."""

    is_whitelisted: bool
