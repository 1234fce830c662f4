"""Credential broker schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from app.schemas.common import CamelModel

# Largest value the BIGINT github_user_id column can hold.
MAX_GITHUB_USER_ID = 2**63 - 1


class GitHubTokenRequest(CamelModel):
    """Identity whose GitHub token is requested."""

    user_id: str | None = None
    github_user_id: int | None = Field(default=None, gt=0, le=MAX_GITHUB_USER_ID)


class BrokerUser(CamelModel):
    """Identity summary returned with a released token."""

    id: UUID
    github_user_id: int
    is_whitelisted: bool


class GitHubTokenResponse(CamelModel):
    """Released GitHub token."""

    token: str
    expires_at: datetime | None
    user: BrokerUser
