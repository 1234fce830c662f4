"""End-user identity model."""

import uuid
from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.models.mixins import TimestampMixin, uuid_column


class Identity(TimestampMixin, Base):
    """GitHub-authenticated user and their encrypted provider tokens."""

    __tablename__ = "identities"

    id: Mapped[uuid.UUID] = uuid_column()
    github_user_id: Mapped[int] = mapped_column(BigInteger, unique=True)
    github_access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    github_refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    github_token_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_whitelisted: Mapped[bool] = mapped_column(Boolean, default=False)
