"""Revoked credential model."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.models.mixins import utc_now, uuid_column


class RevokedToken(Base):
    """Explicitly invalidated credential, keyed by its ``jti``.

    ``token_expires_at`` mirrors the credential's own ``exp`` so rows can be
    pruned once the credential could no longer verify anyway.
    """

    __tablename__ = "revoked_tokens"
    __table_args__ = (
        Index("ix_revoked_tokens_identity_id", "identity_id"),
        Index("ix_revoked_tokens_token_expires_at", "token_expires_at"),
    )

    id: Mapped[uuid.UUID] = uuid_column()
    jti: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    identity_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True))
    token_issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    token_expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    revoked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    revoked_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
