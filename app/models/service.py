"""Registered downstream service model."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.mixins import TimestampMixin, uuid_column


class ServiceRegistration(TimestampMixin, Base):
    """Downstream caller allowed to use the credential broker."""

    __tablename__ = "service_registrations"

    id: Mapped[uuid.UUID] = uuid_column()
    service_identifier: Mapped[str] = mapped_column(String(255), unique=True)
    api_key_hash: Mapped[str] = mapped_column(String(512))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_api_key_rotated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True)
    )

    audit_logs = relationship("ServiceAuditLog", back_populates="service")
