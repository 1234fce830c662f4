"""Service access audit model."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.mixins import utc_now, uuid_column


class ServiceAuditLog(Base):
    """Append-only record of a broker access attempt."""

    __tablename__ = "service_audit_logs"
    __table_args__ = (
        Index("ix_service_audit_logs_service_id", "service_id"),
        Index("ix_service_audit_logs_identity_ref", "identity_ref"),
        Index("ix_service_audit_logs_created_at", "created_at"),
    )

    id: Mapped[uuid.UUID] = uuid_column()
    service_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("service_registrations.id")
    )
    identity_ref: Mapped[str] = mapped_column(String(255))
    action: Mapped[str] = mapped_column(String(100))
    success: Mapped[bool] = mapped_column(Boolean)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    service = relationship("ServiceRegistration", back_populates="audit_logs")
