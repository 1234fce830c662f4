"""Key rotation tracking model."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.models.mixins import TimestampMixin, uuid_column


class KeyRotation(TimestampMixin, Base):
    """Rotation history for one key class."""

    __tablename__ = "key_rotations"

    id: Mapped[uuid.UUID] = uuid_column()
    key_identifier: Mapped[str] = mapped_column(String(255), unique=True)
    key_type: Mapped[str] = mapped_column(String(50))
    last_rotated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    next_rotation_due: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    rotation_interval_days: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    metadata_text: Mapped[str | None] = mapped_column(Text, nullable=True)
