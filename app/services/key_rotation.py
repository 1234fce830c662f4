"""Key rotation compliance tracking."""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.database import insert_for
from app.models.key_rotation import KeyRotation
from app.models.mixins import as_utc, utc_now

logger = logging.getLogger(__name__)

JWT_SIGNING_KEY_ID = "jwt_signing_key"
TOKEN_ENCRYPTION_KEY_ID = "token_encryption_key"
SERVICE_API_KEY_PREFIX = "service_api_key:"

URGENT_WINDOW_DAYS = 7
SOON_WINDOW_DAYS = 30


class KeyType(str, Enum):
    """Tracked key classes."""

    JWT_SIGNING = "jwt_signing"
    TOKEN_ENCRYPTION = "token_encryption"
    SERVICE_API_KEY = "service_api_key"
    OTHER = "other"


class Urgency(str, Enum):
    """How soon a key must be rotated."""

    OVERDUE = "overdue"
    URGENT = "urgent"
    SOON = "soon"
    OK = "ok"
    DISABLED = "disabled"


@dataclass(frozen=True, slots=True)
class RotationStatus:
    """Computed rotation state for one key."""

    key_identifier: str
    key_type: str
    last_rotated_at: datetime
    next_rotation_due: datetime | None
    rotation_interval_days: int
    is_active: bool
    days_since_rotation: int
    days_until_due: int | None
    urgency: Urgency

    @property
    def is_overdue(self) -> bool:
        return self.urgency is Urgency.OVERDUE


def classify_urgency(days_until_due: int | None) -> Urgency:
    """Bucket the remaining days before a rotation is due.

    Parameters
    ----------
    days_until_due : int | None
        Whole days remaining; ``None`` when rotation is not scheduled.

    Returns
    -------
    Urgency
        ``OVERDUE`` below zero, ``URGENT`` under 7, ``SOON`` up to 30,
        ``OK`` beyond, ``DISABLED`` when unscheduled.
    """
    if days_until_due is None:
        return Urgency.DISABLED
    if days_until_due < 0:
        return Urgency.OVERDUE
    if days_until_due < URGENT_WINDOW_DAYS:
        return Urgency.URGENT
    if days_until_due <= SOON_WINDOW_DAYS:
        return Urgency.SOON
    return Urgency.OK


def default_interval_days(key_type: KeyType) -> int:
    """Return the configured rotation interval for a key class."""
    settings = get_settings()
    if key_type is KeyType.JWT_SIGNING:
        return settings.jwt_key_rotation_interval_days
    if key_type is KeyType.TOKEN_ENCRYPTION:
        return settings.token_encryption_key_rotation_interval_days
    if key_type is KeyType.SERVICE_API_KEY:
        return settings.service_api_key_rotation_interval_days
    return 0


def compute_status(record: KeyRotation, now: datetime | None = None) -> RotationStatus:
    """Derive rotation status from a stored record.

    Day counts use floor division, so a key due in 12 hours reports 0 days
    and one 12 hours late reports -1.
    """
    current = now or utc_now()
    last_rotated_at = as_utc(record.last_rotated_at)
    next_due = as_utc(record.next_rotation_due) if record.next_rotation_due else None
    days_since = _floor_days(current - last_rotated_at)
    days_until = _floor_days(next_due - current) if next_due else None
    return RotationStatus(
        key_identifier=record.key_identifier,
        key_type=record.key_type,
        last_rotated_at=last_rotated_at,
        next_rotation_due=next_due,
        rotation_interval_days=record.rotation_interval_days,
        is_active=record.is_active,
        days_since_rotation=days_since,
        days_until_due=days_until,
        urgency=classify_urgency(days_until),
    )


async def record_rotation(
    session: AsyncSession,
    key_identifier: str,
    key_type: KeyType,
    *,
    interval_days: int | None = None,
    metadata: str | None = None,
    now: datetime | None = None,
) -> KeyRotation:
    """Record that a key was rotated.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    key_identifier : str
        Stable key name, unique across the table.
    key_type : KeyType
        Key class; supplies the default interval.
    interval_days : int | None, default=None
        Rotation interval; ``0`` disables scheduling.
    metadata : str | None, default=None
        Free-text note stored with the record.
    now : datetime | None, default=None
        Rotation time; defaults to the current UTC time.

    Returns
    -------
    KeyRotation
        Upserted record.
    """
    rotated_at = now or utc_now()
    interval = default_interval_days(key_type) if interval_days is None else interval_days
    next_due = rotated_at + timedelta(days=interval) if interval > 0 else None
    update_values = {
        "last_rotated_at": rotated_at,
        "next_rotation_due": next_due,
        "rotation_interval_days": interval,
        "is_active": True,
        "updated_at": rotated_at,
    }
    insert_values = {**update_values, "metadata_text": metadata}
    if metadata is not None:
        update_values["metadata_text"] = metadata
    statement = (
        insert_for(session, KeyRotation)
        .values(
            id=uuid.uuid4(),
            key_identifier=key_identifier,
            key_type=key_type.value,
            created_at=rotated_at,
            **insert_values,
        )
        .on_conflict_do_update(index_elements=["key_identifier"], set_=update_values)
    )
    await session.execute(statement)
    record = await _load(session, key_identifier)
    logger.info(
        "key_rotation_recorded key_identifier=%s key_type=%s next_rotation_due=%s",
        key_identifier,
        key_type.value,
        next_due.isoformat() if next_due else None,
    )
    return record


async def get_rotation_status(
    session: AsyncSession, key_identifier: str, now: datetime | None = None
) -> RotationStatus | None:
    """Return the computed status for one key, or ``None`` when untracked."""
    result = await session.execute(
        select(KeyRotation).where(KeyRotation.key_identifier == key_identifier)
    )
    record = result.scalar_one_or_none()
    if record is None:
        return None
    return compute_status(record, now)


async def list_rotation_statuses(
    session: AsyncSession, *, active_only: bool = True, now: datetime | None = None
) -> list[RotationStatus]:
    """Return statuses for tracked keys, least recently rotated first."""
    query = select(KeyRotation).order_by(KeyRotation.last_rotated_at.asc())
    if active_only:
        query = query.where(KeyRotation.is_active.is_(True))
    result = await session.execute(query)
    return [compute_status(record, now) for record in result.scalars().all()]


async def initialize_key_rotation_tracking(
    session: AsyncSession, now: datetime | None = None
) -> list[str]:
    """Create tracking records for the signing and encryption keys.

    Existing records are left untouched so real rotation history survives
    restarts.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    now : datetime | None, default=None
        Baseline rotation time for new records.

    Returns
    -------
    list[str]
        Key identifiers that were newly created.
    """
    baseline = now or utc_now()
    created: list[str] = []
    for key_identifier, key_type in (
        (JWT_SIGNING_KEY_ID, KeyType.JWT_SIGNING),
        (TOKEN_ENCRYPTION_KEY_ID, KeyType.TOKEN_ENCRYPTION),
    ):
        interval = default_interval_days(key_type)
        statement = (
            insert_for(session, KeyRotation)
            .values(
                id=uuid.uuid4(),
                key_identifier=key_identifier,
                key_type=key_type.value,
                last_rotated_at=baseline,
                next_rotation_due=(
                    baseline + timedelta(days=interval) if interval > 0 else None
                ),
                rotation_interval_days=interval,
                is_active=True,
                metadata_text="Initialized at startup",
                created_at=baseline,
                updated_at=baseline,
            )
            .on_conflict_do_nothing(index_elements=["key_identifier"])
        )
        result = await session.execute(statement)
        if result.rowcount:
            created.append(key_identifier)
    if created:
        logger.info("key_rotation_tracking_initialized keys=%s", ",".join(created))
    return created


async def check_and_log_overdue_rotations(
    session: AsyncSession, now: datetime | None = None
) -> list[RotationStatus]:
    """Log overdue and soon-due keys.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    now : datetime | None, default=None
        Reference time.

    Returns
    -------
    list[RotationStatus]
        Statuses of active keys that are overdue.
    """
    statuses = await list_rotation_statuses(session, active_only=True, now=now)
    overdue = [status for status in statuses if status.is_overdue]
    for status in overdue:
        logger.warning(
            "key_rotation_overdue key_identifier=%s key_type=%s days_overdue=%s",
            status.key_identifier,
            status.key_type,
            -(status.days_until_due or 0),
        )
    for status in statuses:
        if status.urgency in (Urgency.URGENT, Urgency.SOON):
            logger.info(
                "key_rotation_due_soon key_identifier=%s days_until_due=%s",
                status.key_identifier,
                status.days_until_due,
            )
    return overdue


async def _load(session: AsyncSession, key_identifier: str) -> KeyRotation:
    result = await session.execute(
        select(KeyRotation)
        .where(KeyRotation.key_identifier == key_identifier)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


def _floor_days(delta: timedelta) -> int:
    return math.floor(delta.total_seconds() / 86400)
