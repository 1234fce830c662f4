"""Registered service management and authentication."""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from functools import lru_cache

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import run_bounded
from app.models.mixins import utc_now
from app.models.service import ServiceRegistration
from app.services.key_rotation import SERVICE_API_KEY_PREFIX, KeyType, record_rotation
from app.services.security import generate_api_key, hash_api_key, verify_api_key

logger = logging.getLogger(__name__)


class ServiceRegistryError(Exception):
    """Raised for invalid registry operations."""


@dataclass(frozen=True, slots=True)
class ServiceCredentials:
    """Service identifier and raw key presented by a caller."""

    service_identifier: str
    api_key: str


@dataclass(frozen=True, slots=True)
class ServiceAuthResult:
    """Authentication outcome for a calling service."""

    service: ServiceRegistration | None = None
    error: str | None = None

    @property
    def authenticated(self) -> bool:
        return self.service is not None


def parse_service_credentials(authorization: str | None) -> ServiceCredentials | None:
    """Extract service credentials from an ``Authorization`` header.

    Accepts ``Bearer <id>:<key>`` and ``Basic base64(<id>:<key>)``.

    Parameters
    ----------
    authorization : str | None
        Raw header value.

    Returns
    -------
    ServiceCredentials | None
        Parsed pair, or ``None`` when the header is missing or malformed.
    """
    if not authorization:
        return None
    scheme, _, value = authorization.strip().partition(" ")
    value = value.strip()
    if scheme.lower() == "bearer":
        pair = value
    elif scheme.lower() == "basic":
        try:
            pair = base64.b64decode(value, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            return None
    else:
        return None
    service_identifier, separator, api_key = pair.partition(":")
    if not separator or not service_identifier or not api_key:
        return None
    return ServiceCredentials(service_identifier=service_identifier, api_key=api_key)


async def create_service(
    session: AsyncSession,
    service_identifier: str,
    *,
    api_key: str | None = None,
    description: str | None = None,
) -> tuple[ServiceRegistration, str]:
    """Register a service.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    service_identifier : str
        Unique service name.
    api_key : str | None, default=None
        Raw key to register; generated when omitted.
    description : str | None, default=None
        Operator note.

    Returns
    -------
    tuple[ServiceRegistration, str]
        Stored registration and the raw key. Only the hash is persisted.
    """
    if ":" in service_identifier:
        raise ServiceRegistryError("Service identifier must not contain ':'")
    if await get_service(session, service_identifier) is not None:
        raise ServiceRegistryError(f"Service {service_identifier!r} already exists")
    raw_key = api_key or generate_api_key()
    now = utc_now()
    service = ServiceRegistration(
        service_identifier=service_identifier,
        api_key_hash=hash_api_key(raw_key),
        is_active=True,
        description=description,
        last_api_key_rotated_at=now,
    )
    session.add(service)
    await session.flush()
    await record_rotation(
        session,
        f"{SERVICE_API_KEY_PREFIX}{service_identifier}",
        KeyType.SERVICE_API_KEY,
        metadata="Service registered",
        now=now,
    )
    logger.info("service_created service_identifier=%s service_id=%s", service_identifier, service.id)
    return service, raw_key


async def authenticate_service(
    session: AsyncSession, service_identifier: str, api_key: str
) -> ServiceAuthResult:
    """Check a presented service key.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    service_identifier : str
        Claimed service name.
    api_key : str
        Presented raw key.

    Returns
    -------
    ServiceAuthResult
        Authenticated registration, or an internal failure reason.

    Raises
    ------
    TimeoutError
        When the registration lookup exceeds ``db_timeout_seconds``.
    sqlalchemy.exc.SQLAlchemyError
        When the datastore rejects the lookup.
    """
    service = await run_bounded(get_service(session, service_identifier))
    if service is None:
        verify_api_key(api_key, _placeholder_hash())
        logger.info("service_auth_failed service_identifier=%s reason=not_found", service_identifier)
        return ServiceAuthResult(error="Service not found")
    if not verify_api_key(api_key, service.api_key_hash):
        logger.warning("service_auth_failed service_identifier=%s reason=invalid_key", service_identifier)
        return ServiceAuthResult(error="Invalid API key")
    if not service.is_active:
        logger.warning("service_auth_failed service_identifier=%s reason=inactive", service_identifier)
        return ServiceAuthResult(error="Service is inactive")
    service.last_used_at = utc_now()
    await run_bounded(session.flush())
    return ServiceAuthResult(service=service)


async def rotate_service_api_key(
    session: AsyncSession, service_identifier: str, new_api_key: str | None = None
) -> str:
    """Replace a service's key and record the rotation.

    Returns
    -------
    str
        New raw key.
    """
    service = await get_service(session, service_identifier)
    if service is None:
        raise ServiceRegistryError(f"Service {service_identifier!r} not found")
    raw_key = new_api_key or generate_api_key()
    now = utc_now()
    service.api_key_hash = hash_api_key(raw_key)
    service.last_api_key_rotated_at = now
    await session.flush()
    await record_rotation(
        session,
        f"{SERVICE_API_KEY_PREFIX}{service_identifier}",
        KeyType.SERVICE_API_KEY,
        metadata="API key rotated",
        now=now,
    )
    logger.info("service_api_key_rotated service_identifier=%s", service_identifier)
    return raw_key


async def deactivate_service(session: AsyncSession, service_identifier: str) -> ServiceRegistration:
    """Disable a service without deleting it."""
    return await _set_active(session, service_identifier, False)


async def activate_service(session: AsyncSession, service_identifier: str) -> ServiceRegistration:
    """Re-enable a deactivated service."""
    return await _set_active(session, service_identifier, True)


async def get_service(
    session: AsyncSession, service_identifier: str
) -> ServiceRegistration | None:
    """Return a registration by identifier."""
    result = await session.execute(
        select(ServiceRegistration).where(
            ServiceRegistration.service_identifier == service_identifier
        )
    )
    return result.scalar_one_or_none()


async def list_services(
    session: AsyncSession, *, active_only: bool = False
) -> list[ServiceRegistration]:
    """Return registrations ordered by identifier."""
    query = select(ServiceRegistration).order_by(ServiceRegistration.service_identifier)
    if active_only:
        query = query.where(ServiceRegistration.is_active.is_(True))
    result = await session.execute(query)
    return list(result.scalars().all())


async def _set_active(
    session: AsyncSession, service_identifier: str, active: bool
) -> ServiceRegistration:
    service = await get_service(session, service_identifier)
    if service is None:
        raise ServiceRegistryError(f"Service {service_identifier!r} not found")
    service.is_active = active
    await session.flush()
    logger.info("service_active_changed service_identifier=%s active=%s", service_identifier, active)
    return service


@lru_cache(maxsize=1)
def _placeholder_hash() -> str:
    # Checked against when the service is unknown.
    return hash_api_key(generate_api_key())
