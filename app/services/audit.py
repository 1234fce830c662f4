"""Service access audit trail."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit import ServiceAuditLog

logger = logging.getLogger(__name__)

UNKNOWN_IDENTITY = "unknown"


async def log_service_access(
    session: AsyncSession,
    *,
    service_id: UUID,
    identity_ref: str,
    action: str,
    success: bool,
    error_message: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> bool:
    """Persist an audit row in its own commit.

    Call after the request's own work is committed. A failed write is logged
    and rolled back; it never propagates.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    service_id : UUID
        Calling service.
    identity_ref : str
        Identity the request targeted, or ``unknown``.
    action : str
        Event action.
    success : bool
        Whether the request succeeded.
    error_message : str | None, default=None
        Failure reason.
    ip_address : str | None, default=None
        Caller address.
    user_agent : str | None, default=None
        Caller user agent.

    Returns
    -------
    bool
        Whether the row was written.
    """
    session.add(
        ServiceAuditLog(
            service_id=service_id,
            identity_ref=identity_ref,
            action=action,
            success=success,
            error_message=error_message,
            ip_address=ip_address,
            user_agent=user_agent,
        )
    )
    try:
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.error(
            "service_audit_write_failed service_id=%s action=%s error_type=%s",
            service_id,
            action,
            type(exc).__name__,
        )
        return False
    return True
