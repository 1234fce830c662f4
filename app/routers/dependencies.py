"""Shared router helpers."""

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession


async def commit_session(session: AsyncSession) -> None:
    """Commit the current transaction.

    Parameters
    ----------
    session : AsyncSession
        Active database session.

    Returns
    -------
    None
        Commits current transaction.
    """
    await session.commit()


def parse_uuid(value: str) -> UUID | None:
    """Parse a UUID query or body value, returning ``None`` when malformed."""
    try:
        return UUID(value)
    except ValueError:
        return None
