"""Identity store operations."""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.crypto.envelope import CredentialEncryptor
from app.database import insert_for
from app.models.identity import Identity
from app.models.mixins import utc_now
from app.services.vault import get_encryptor

logger = logging.getLogger(__name__)


async def upsert_identity_from_oauth(
    session: AsyncSession,
    *,
    github_user_id: int,
    access_token: str,
    refresh_token: str | None = None,
    expires_in: int | None = None,
    encryptor: CredentialEncryptor | None = None,
) -> Identity:
    """Create or update an identity after a successful GitHub login.

    New identities start unwhitelisted. An existing identity keeps its
    whitelist flag; only its stored tokens and expiry change.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    github_user_id : int
        GitHub account id.
    access_token : str
        Plaintext GitHub access token.
    refresh_token : str | None, default=None
        Plaintext GitHub refresh token.
    expires_in : int | None, default=None
        Access-token lifetime in seconds.
    encryptor : CredentialEncryptor | None, default=None
        Encryptor override; defaults to the configured one.

    Returns
    -------
    Identity
        Persisted identity.
    """
    cipher = encryptor or get_encryptor()
    now = utc_now()
    expires_at = now + timedelta(seconds=expires_in) if expires_in else None
    token_values = {
        "github_access_token": cipher.encrypt(access_token),
        "github_refresh_token": cipher.encrypt_optional(refresh_token),
        "github_token_expires_at": expires_at,
        "updated_at": now,
    }
    statement = (
        insert_for(session, Identity)
        .values(
            id=uuid.uuid4(),
            github_user_id=github_user_id,
            is_whitelisted=False,
            created_at=now,
            **token_values,
        )
        .on_conflict_do_update(index_elements=["github_user_id"], set_=token_values)
    )
    await session.execute(statement)
    result = await session.execute(
        select(Identity)
        .where(Identity.github_user_id == github_user_id)
        .execution_options(populate_existing=True)
    )
    identity = result.scalar_one()
    logger.info("identity_upserted identity_id=%s github_user_id=%s", identity.id, github_user_id)
    return identity


async def get_identity(session: AsyncSession, identity_id: uuid.UUID) -> Identity | None:
    """Return an identity by primary key."""
    return await session.get(Identity, identity_id)


async def get_identity_by_github_id(
    session: AsyncSession, github_user_id: int
) -> Identity | None:
    """Return an identity by GitHub account id."""
    result = await session.execute(
        select(Identity).where(Identity.github_user_id == github_user_id)
    )
    return result.scalar_one_or_none()


async def set_whitelist(
    session: AsyncSession, identity_id: uuid.UUID, whitelisted: bool
) -> Identity | None:
    """Grant or remove access for an identity.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    identity_id : uuid.UUID
        Identity primary key.
    whitelisted : bool
        New whitelist flag.

    Returns
    -------
    Identity | None
        Updated identity, or ``None`` when it does not exist.
    """
    identity = await session.get(Identity, identity_id)
    if identity is None:
        return None
    identity.is_whitelisted = whitelisted
    await session.flush()
    logger.info("whitelist_changed identity_id=%s whitelisted=%s", identity_id, whitelisted)
    return identity


async def revoke_all_access(session: AsyncSession, identity_id: uuid.UUID) -> Identity | None:
    """Remove an identity from the whitelist.

    Outstanding credentials stay signature-valid but are rejected by the
    authorization gate on their next use.
    """
    identity = await set_whitelist(session, identity_id, False)
    if identity is not None:
        logger.warning("identity_access_revoked identity_id=%s", identity_id)
    return identity
