"""Batched re-encryption of stored GitHub tokens under a new master key."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.crypto.envelope import (
    DEFAULT_ITERATIONS,
    CredentialEncryptor,
    EncryptionError,
    is_envelope,
)
from app.models.identity import Identity
from app.services.key_rotation import TOKEN_ENCRYPTION_KEY_ID, KeyType, record_rotation

logger = logging.getLogger(__name__)

TOKEN_COLUMNS = ("github_access_token", "github_refresh_token")


class FieldOutcome(str, Enum):
    """What happened to one stored value."""

    SKIPPED = "skipped"
    REENCRYPTED = "reencrypted"
    ENCRYPTED_PLAINTEXT = "encrypted_plaintext"
    FAILED = "failed"


@dataclass
class MigrationReport:
    """Progress of a re-encryption run.

    ``last_cursor`` is the highest identity id whose batch was committed;
    pass it back as ``start_after`` to resume.
    """

    identities_scanned: int = 0
    reencrypted: int = 0
    encrypted_plaintext: int = 0
    skipped: int = 0
    failed: int = 0
    batches_committed: int = 0
    last_cursor: uuid.UUID | None = None
    completed: bool = False
    failed_identity_ids: list[uuid.UUID] = field(default_factory=list)

    def record(self, outcome: FieldOutcome) -> None:
        if outcome is FieldOutcome.REENCRYPTED:
            self.reencrypted += 1
        elif outcome is FieldOutcome.ENCRYPTED_PLAINTEXT:
            self.encrypted_plaintext += 1
        elif outcome is FieldOutcome.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1


def migrate_value(
    value: str, old: CredentialEncryptor, new: CredentialEncryptor
) -> tuple[FieldOutcome, str]:
    """Bring one stored value under the new key.

    Parameters
    ----------
    value : str
        Stored column value.
    old : CredentialEncryptor
        Encryptor for the outgoing key.
    new : CredentialEncryptor
        Encryptor for the incoming key.

    Returns
    -------
    tuple[FieldOutcome, str]
        Outcome and the value to store.
    """
    if not is_envelope(value):
        return FieldOutcome.ENCRYPTED_PLAINTEXT, new.encrypt(value)
    if new.can_decrypt(value):
        return FieldOutcome.SKIPPED, value
    try:
        plaintext = old.decrypt(value)
    except EncryptionError:
        return FieldOutcome.FAILED, value
    return FieldOutcome.REENCRYPTED, new.encrypt(plaintext)


async def reencrypt_stored_tokens(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    old_key: str,
    new_key: str,
    batch_size: int = 100,
    start_after: uuid.UUID | None = None,
    max_batches: int | None = None,
    iterations: int = DEFAULT_ITERATIONS,
) -> MigrationReport:
    """Re-encrypt every stored GitHub token under ``new_key``.

    Identities are walked in id order. Each batch commits in its own
    session, so an interrupted run leaves every row readable by one of the
    two keys and can resume from ``last_cursor``. Values already under the
    new key are left alone, which makes reruns safe.

    Parameters
    ----------
    session_factory : async_sessionmaker[AsyncSession]
        Factory for per-batch sessions.
    old_key : str
        Outgoing master key.
    new_key : str
        Incoming master key.
    batch_size : int, default=100
        Identities per batch.
    start_after : uuid.UUID | None, default=None
        Resume cursor from a previous report.
    max_batches : int | None, default=None
        Stop after this many batches.
    iterations : int, default=100000
        PBKDF2 iteration count for both keys.

    Returns
    -------
    MigrationReport
        Counts, cursor and completion flag.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be positive")
    old = CredentialEncryptor(old_key, iterations=iterations)
    new = CredentialEncryptor(new_key, iterations=iterations)
    report = MigrationReport(last_cursor=start_after)

    while max_batches is None or report.batches_committed < max_batches:
        async with session_factory() as session:
            query = select(Identity).order_by(Identity.id).limit(batch_size)
            if report.last_cursor is not None:
                query = query.where(Identity.id > report.last_cursor)
            identities = list((await session.execute(query)).scalars().all())
            if not identities:
                report.completed = True
                break

            for identity in identities:
                report.identities_scanned += 1
                identity_failed = False
                for column in TOKEN_COLUMNS:
                    value = getattr(identity, column)
                    if not value:
                        continue
                    outcome, migrated = migrate_value(value, old, new)
                    report.record(outcome)
                    if outcome is FieldOutcome.FAILED:
                        identity_failed = True
                    elif migrated != value:
                        setattr(identity, column, migrated)
                if identity_failed:
                    report.failed_identity_ids.append(identity.id)
                    logger.error("token_reencryption_failed identity_id=%s", identity.id)

            await session.commit()
            report.batches_committed += 1
            report.last_cursor = identities[-1].id
            logger.info(
                "token_reencryption_batch_committed batch=%s cursor=%s",
                report.batches_committed,
                report.last_cursor,
            )
            if len(identities) < batch_size:
                report.completed = True
                break

    if report.completed and report.failed == 0:
        async with session_factory() as session:
            await record_rotation(
                session,
                TOKEN_ENCRYPTION_KEY_ID,
                KeyType.TOKEN_ENCRYPTION,
                metadata="Stored tokens re-encrypted",
            )
            await session.commit()

    logger.info(
        "token_reencryption_finished completed=%s reencrypted=%s encrypted_plaintext=%s "
        "skipped=%s failed=%s",
        report.completed,
        report.reencrypted,
        report.encrypted_plaintext,
        report.skipped,
        report.failed,
    )
    return report
