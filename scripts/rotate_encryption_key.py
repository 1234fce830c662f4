"""Re-encrypt stored GitHub tokens from an old master key to a new one.

Both keys are read from the environment so they never appear in shell
history:

GATEWAY_OLD_TOKEN_ENCRYPTION_KEY
    Outgoing master key.
GATEWAY_NEW_TOKEN_ENCRYPTION_KEY
    Incoming master key.
"""

from __future__ import annotations

import argparse
import os
import uuid

import anyio

from app.config import get_settings
from app.database import SessionLocal
from app.main import configure_logging
from app.services.key_migration import reencrypt_stored_tokens


def parse_args() -> argparse.Namespace:
    """Parse command-line options.

    Returns
    -------
    argparse.Namespace
        Parsed options.
    """
    parser = argparse.ArgumentParser(description="Re-encrypt stored GitHub tokens.")
    parser.add_argument("--batch-size", type=int, default=100)
    parser.add_argument(
        "--start-after",
        type=uuid.UUID,
        default=None,
        help="Resume after this identity id (the cursor printed by a previous run).",
    )
    parser.add_argument("--max-batches", type=int, default=None)
    return parser.parse_args()


async def main() -> int:
    """Run the migration.

    Returns
    -------
    int
        ``0`` on a complete, failure-free run, else ``1``.
    """
    args = parse_args()
    settings = get_settings()
    configure_logging(settings.log_level)
    old_key = os.environ.get("GATEWAY_OLD_TOKEN_ENCRYPTION_KEY")
    new_key = os.environ.get("GATEWAY_NEW_TOKEN_ENCRYPTION_KEY")
    if not old_key or not new_key:
        raise SystemExit(
            "GATEWAY_OLD_TOKEN_ENCRYPTION_KEY and GATEWAY_NEW_TOKEN_ENCRYPTION_KEY are required"
        )

    report = await reencrypt_stored_tokens(
        SessionLocal,
        old_key=old_key,
        new_key=new_key,
        batch_size=args.batch_size,
        start_after=args.start_after,
        max_batches=args.max_batches,
        iterations=settings.token_encryption_kdf_iterations,
    )
    print(
        f"scanned={report.identities_scanned} reencrypted={report.reencrypted} "
        f"encrypted_plaintext={report.encrypted_plaintext} skipped={report.skipped} "
        f"failed={report.failed} cursor={report.last_cursor} completed={report.completed}"
    )
    if report.completed and report.failed == 0:
        print("Set GATEWAY_TOKEN_ENCRYPTION_KEY to the new key and restart.")
        return 0
    return 1


if __name__ == "__main__":
    raise SystemExit(anyio.run(main))
