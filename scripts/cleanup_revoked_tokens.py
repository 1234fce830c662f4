"""Delete revocation records whose credentials can no longer verify."""

from __future__ import annotations

import argparse

import anyio

from app.config import get_settings
from app.database import SessionLocal
from app.main import configure_logging
from app.services.revocation import cleanup_expired


def parse_args() -> argparse.Namespace:
    """Parse command-line options.

    Returns
    -------
    argparse.Namespace
        Parsed options.
    """
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--retention-days",
        type=int,
        default=None,
        help="Days to keep records past credential expiry (default: from settings).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Count matching records without deleting them.",
    )
    return parser.parse_args()


async def main() -> None:
    """Run the cleanup once.

    Returns
    -------
    None
        Prints the number of affected records.
    """
    args = parse_args()
    settings = get_settings()
    configure_logging(settings.log_level)
    retention_days = (
        args.retention_days
        if args.retention_days is not None
        else settings.revoked_token_retention_days
    )
    async with SessionLocal() as session:
        count = await cleanup_expired(session, retention_days, dry_run=args.dry_run)
        if not args.dry_run:
            await session.commit()
    verb = "would delete" if args.dry_run else "deleted"
    print(f"{verb} {count} revoked token record(s) older than {retention_days} day(s)")


if __name__ == "__main__":
    anyio.run(main)
