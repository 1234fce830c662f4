"""Report key rotation status; exit non-zero when a key is overdue."""

from __future__ import annotations

import anyio

from app.config import get_settings
from app.database import SessionLocal
from app.main import configure_logging
from app.services.key_rotation import (
    check_and_log_overdue_rotations,
    list_rotation_statuses,
)


async def main() -> int:
    """Print one line per tracked key.

    Returns
    -------
    int
        ``1`` when any active key is overdue, else ``0``.
    """
    configure_logging(get_settings().log_level)
    async with SessionLocal() as session:
        statuses = await list_rotation_statuses(session, active_only=False)
        overdue = await check_and_log_overdue_rotations(session)

    if not statuses:
        print("no keys tracked")
    for status in statuses:
        due = status.next_rotation_due.date().isoformat() if status.next_rotation_due else "-"
        print(
            f"{status.key_identifier:<40} {status.key_type:<18} "
            f"{status.urgency.value:<9} rotated {status.days_since_rotation}d ago, due {due}"
        )
    return 1 if overdue else 0


if __name__ == "__main__":
    raise SystemExit(anyio.run(main))
