"""Component health checks."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings
from app.crypto.envelope import EncryptionError
from app.database import run_bounded
from app.services.vault import get_encryptor, get_signing_keys

logger = logging.getLogger(__name__)

V = TypeVar("V")

CRITICAL_COMPONENTS = ("database", "encryption", "signing_keys")


class TTLCache(Generic[V]):
    """Small keyed cache whose entries expire after a fixed lifetime.

    Parameters
    ----------
    ttl_seconds : float
        Entry lifetime.
    clock : Callable[[], float], default=time.monotonic
        Time source in seconds.
    """

    def __init__(
        self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, V]] = {}

    def get(self, key: str) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: V) -> None:
        self._entries[key] = (self._clock(), value)

    def invalidate(self, key: str | None = None) -> None:
        """Drop one entry, or all of them when ``key`` is ``None``."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)


@dataclass(frozen=True, slots=True)
class ComponentHealth:
    """Health of one component."""

    healthy: bool
    detail: str | None = None


@dataclass(frozen=True, slots=True)
class HealthReport:
    """Aggregated health."""

    status: str
    components: dict[str, ComponentHealth]

    @property
    def healthy(self) -> bool:
        return self.status != "unhealthy"


class HealthChecker:
    """Run component checks, caching the GitHub configuration result.

    Parameters
    ----------
    settings : Settings
        Application settings.
    clock : Callable[[], float], default=time.monotonic
        Time source for the cache.
    """

    def __init__(
        self, settings: Settings, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.settings = settings
        self.cache: TTLCache[ComponentHealth] = TTLCache(
            settings.health_cache_ttl_seconds, clock
        )

    async def check(self, session: AsyncSession) -> HealthReport:
        """Check every component.

        Returns
        -------
        HealthReport
            ``unhealthy`` when a critical component fails, ``degraded`` when
            only GitHub OAuth is misconfigured, ``ok`` otherwise.
        """
        components = {
            "database": await self.check_database(session),
            "encryption": self.check_encryption(),
            "signing_keys": self.check_signing_keys(),
            "github_oauth": self.check_github_config(),
        }
        if not all(components[name].healthy for name in CRITICAL_COMPONENTS):
            status = "unhealthy"
        elif not components["github_oauth"].healthy:
            status = "degraded"
        else:
            status = "ok"
        if status != "ok":
            logger.warning(
                "health_check_failed status=%s components=%s",
                status,
                ",".join(name for name, item in components.items() if not item.healthy),
            )
        return HealthReport(status=status, components=components)

    async def check_database(self, session: AsyncSession) -> ComponentHealth:
        try:
            await run_bounded(session.execute(text("SELECT 1")))
        except (asyncio.TimeoutError, SQLAlchemyError) as exc:
            return ComponentHealth(healthy=False, detail=type(exc).__name__)
        return ComponentHealth(healthy=True)

    def check_encryption(self) -> ComponentHealth:
        try:
            encryptor = get_encryptor()
            if encryptor.decrypt(encryptor.encrypt("health-check")) != "health-check":
                return ComponentHealth(healthy=False, detail="round trip mismatch")
        except EncryptionError as exc:
            return ComponentHealth(healthy=False, detail=str(exc))
        return ComponentHealth(healthy=True)

    def check_signing_keys(self) -> ComponentHealth:
        try:
            get_signing_keys().public_jwk()
        except (OSError, ValueError) as exc:
            return ComponentHealth(healthy=False, detail=type(exc).__name__)
        return ComponentHealth(healthy=True)

    def check_github_config(self) -> ComponentHealth:
        cached = self.cache.get("github_oauth")
        if cached is not None:
            return cached
        if self.settings.github_client_id and self.settings.github_client_secret:
            result = ComponentHealth(healthy=True)
        else:
            result = ComponentHealth(healthy=False, detail="client credentials not configured")
        self.cache.set("github_oauth", result)
        return result
