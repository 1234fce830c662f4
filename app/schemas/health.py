"""Health schemas."""

from app.schemas.common import APIModel


class ComponentStatus(APIModel):
    """One component's health."""

    healthy: bool
    detail: str | None = None


class HealthResponse(APIModel):
    """Aggregated health."""

    status: str
    components: dict[str, ComponentStatus]
