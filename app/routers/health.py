"""Health routes."""

from functools import lru_cache

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.database import get_session
from app.schemas.health import ComponentStatus, HealthResponse
from app.services.health import HealthChecker

router = APIRouter(tags=["health"])


@lru_cache(maxsize=1)
def get_health_checker() -> HealthChecker:
    """Return the process-wide health checker."""
    return HealthChecker(get_settings())


@router.get("/health", response_model=HealthResponse)
async def health(
    session: AsyncSession = Depends(get_session),
    checker: HealthChecker = Depends(get_health_checker),
) -> JSONResponse:
    """Report component health; 503 when a critical component fails."""
    report = await checker.check(session)
    body = HealthResponse(
        status=report.status,
        components={
            name: ComponentStatus(healthy=item.healthy, detail=item.detail)
            for name, item in report.components.items()
        },
    )
    return JSONResponse(
        status_code=200 if report.healthy else 503,
        content=body.model_dump(),
    )
