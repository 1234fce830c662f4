"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

import app.models  # noqa: F401
from app.config import get_settings
from app.database import Base, SessionLocal, engine
from app.errors import register_error_handlers
from app.routers.broker import router as broker_router
from app.routers.health import router as health_router
from app.routers.tokens import router as tokens_router
from app.routers.tokens import well_known_router
from app.services.key_rotation import (
    check_and_log_overdue_rotations,
    initialize_key_rotation_tracking,
)
from app.services.vault import get_encryptor, get_signing_keys

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Install a root handler at the configured level.

    Parameters
    ----------
    level : str
        Level name such as ``INFO``.

    Returns
    -------
    None
        Configures the root logger.
    """
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    """Load key material, create the schema and check key rotation.

    Yields
    ------
    None
        Runs the application lifespan.
    """
    settings = get_settings()
    configure_logging(settings.log_level)
    get_signing_keys()
    get_encryptor()
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
    try:
        async with SessionLocal() as session:
            await initialize_key_rotation_tracking(session)
            await check_and_log_overdue_rotations(session)
            await session.commit()
    except SQLAlchemyError as exc:
        logger.error("key_rotation_check_failed error_type=%s", type(exc).__name__)
    logger.info("application_started app_name=%s", settings.app_name)
    yield


app = FastAPI(title=get_settings().app_name, lifespan=lifespan)
register_error_handlers(app)
app.include_router(tokens_router)
app.include_router(well_known_router)
app.include_router(broker_router)
app.include_router(health_router)
