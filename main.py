"""Application entrypoint."""

import uvicorn

from app.config import get_settings


def main() -> None:
    """Serve the gateway with uvicorn.

    Binds to ``GATEWAY_HOST`` and ``GATEWAY_PORT``. Startup fails fast when
    the encryption key or signing keys are unusable.

    Returns
    -------
    None
        Blocks until the server stops.
    """
    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
