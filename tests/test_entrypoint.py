"""Standalone server entrypoint tests."""

import main as entrypoint
from app.config import get_settings


class TestMain:
    """Server bootstrap."""

    def test_serves_configured_address(self, monkeypatch) -> None:
        """Start uvicorn on the configured host and port."""
        calls = []
        monkeypatch.setenv("GATEWAY_HOST", "0.0.0.0")
        monkeypatch.setenv("GATEWAY_PORT", "9123")
        monkeypatch.setenv("GATEWAY_LOG_LEVEL", "WARNING")
        get_settings.cache_clear()
        monkeypatch.setattr(
            entrypoint.uvicorn, "run", lambda *args, **kwargs: calls.append((args, kwargs))
        )

        entrypoint.main()

        assert calls == [
            (("app.main:app",), {"host": "0.0.0.0", "port": 9123, "log_level": "warning"})
        ]
