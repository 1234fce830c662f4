"""Runtime configuration."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    Attributes
    ----------
    app_name : str
        Human-readable application name.
    log_level : str
        Root log level applied at startup.
    host : str
        Interface the standalone server binds to.
    port : int
        Port the standalone server listens on.
    database_url : str
        SQLAlchemy database URL.
    db_timeout_seconds : float
        Upper bound for a single authorization-path datastore call.
    jwt_private_key_path : Path
        PEM file holding the RS256 signing key.
    jwt_public_key_path : Path
        PEM file holding the distributable verification key.
    jwt_key_id : str
        ``kid`` advertised in token headers and the JWKS document.
    jwt_issuer : str
        ``iss`` claim stamped on and required from credentials.
    jwt_audience : str
        ``aud`` claim stamped on and required from credentials.
    jwt_expires_in : str
        Credential validity window such as ``30d`` or ``12h``.
    jwt_clock_tolerance_seconds : int
        Allowed clock skew when checking expiry.
    token_encryption_key : str
        Master secret for third-party token encryption.
    token_encryption_kdf_iterations : int
        PBKDF2 iteration count used to derive cipher keys.
    github_client_id : str
        OAuth client identifier used for token refresh.
    github_client_secret : str
        OAuth client secret used for token refresh.
    github_token_url : str
        Provider endpoint for refresh-token grants.
    github_refresh_threshold_seconds : int
        Refresh stored tokens expiring within this window.
    github_refresh_max_attempts : int
        Total refresh attempts before giving up.
    github_refresh_backoff_seconds : float
        Linear backoff step between refresh attempts.
    upstream_timeout_seconds : float
        Timeout for third-party provider calls.
    revoked_token_retention_days : int
        Days a revoked record is kept past its credential's expiry.
    jwt_key_rotation_interval_days : int
        Rotation policy for the signing key (0 disables tracking).
    token_encryption_key_rotation_interval_days : int
        Rotation policy for the encryption master key.
    service_api_key_rotation_interval_days : int
        Rotation policy for registered service API keys.
    health_cache_ttl_seconds : float
        Cache lifetime for the provider configuration health check.
    """

    model_config = SettingsConfigDict(env_prefix="GATEWAY_", extra="ignore")

    app_name: str = "Credential Gateway"
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8000
    database_url: str = "sqlite+aiosqlite:///./gateway.db"
    db_timeout_seconds: float = 5.0

    jwt_private_key_path: Path = Field(default=Path(".gateway_jwt_private.pem"))
    jwt_public_key_path: Path = Field(default=Path(".gateway_jwt_public.pem"))
    jwt_key_id: str = "default"
    jwt_issuer: str = "credential-gateway"
    jwt_audience: str = "credential-gateway-clients"
    jwt_expires_in: str = "30d"
    jwt_clock_tolerance_seconds: int = 60

    token_encryption_key: str = ""
    token_encryption_kdf_iterations: int = 100_000

    github_client_id: str = ""
    github_client_secret: str = ""
    github_token_url: str = "https://github.com/login/oauth/access_token"
    github_refresh_threshold_seconds: int = 3600
    github_refresh_max_attempts: int = 3
    github_refresh_backoff_seconds: float = 0.5
    upstream_timeout_seconds: float = 10.0

    revoked_token_retention_days: int = 7
    jwt_key_rotation_interval_days: int = 180
    token_encryption_key_rotation_interval_days: int = 365
    service_api_key_rotation_interval_days: int = 90

    health_cache_ttl_seconds: float = 60.0


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings.

    Returns
    -------
    Settings
        Cached settings instance.
    """
    return Settings()
