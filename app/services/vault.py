"""Settings-bound key material."""

from __future__ import annotations

from functools import lru_cache

from app.config import get_settings
from app.crypto.envelope import CredentialEncryptor
from app.crypto.signing import SigningKeys, load_or_create_signing_keys


@lru_cache(maxsize=1)
def get_encryptor() -> CredentialEncryptor:
    """Return the cached token encryptor.

    Returns
    -------
    CredentialEncryptor
        Encryptor bound to the configured master key.
    """
    settings = get_settings()
    return CredentialEncryptor(
        settings.token_encryption_key,
        iterations=settings.token_encryption_kdf_iterations,
    )


@lru_cache(maxsize=1)
def get_signing_keys() -> SigningKeys:
    """Return the cached RS256 key pair.

    Returns
    -------
    SigningKeys
        Key material loaded from, or created at, the configured paths.
    """
    settings = get_settings()
    return load_or_create_signing_keys(
        settings.jwt_private_key_path,
        settings.jwt_public_key_path,
        settings.jwt_key_id,
    )


def reset_key_caches() -> None:
    """Drop cached key material so the next call re-reads settings."""
    get_encryptor.cache_clear()
    get_signing_keys.cache_clear()
