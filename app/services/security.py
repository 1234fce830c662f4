"""Service API key hashing."""

from secrets import token_urlsafe

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

SERVICE_KEY_PREFIX = "svc"

password_hasher = PasswordHasher()


def generate_api_key(prefix: str = SERVICE_KEY_PREFIX) -> str:
    """Generate a raw service API key.

    Parameters
    ----------
    prefix : str, default="svc"
        Human-readable key prefix.

    Returns
    -------
    str
        New opaque key, shown to the operator once.
    """
    return f"{prefix}_{token_urlsafe(32)}"


def hash_api_key(api_key: str) -> str:
    """Hash an API key for storage.

    Parameters
    ----------
    api_key : str
        Raw key.

    Returns
    -------
    str
        Salted Argon2 hash.
    """
    return password_hasher.hash(api_key)


def verify_api_key(api_key: str, api_key_hash: str) -> bool:
    """Verify an API key against its stored hash.

    Parameters
    ----------
    api_key : str
        Presented key.
    api_key_hash : str
        Stored Argon2 hash.

    Returns
    -------
    bool
        Whether the key matches.
    """
    try:
        return password_hasher.verify(api_key_hash, api_key)
    except (VerificationError, InvalidHashError):
        return False
