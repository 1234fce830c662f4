"""Authenticated encryption for third-party tokens at rest."""

from __future__ import annotations

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

SALT_LENGTH = 32
NONCE_LENGTH = 12
TAG_LENGTH = 16
KEY_LENGTH = 32
DEFAULT_ITERATIONS = 100_000
MIN_MASTER_KEY_LENGTH = 32
ENVELOPE_SEPARATOR = ":"


class EncryptionError(Exception):
    """Base error for envelope operations."""


class EncryptionConfigError(EncryptionError):
    """Master key is missing or too weak."""


class EnvelopeFormatError(EncryptionError):
    """Stored value is not a well-formed envelope."""


class DecryptionError(EncryptionError):
    """Authentication tag did not verify under the supplied key."""


class CredentialEncryptor:
    """AES-256-GCM encryptor bound to one master key.

    Every call draws a fresh salt and nonce. The cipher key is derived from
    the master key with PBKDF2-HMAC-SHA256, so the master key itself never
    touches the cipher.

    Parameters
    ----------
    master_key : str
        Master secret; at least 32 characters.
    iterations : int, default=100000
        PBKDF2 iteration count.
    """

    def __init__(self, master_key: str, iterations: int = DEFAULT_ITERATIONS) -> None:
        if not master_key or len(master_key) < MIN_MASTER_KEY_LENGTH:
            raise EncryptionConfigError(
                f"Token encryption key must be at least {MIN_MASTER_KEY_LENGTH} characters"
            )
        self._master_key = master_key.encode("utf-8")
        self.iterations = iterations

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a token for storage.

        Parameters
        ----------
        plaintext : str
            Token to protect.

        Returns
        -------
        str
            ``salt:nonce:tag:ciphertext`` with each part base64-encoded.
        """
        salt = os.urandom(SALT_LENGTH)
        nonce = os.urandom(NONCE_LENGTH)
        sealed = AESGCM(self._derive_key(salt)).encrypt(
            nonce, plaintext.encode("utf-8"), None
        )
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return ENVELOPE_SEPARATOR.join(
            _b64encode(part) for part in (salt, nonce, tag, ciphertext)
        )

    def decrypt(self, envelope: str) -> str:
        """Decrypt a stored envelope.

        Parameters
        ----------
        envelope : str
            Value produced by :meth:`encrypt`.

        Returns
        -------
        str
            Original plaintext.

        Raises
        ------
        EnvelopeFormatError
            When the envelope cannot be parsed.
        DecryptionError
            When the key is wrong or any part was tampered with.
        """
        salt, nonce, tag, ciphertext = _split_envelope(envelope)
        try:
            plaintext = AESGCM(self._derive_key(salt)).decrypt(
                nonce, ciphertext + tag, None
            )
        except InvalidTag as exc:
            raise DecryptionError(
                "Decryption failed: data may be corrupted or key may be incorrect"
            ) from exc
        return plaintext.decode("utf-8")

    def encrypt_optional(self, plaintext: str | None) -> str | None:
        """Encrypt a value, passing ``None`` and empty strings through as ``None``."""
        if not plaintext:
            return None
        return self.encrypt(plaintext)

    def decrypt_optional(self, envelope: str | None) -> str | None:
        """Decrypt a value, passing ``None`` through."""
        if not envelope:
            return None
        return self.decrypt(envelope)

    def can_decrypt(self, envelope: str) -> bool:
        """Return whether this key opens the envelope."""
        try:
            self.decrypt(envelope)
        except EncryptionError:
            return False
        return True

    def _derive_key(self, salt: bytes) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=salt,
            iterations=self.iterations,
        )
        return kdf.derive(self._master_key)


def is_envelope(value: str | None) -> bool:
    """Return whether a stored value has the four-part envelope shape.

    Parameters
    ----------
    value : str | None
        Stored column value.

    Returns
    -------
    bool
        ``True`` for a parseable envelope, ``False`` for plaintext or ``None``.
    """
    if not value:
        return False
    try:
        _split_envelope(value)
    except EnvelopeFormatError:
        return False
    return True


def _split_envelope(envelope: str) -> tuple[bytes, bytes, bytes, bytes]:
    parts = envelope.split(ENVELOPE_SEPARATOR)
    if len(parts) != 4:
        raise EnvelopeFormatError("Invalid encrypted data format")
    try:
        salt, nonce, tag, ciphertext = (
            base64.b64decode(part, validate=True) for part in parts
        )
    except (binascii.Error, ValueError) as exc:
        raise EnvelopeFormatError("Invalid encrypted data encoding") from exc
    if len(salt) != SALT_LENGTH or len(nonce) != NONCE_LENGTH or len(tag) != TAG_LENGTH:
        raise EnvelopeFormatError("Invalid encrypted data format")
    return salt, nonce, tag, ciphertext


def _b64encode(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")
