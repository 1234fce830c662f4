"""RS256 signing key material."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm

logger = logging.getLogger(__name__)

SIGNING_ALGORITHM = "RS256"
RSA_KEY_SIZE = 2048


@dataclass(frozen=True, slots=True)
class SigningKeys:
    """Loaded RSA key pair.

    Attributes
    ----------
    private_pem : bytes
        PKCS#8 private key used to sign credentials.
    public_pem : bytes
        SubjectPublicKeyInfo key distributed to verifiers.
    key_id : str
        ``kid`` advertised for this pair.
    """

    private_pem: bytes
    public_pem: bytes
    key_id: str

    def public_jwk(self) -> dict[str, Any]:
        """Return the public key as a JWK with ``kid``, ``use`` and ``alg``."""
        public_key = serialization.load_pem_public_key(self.public_pem)
        jwk = json.loads(RSAAlgorithm.to_jwk(public_key))
        jwk.update({"kid": self.key_id, "use": "sig", "alg": SIGNING_ALGORITHM})
        return jwk

    def jwks(self) -> dict[str, list[dict[str, Any]]]:
        """Return a JWKS document holding the verification key."""
        return {"keys": [self.public_jwk()]}


def load_or_create_signing_keys(
    private_key_path: Path, public_key_path: Path, key_id: str
) -> SigningKeys:
    """Load the signing pair, generating it on first use.

    Parameters
    ----------
    private_key_path : Path
        PEM file for the private key.
    public_key_path : Path
        PEM file for the public key.
    key_id : str
        ``kid`` for the pair.

    Returns
    -------
    SigningKeys
        Loaded key material.
    """
    if private_key_path.exists():
        private_pem = private_key_path.read_bytes()
        if public_key_path.exists():
            public_pem = public_key_path.read_bytes()
        else:
            public_pem = _public_pem_for(private_pem)
            public_key_path.write_bytes(public_pem)
        return SigningKeys(private_pem=private_pem, public_pem=public_pem, key_id=key_id)

    logger.warning("jwt_signing_key_generated path=%s", private_key_path)
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=RSA_KEY_SIZE)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_pem = _public_pem_for(private_pem)
    private_key_path.write_bytes(private_pem)
    private_key_path.chmod(0o600)
    public_key_path.write_bytes(public_pem)
    return SigningKeys(private_pem=private_pem, public_pem=public_pem, key_id=key_id)


def _public_pem_for(private_pem: bytes) -> bytes:
    private_key = serialization.load_pem_private_key(private_pem, password=None)
    return private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
