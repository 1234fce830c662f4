"""ORM models."""

from app.models.audit import ServiceAuditLog
from app.models.identity import Identity
from app.models.key_rotation import KeyRotation
from app.models.revoked_token import RevokedToken
from app.models.service import ServiceRegistration

__all__ = [
    "Identity",
    "KeyRotation",
    "RevokedToken",
    "ServiceAuditLog",
    "ServiceRegistration",
]
