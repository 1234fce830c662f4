"""Python SDK for the credential gateway."""

from gateway_client.client import GatewayClient
from gateway_client.exceptions import (
    GatewayAPIError,
    GatewayAuthError,
    GatewayError,
    GatewayForbiddenError,
    GatewayNotFoundError,
    GatewayRateLimitError,
    GatewayUnavailableError,
    GatewayValidationError,
)
from gateway_client.types import (
    BrokeredUser,
    GitHubToken,
    IssuedCredential,
    RevocationResult,
    RevocationStatus,
)

__all__ = [
    "BrokeredUser",
    "GatewayAPIError",
    "GatewayAuthError",
    "GatewayClient",
    "GatewayError",
    "GatewayForbiddenError",
    "GatewayNotFoundError",
    "GatewayRateLimitError",
    "GatewayUnavailableError",
    "GatewayValidationError",
    "GitHubToken",
    "IssuedCredential",
    "RevocationResult",
    "RevocationStatus",
]
