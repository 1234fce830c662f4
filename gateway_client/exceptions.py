"""SDK exception types."""

from __future__ import annotations


class GatewayError(Exception):
    """Base SDK error."""


class GatewayAPIError(GatewayError):
    """API request failed.

    Parameters
    ----------
    message : str
        Error message.
    status_code : int | None, default=None
        HTTP status code if available.
    code : str | None, default=None
        Gateway error code such as ``TOKEN_REVOKED``.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.code = code
        super().__init__(message)


class GatewayAuthError(GatewayAPIError):
    """Credential missing, invalid, expired or revoked."""


class GatewayForbiddenError(GatewayAPIError):
    """Identity is not whitelisted."""


class GatewayValidationError(GatewayAPIError):
    """Request was malformed."""


class GatewayNotFoundError(GatewayAPIError):
    """Identity or stored token was not found."""


class GatewayRateLimitError(GatewayAPIError):
    """Caller hit a rate limit."""


class GatewayUnavailableError(GatewayAPIError):
    """Gateway or an upstream provider is temporarily unavailable."""
