"""Authentication dependencies."""

from __future__ import annotations

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session
from app.errors import APIError, ErrorCode
from app.services.gate import AuthContext, AuthorizationGate, GateResult
from app.services.tokens import TokenService, get_token_service

bearer_scheme = HTTPBearer(auto_error=False)


async def require_authorized_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_session),
    token_service: TokenService = Depends(get_token_service),
) -> AuthContext:
    """Admit a whitelisted caller holding a live credential.

    Parameters
    ----------
    credentials : HTTPAuthorizationCredentials | None
        Parsed bearer token.
    session : AsyncSession
        Active database session.
    token_service : TokenService
        Credential verifier.

    Returns
    -------
    AuthContext
        Admitted caller.
    """
    token = _bearer_token(credentials)
    decision = await AuthorizationGate(token_service).authorize(session, token)
    return _admitted(decision)


async def require_authenticated_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_session),
    token_service: TokenService = Depends(get_token_service),
) -> AuthContext:
    """Admit a caller holding a live credential, whitelisted or not.

    Parameters
    ----------
    credentials : HTTPAuthorizationCredentials | None
        Parsed bearer token.
    session : AsyncSession
        Active database session.
    token_service : TokenService
        Credential verifier.

    Returns
    -------
    AuthContext
        Authenticated caller.
    """
    token = _bearer_token(credentials)
    decision = await AuthorizationGate(token_service).authorize_without_whitelist(
        session, token
    )
    return _admitted(decision)


def _bearer_token(credentials: HTTPAuthorizationCredentials | None) -> str:
    if credentials is None or not credentials.credentials:
        raise APIError(ErrorCode.UNAUTHORIZED)
    return credentials.credentials


def _admitted(decision: GateResult) -> AuthContext:
    if decision.context is None:
        raise APIError(decision.error or ErrorCode.UNAUTHORIZED)
    return decision.context
