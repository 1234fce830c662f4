"""Gateway credential routes."""

import asyncio
import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session, run_bounded
from app.errors import BODY_TOKEN_STATUS_OVERRIDES, APIError, ErrorCode
from app.models.mixins import as_utc
from app.routers.dependencies import commit_session, parse_uuid
from app.schemas.tokens import (
    RevocationDetails,
    RevocationStatusResponse,
    RevokeRequest,
    RevokeResponse,
    SessionResponse,
    SessionStatusResponse,
    TokenRequest,
    TokenResponse,
)
from app.services.auth import require_authenticated_identity, require_authorized_identity
from app.services.gate import AuthContext
from app.services.identities import get_identity
from app.services.revocation import get_revocation_status, revoke_token
from app.services.tokens import IssueResult, TokenService, get_token_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["tokens"])
well_known_router = APIRouter(tags=["tokens"])


@router.get("/token", response_model=TokenResponse)
async def issue_token(
    user_id: str | None = Query(default=None, alias="userId"),
    session: AsyncSession = Depends(get_session),
    token_service: TokenService = Depends(get_token_service),
) -> TokenResponse:
    """Issue a credential for an existing identity."""
    if not user_id:
        raise APIError(ErrorCode.MISSING_USER_ID)
    identity_id = parse_uuid(user_id)
    if identity_id is None:
        raise APIError(ErrorCode.USER_NOT_FOUND)
    result = await token_service.issue_for_identity_id(session, identity_id)
    return _token_response(result)


@router.post("/token", response_model=TokenResponse)
async def refresh_token(
    payload: TokenRequest | None = None,
    session: AsyncSession = Depends(get_session),
    token_service: TokenService = Depends(get_token_service),
) -> TokenResponse:
    """Exchange a live credential for a new one."""
    if payload is None or not payload.token:
        raise APIError(ErrorCode.MISSING_TOKEN)
    result = await token_service.refresh(session, payload.token)
    return _token_response(result)


@router.post("/token/revoke", response_model=RevokeResponse)
async def revoke(
    payload: RevokeRequest | None = None,
    session: AsyncSession = Depends(get_session),
    token_service: TokenService = Depends(get_token_service),
) -> RevokeResponse:
    """Revoke a credential."""
    if payload is None or not payload.token:
        raise APIError(ErrorCode.MISSING_TOKEN)
    result = await revoke_token(
        session,
        token_service,
        payload.token,
        revoked_by=payload.revoked_by,
        reason=payload.reason,
    )
    if result.error is not None or result.jti is None:
        code = result.error or ErrorCode.INVALID_TOKEN
        raise APIError(code, status_code=BODY_TOKEN_STATUS_OVERRIDES.get(code))
    await commit_session(session)
    return RevokeResponse(
        success=True,
        jti=result.jti,
        already_revoked=result.already_revoked,
    )


@router.get("/token/revocation-status", response_model=RevocationStatusResponse)
async def revocation_status(
    jti: str | None = Query(default=None),
    session: AsyncSession = Depends(get_session),
) -> RevocationStatusResponse:
    """Report whether a credential identifier is revoked."""
    if not jti:
        raise APIError(ErrorCode.MISSING_JTI)
    try:
        record = await get_revocation_status(session, jti)
    except (asyncio.TimeoutError, SQLAlchemyError) as exc:
        logger.error("revocation_status_unavailable jti=%s error_type=%s", jti, type(exc).__name__)
        raise APIError(ErrorCode.DATASTORE_UNAVAILABLE) from exc
    if record is None:
        return RevocationStatusResponse(revoked=False, jti=jti)
    return RevocationStatusResponse(
        revoked=True,
        jti=jti,
        details=RevocationDetails(
            revoked_at=as_utc(record.revoked_at),
            revoked_by=record.revoked_by,
            reason=record.reason,
            token_expires_at=as_utc(record.token_expires_at),
        ),
    )


@router.get("/jwks", response_class=PlainTextResponse)
async def public_key_pem(
    token_service: TokenService = Depends(get_token_service),
) -> PlainTextResponse:
    """Serve the verification key as PEM."""
    return PlainTextResponse(token_service.keys.public_pem.decode("ascii"))


@well_known_router.get("/.well-known/jwks.json")
async def jwks(
    token_service: TokenService = Depends(get_token_service),
) -> dict:
    """Serve the verification key as a JWKS document."""
    return token_service.keys.jwks()


@router.get("/session", response_model=SessionResponse)
async def current_session(
    context: AuthContext = Depends(require_authorized_identity),
) -> SessionResponse:
    """Describe the admitted caller."""
    return SessionResponse(
        user_id=context.subject_id,
        github_id=context.github_id,
        jti=context.token_id,
    )


@router.get("/session/status", response_model=SessionStatusResponse)
async def session_status(
    context: AuthContext = Depends(require_authenticated_identity),
    session: AsyncSession = Depends(get_session),
) -> SessionStatusResponse:
    """Describe the caller's access state, even after whitelist removal."""
    identity = await run_bounded(get_identity(session, context.subject_id))
    if identity is None:
        raise APIError(ErrorCode.USER_NOT_FOUND)
    return SessionStatusResponse(
        user_id=context.subject_id,
        github_id=context.github_id,
        jti=context.token_id,
        is_whitelisted=identity.is_whitelisted,
    )


def _token_response(result: IssueResult) -> TokenResponse:
    if result.issued is None:
        code = result.error or ErrorCode.INTERNAL_ERROR
        raise APIError(code, status_code=BODY_TOKEN_STATUS_OVERRIDES.get(code))
    return TokenResponse(
        token=result.issued.token,
        expires_in=result.issued.expires_in,
        expires_at=result.issued.expires_at,
    )

