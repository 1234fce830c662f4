"""Service-to-service credential broker routes."""

import asyncio
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session
from app.errors import APIError, ErrorCode
from app.models.service import ServiceRegistration
from app.routers.dependencies import commit_session, parse_uuid
from app.schemas.broker import BrokerUser, GitHubTokenRequest, GitHubTokenResponse
from app.services.audit import UNKNOWN_IDENTITY, log_service_access
from app.services.broker import fetch_third_party_token
from app.services.github import GitHubTokenRefresher, get_github_refresher
from app.services.service_registry import authenticate_service, parse_service_credentials

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["broker"])

RETRIEVE_ACTION = "retrieve_github_token"


async def require_service(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> ServiceRegistration:
    """Authenticate the calling service from its ``Authorization`` header.

    Parameters
    ----------
    request : Request
        Incoming request.
    session : AsyncSession
        Active database session.

    Returns
    -------
    ServiceRegistration
        Authenticated, active registration.
    """
    credentials = parse_service_credentials(request.headers.get("authorization"))
    if credentials is None:
        raise APIError(
            ErrorCode.UNAUTHORIZED,
            "Missing or invalid service credentials. "
            "Use Authorization header with Bearer or Basic auth.",
        )
    try:
        result = await authenticate_service(
            session, credentials.service_identifier, credentials.api_key
        )
    except (asyncio.TimeoutError, SQLAlchemyError) as exc:
        logger.error(
            "service_auth_unavailable service_identifier=%s error_type=%s",
            credentials.service_identifier,
            type(exc).__name__,
        )
        raise APIError(ErrorCode.DATASTORE_UNAVAILABLE) from exc
    if result.service is None:
        raise APIError(ErrorCode.UNAUTHORIZED, "Invalid service credentials")
    await commit_session(session)
    return result.service


@router.post("/github-token", response_model=GitHubTokenResponse)
async def release_github_token(
    request: Request,
    payload: GitHubTokenRequest | None = None,
    service: ServiceRegistration = Depends(require_service),
    session: AsyncSession = Depends(get_session),
    refresher: GitHubTokenRefresher = Depends(get_github_refresher),
) -> GitHubTokenResponse:
    """Release a user's GitHub token to an authenticated service."""
    body = payload or GitHubTokenRequest()
    audit = {
        "service_id": service.id,
        "action": RETRIEVE_ACTION,
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }

    if not body.user_id and body.github_user_id is None:
        await log_service_access(
            session,
            identity_ref=UNKNOWN_IDENTITY,
            success=False,
            error_message="Missing user identifier",
            **audit,
        )
        raise APIError(ErrorCode.MISSING_USER_IDENTIFIER)

    if body.user_id:
        identity_ref = body.user_id
        identity_id = parse_uuid(body.user_id)
        if identity_id is None:
            await log_service_access(
                session,
                identity_ref=identity_ref,
                success=False,
                error_message=ErrorCode.USER_NOT_FOUND.value,
                **audit,
            )
            raise APIError(ErrorCode.USER_NOT_FOUND)
        result = await fetch_third_party_token(
            session, identity_id=identity_id, refresher=refresher
        )
    else:
        identity_ref = f"github:{body.github_user_id}"
        result = await fetch_third_party_token(
            session, github_user_id=body.github_user_id, refresher=refresher
        )

    if result.identity is not None:
        identity_ref = str(result.identity.id)
    await commit_session(session)

    if result.error is not None or result.token is None or result.identity is None:
        code = result.error or ErrorCode.INTERNAL_ERROR
        await log_service_access(
            session,
            identity_ref=identity_ref,
            success=False,
            error_message=code.value,
            **audit,
        )
        raise APIError(code)

    identity = result.identity
    response = GitHubTokenResponse(
        token=result.token,
        expires_at=result.expires_at,
        user=BrokerUser(
            id=identity.id,
            github_user_id=identity.github_user_id,
            is_whitelisted=identity.is_whitelisted,
        ),
    )
    await log_service_access(session, identity_ref=identity_ref, success=True, **audit)
    return response
