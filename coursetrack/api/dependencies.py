from __future__ import annotations

import datetime
import logging
from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from coursetrack.db.engine import async_session_factory
from coursetrack.models.principal import Principal
from coursetrack.models.progress import AssessmentAttempt, Enrollment
from coursetrack.repos.repositories import Repositories, memory_repos, pg_repositories
from coursetrack.services import token_service
from coursetrack.services.cache import flush_stale_progress
from coursetrack.services.errors import (
    AttemptNotFoundError,
    CourseTrackError,
    EnrollmentNotFoundError,
)

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def now_epoch() -> int:
    """Request clock; services never read the time themselves."""
    return int(datetime.datetime.now(datetime.UTC).timestamp())


def require_user(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
) -> Principal:
    """Validate the bearer token and return the caller's Principal."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        claims = token_service.decode_access_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None

    principal = Principal(
        user_id=claims["sub"],
        roles=frozenset(claims.get("roles", [])),
    )
    logger.debug("Token validated for user=%s roles=%s", principal.user_id, principal.roles)
    return principal


def require_role(role: str):
    """Dependency factory: demand a specific role.

    Usage: Depends(require_role("admin"))
    """

    def _guard(
        principal: Annotated[Principal, Depends(require_user)],
    ) -> Principal:
        if not principal.has_role(role):
            logger.warning(
                "Access denied: user=%s missing role=%s", principal.user_id, role
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return _guard


def ensure_owner(principal: Principal, owner_user_id: str, what: str) -> None:
    """403 unless the caller owns the resource (platform admins always pass)."""
    if not principal.can_act_for(owner_user_id):
        logger.warning(
            "Access denied: user=%s does not own %s", principal.user_id, what
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Not the owner of this {what}",
        )


async def get_repositories() -> AsyncGenerator[Repositories, None]:
    """Yield the repositories for one request.

    No DATABASE_URL: the process-wide in-memory bundle.
    Otherwise a PostgreSQL bundle on a request-scoped session.  Domain
    errors still commit: the only writes made before one is raised are
    deliberate (an overdue attempt being marked expired).  Anything else
    rolls back.  Progress snapshots invalidated during the request are
    dropped from the cache again once the session is done.
    """
    if async_session_factory is None:
        try:
            yield memory_repos
        finally:
            await flush_stale_progress(memory_repos)
        return

    async with async_session_factory() as session:
        repos = pg_repositories(session)
        try:
            yield repos
            await session.commit()
        except CourseTrackError:
            await session.commit()
            raise
        except Exception:
            await session.rollback()
            raise
        finally:
            # Snapshots cached by readers before the commit are stale now
            await flush_stale_progress(repos)


Repos = Annotated[Repositories, Depends(get_repositories)]
CurrentUser = Annotated[Principal, Depends(require_user)]


async def load_owned_enrollment(
    repos: Repositories, enrollment_id: UUID, principal: Principal
) -> Enrollment:
    enrollment = await repos.enrollments.get(enrollment_id)
    if enrollment is None:
        raise EnrollmentNotFoundError(f"enrollment {enrollment_id} not found")
    ensure_owner(principal, enrollment.user_id, "enrollment")
    return enrollment


async def load_owned_attempt(
    repos: Repositories, attempt_id: UUID, principal: Principal
) -> AssessmentAttempt:
    attempt = await repos.attempts.get(attempt_id)
    if attempt is None:
        raise AttemptNotFoundError(f"attempt {attempt_id} not found")
    ensure_owner(principal, attempt.user_id, "attempt")
    return attempt
