"""Shared dependencies for API endpoints.

Session authentication, client metadata, email, and access logging.
Every dependency can be swapped with app.dependency_overrides in tests.
"""

from typing import Annotated

from fastapi import BackgroundTasks, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from guestgate.core.auth import (
    ClientContext,
    client_context_from_request,
    extract_session_token,
)
from guestgate.core.database import get_db, get_session_factory
from guestgate.core.email import DeferredMailer, Mailer, resend_mailer
from guestgate.core.errors import UnauthorizedError
from guestgate.core.rate_limiting import RateLimiter, get_rate_limiter
from guestgate.models.user import User
from guestgate.services import session_service
from guestgate.services.access_log import AccessLogRecorder
from guestgate.services.session_service import SessionValidation

DbSession = Annotated[AsyncSession, Depends(get_db)]


async def get_session_validation(
    request: Request,
    db: DbSession,
) -> SessionValidation:
    """Validate the session token carried by the request.

    Token sources in order: Authorization Bearer header, session cookie,
    ``token`` query parameter.
    """
    return await session_service.validate_session(db, extract_session_token(request))


async def require_session(
    validation: Annotated[SessionValidation, Depends(get_session_validation)],
) -> SessionValidation:
    """Require a valid session.

    Raises:
        UnauthorizedError: Generic 401. Never says why (missing, unknown,
            expired); that would help token probing.
    """
    if not validation.valid:
        raise UnauthorizedError()
    return validation


async def get_current_user(
    validation: Annotated[SessionValidation, Depends(require_session)],
) -> User:
    """Get the User behind the current session."""
    if validation.user is None:
        raise UnauthorizedError()
    return validation.user


def get_client_context(request: Request) -> ClientContext:
    """Caller IP and user agent."""
    return client_context_from_request(request)


def get_mailer(background_tasks: BackgroundTasks) -> Mailer:
    """Mailer that sends after the response is returned."""
    return DeferredMailer(resend_mailer, background_tasks)


def get_access_log_recorder(
    background_tasks: BackgroundTasks,
    session_factory: Annotated[
        async_sessionmaker[AsyncSession], Depends(get_session_factory)
    ],
) -> AccessLogRecorder:
    """Access log writer with a post-response retry on failure."""
    return AccessLogRecorder(session_factory, background_tasks)


# Reusable type aliases for dependency injection
CurrentSession = Annotated[SessionValidation, Depends(require_session)]
OptionalSession = Annotated[SessionValidation, Depends(get_session_validation)]
CurrentUser = Annotated[User, Depends(get_current_user)]
Client = Annotated[ClientContext, Depends(get_client_context)]
MailerDep = Annotated[Mailer, Depends(get_mailer)]
Recorder = Annotated[AccessLogRecorder, Depends(get_access_log_recorder)]
Limiter = Annotated[RateLimiter, Depends(get_rate_limiter)]
