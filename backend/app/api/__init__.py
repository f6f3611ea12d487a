from typing import Awaitable, Callable, Optional

from fastapi import Depends, Header, HTTPException
from starlette.requests import Request

from app.core.errors import AuthenticationError, PermissionDeniedError
from app.models.domain import AuthSession, UserRole
from app.services.admin_service import AdminService
from app.services.booking_service import BookingService
from app.storage.repository import RecordStore


def get_repository(request: Request) -> RecordStore:
    repository = getattr(request.app.state, "repository", None)
    if repository is None:
        raise HTTPException(status_code=500, detail="Repository not initialized")
    return repository


def get_booking_service(
    request: Request, repository: RecordStore = Depends(get_repository)
) -> BookingService:
    state = request.app.state
    return BookingService(
        repository=repository,
        payment_gateway=state.payment_gateway,
        notifier=state.notifier,
        route_client=state.route_client,
        settings=state.settings,
    )


def get_admin_service(
    request: Request, repository: RecordStore = Depends(get_repository)
) -> AdminService:
    return AdminService(repository=repository, retry=request.app.state.retry_policy)


async def resolve_session(user_id: Optional[str], repository: RecordStore) -> Optional[AuthSession]:
    """Sessions are issued upstream; the gateway forwards the user id in X-User-Id."""
    if not user_id:
        return None
    user = await repository.get_user(user_id)
    if user is None:
        raise AuthenticationError("Unknown session user")
    return AuthSession(user_id=user.id, email=user.email, role=user.role)


async def get_session(
    x_user_id: Optional[str] = Header(default=None),
    repository: RecordStore = Depends(get_repository),
) -> Optional[AuthSession]:
    return await resolve_session(x_user_id, repository)


def get_session_loader(
    x_user_id: Optional[str] = Header(default=None),
    repository: RecordStore = Depends(get_repository),
) -> Callable[[], Awaitable[Optional[AuthSession]]]:
    """Defers the users-table lookup until the caller asks for the session."""

    async def load() -> Optional[AuthSession]:
        return await resolve_session(x_user_id, repository)

    return load


def require_admin(session: Optional[AuthSession] = Depends(get_session)) -> AuthSession:
    if session is None:
        raise AuthenticationError("Sign in required")
    if not session.is_admin:
        raise PermissionDeniedError("You do not have admin privileges.")
    return session


def require_super_admin(session: AuthSession = Depends(require_admin)) -> AuthSession:
    if session.role != UserRole.super_admin:
        raise PermissionDeniedError("Only super admins can do this.")
    return session
