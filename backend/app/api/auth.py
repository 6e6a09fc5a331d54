############################################################
#
# labchain-directory - LAB Chain Network Directory and Faucet Portal
#
# auth.py: Service dependencies and session-based admin authentication
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""API dependencies and admin authentication.

Services are built once in the application lifespan and stored on
``app.state``; the helpers below hand them to route functions.
"""

from typing import Optional

from fastapi import Depends, HTTPException, Request, Response, status

from backend.app.db.models import User
from backend.app.db.session import Database
from backend.app.logging_config import get_logger
from backend.app.security.sessions import SessionManager
from backend.app.services.accounts import AccountService
from backend.app.services.approval import ApprovalEngine
from backend.app.services.ledger import RequestLedger
from backend.app.services.notifier import Notifier
from backend.app.services.results import FailureKind
from backend.app.settings import Settings

logger = get_logger(__name__)

# Service failure kinds to HTTP status codes
FAILURE_STATUS = {
    FailureKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    FailureKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    FailureKind.CONFLICT: status.HTTP_409_CONFLICT,
    FailureKind.STORAGE: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def raise_for_failure(error: Optional[str], kind: Optional[FailureKind]) -> None:
    """Translate a failed service result into an HTTPException."""
    raise HTTPException(
        status_code=FAILURE_STATUS.get(kind, status.HTTP_400_BAD_REQUEST),
        detail=error or "Request failed",
    )


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_db_handle(request: Request) -> Database:
    return request.app.state.database


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


def get_account_service(request: Request) -> AccountService:
    return request.app.state.accounts


def get_ledger(request: Request) -> RequestLedger:
    return request.app.state.ledger


def get_approval_engine(request: Request) -> ApprovalEngine:
    return request.app.state.approval


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_session_token(request: Request) -> Optional[str]:
    """Verified session token from the request's Cookie header, if any."""
    manager = get_session_manager(request)
    return manager.extract_session_token(request.headers.get("cookie"))


async def get_current_user(request: Request) -> Optional[User]:
    """The logged-in admin, or None for anonymous requests."""
    manager = get_session_manager(request)
    return await manager.validate_session(get_session_token(request))


def require_admin():
    """Dependency that requires a valid admin session."""
    async def check_admin(
        request: Request,
        user: Optional[User] = Depends(get_current_user),
    ) -> User:
        if user is None:
            logger.warning("unauthenticated_admin_request", path=request.url.path)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Authentication required",
            )
        return user
    return check_admin


def set_session_cookie(
    response: Response, manager: SessionManager, settings: Settings, token: str
) -> None:
    """Attach the signed session cookie to a response."""
    response.set_cookie(
        key=settings.session_cookie_name,
        value=manager.sign_token(token),
        httponly=settings.session_cookie_httponly,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        max_age=settings.session_max_age_seconds,
        path="/",
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    """Remove the session cookie."""
    response.delete_cookie(key=settings.session_cookie_name, path="/")
