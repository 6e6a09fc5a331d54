############################################################
#
# labchain-directory - LAB Chain Network Directory and Faucet Portal
#
# auth_api.py: First-time setup, login, logout and account endpoints
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Admin authentication endpoints."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import BaseModel, Field

from backend.app.api.auth import (
    clear_session_cookie,
    get_account_service,
    get_app_settings,
    get_session_manager,
    get_session_token,
    raise_for_failure,
    require_admin,
    set_session_cookie,
)
from backend.app.db.models import User
from backend.app.logging_config import get_logger
from backend.app.security.sessions import SessionManager
from backend.app.services.accounts import AccountService
from backend.app.services.results import FailureKind
from backend.app.settings import Settings

logger = get_logger(__name__)
router = APIRouter()


# Request/Response models
class Credentials(BaseModel):
    """Username and password."""
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1)


class PasswordChangeRequest(BaseModel):
    current_password: str
    new_password: str


class UsernameChangeRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)


class UserResponse(BaseModel):
    """Admin account information."""
    id: int
    username: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SetupStatus(BaseModel):
    setup_required: bool


async def _start_session(
    response: Response, user: User, manager: SessionManager, settings: Settings
) -> None:
    token = await manager.create_session(user.id)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not start session",
        )
    set_session_cookie(response, manager, settings, token)


@router.get("/setup", response_model=SetupStatus)
async def setup_status(accounts: AccountService = Depends(get_account_service)):
    """Whether the first admin account still has to be created."""
    return SetupStatus(setup_required=await accounts.is_first_time_setup())


@router.post("/setup", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def setup(
    body: Credentials,
    response: Response,
    accounts: AccountService = Depends(get_account_service),
    manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(get_app_settings),
):
    """Create the first admin account and log it in.

    Only available while no account exists.
    """
    result = await accounts.bootstrap_admin(body.username, body.password)
    if not result.success:
        raise_for_failure(result.error, result.kind)

    await _start_session(response, result.user, manager, settings)
    logger.info("initial_admin_created", user_id=result.user.id)
    return result.user


@router.post("/login", response_model=UserResponse)
async def login(
    body: Credentials,
    response: Response,
    accounts: AccountService = Depends(get_account_service),
    manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(get_app_settings),
):
    """Log in with username and password."""
    user = await accounts.authenticate(body.username, body.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        )
    await _start_session(response, user, manager, settings)
    logger.info("login_succeeded", user_id=user.id)
    return user


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(get_app_settings),
):
    """End the current session. Safe to call when not logged in."""
    await manager.delete_session(get_session_token(request))
    clear_session_cookie(response, settings)
    return {"success": True}


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(require_admin())):
    return user


@router.post("/password", response_model=UserResponse)
async def change_password(
    body: PasswordChangeRequest,
    request: Request,
    user: User = Depends(require_admin()),
    accounts: AccountService = Depends(get_account_service),
    manager: SessionManager = Depends(get_session_manager),
):
    """Change the current admin's password and end their other sessions."""
    result = await accounts.update_password(user.id, body.current_password, body.new_password)
    if not result.success:
        raise_for_failure(result.error, result.kind)
    revoked = await manager.delete_user_sessions(user.id, except_token=get_session_token(request))
    if revoked is None:
        raise_for_failure(
            "Password changed but other sessions could not be ended", FailureKind.STORAGE
        )
    return result.user


@router.post("/username", response_model=UserResponse)
async def change_username(
    body: UsernameChangeRequest,
    user: User = Depends(require_admin()),
    accounts: AccountService = Depends(get_account_service),
):
    result = await accounts.update_username(user.id, body.username)
    if not result.success:
        raise_for_failure(result.error, result.kind)
    return result.user
