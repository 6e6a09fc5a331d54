############################################################
#
# labchain-directory - LAB Chain Network Directory and Faucet Portal
#
# admin_api.py: Administrative review, directory and settings endpoints
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Admin API endpoints. Every route requires an admin session."""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.auth import (
    get_approval_engine,
    get_db_handle,
    get_ledger,
    get_notifier,
    raise_for_failure,
    require_admin,
)
from backend.app.api.public_api import (
    BeaconNodeResponse,
    BootNodeResponse,
    RpcEndpointResponse,
)
from backend.app.db import crud
from backend.app.db.models import (
    NodeRequestStatus,
    NodeStatus,
    NodeType,
    RpcEndpointStatus,
    RpcEndpointType,
    TokenRequestStatus,
    User,
)
from backend.app.db.session import Database, get_async_db
from backend.app.logging_config import get_logger
from backend.app.services.approval import ApprovalEngine
from backend.app.services.ledger import RequestKind, RequestLedger
from backend.app.services.notifier import (
    EmailNotifier,
    Notifier,
    read_email_settings,
    write_email_settings,
)
from backend.app.services.results import DecisionResult, FailureKind

logger = get_logger(__name__)
router = APIRouter()


# Request/Response models
class NodeRequestResponse(BaseModel):
    """Full node request, including contact details and notes."""
    id: int
    tracking_id: str
    node_type: NodeType
    name: str
    endpoint: str
    location: Optional[str] = None
    contact_email: str
    contact_name: Optional[str] = None
    description: Optional[str] = None
    status: NodeRequestStatus
    admin_notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TokenRequestResponse(BaseModel):
    """Full token request."""
    id: int
    tracking_id: str
    first_name: str
    last_name: str
    email: str
    wallet_address: str
    requested_amount: str
    reason: str
    contact_info: Optional[str] = None
    status: TokenRequestStatus
    transferred_amount: Optional[str] = None
    admin_notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ApproveRequest(BaseModel):
    admin_notes: Optional[str] = None


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class NotesRequest(BaseModel):
    admin_notes: Optional[str] = None


class TransferRequest(BaseModel):
    transferred_amount: str = Field(..., min_length=1, max_length=78)


class NotificationResponse(BaseModel):
    success: bool
    error: Optional[str] = None


class RpcEndpointCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    endpoint: str = Field(..., min_length=1, max_length=500)
    type: RpcEndpointType = RpcEndpointType.COMMUNITY
    location: Optional[str] = None
    status: RpcEndpointStatus = RpcEndpointStatus.ACTIVE
    latency: Optional[str] = None
    requests: Optional[str] = None
    rate_limit: Optional[str] = None
    features: Optional[str] = None


class RpcEndpointUpdate(BaseModel):
    """Only provided fields are changed."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    endpoint: Optional[str] = Field(None, min_length=1, max_length=500)
    type: Optional[RpcEndpointType] = None
    location: Optional[str] = None
    status: Optional[RpcEndpointStatus] = None
    latency: Optional[str] = None
    requests: Optional[str] = None
    rate_limit: Optional[str] = None
    features: Optional[str] = None


class BootNodeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    enode: str = Field(..., min_length=1, max_length=1000)
    location: Optional[str] = None
    status: NodeStatus = NodeStatus.ACTIVE
    uptime: Optional[str] = None
    peers: Optional[int] = Field(None, ge=0)
    last_seen: Optional[str] = None


class BootNodeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    enode: Optional[str] = Field(None, min_length=1, max_length=1000)
    location: Optional[str] = None
    status: Optional[NodeStatus] = None
    uptime: Optional[str] = None
    peers: Optional[int] = Field(None, ge=0)
    last_seen: Optional[str] = None


class BeaconNodeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    endpoint: Optional[str] = Field(None, max_length=500)
    enr: Optional[str] = Field(None, max_length=1000)
    p2p: Optional[str] = None
    location: Optional[str] = None
    status: NodeStatus = NodeStatus.ACTIVE
    version: Optional[str] = None
    sync_status: Optional[str] = None
    slots: Optional[str] = None
    epoch: Optional[str] = None
    last_update: Optional[str] = None


class BeaconNodeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    endpoint: Optional[str] = Field(None, max_length=500)
    enr: Optional[str] = Field(None, max_length=1000)
    p2p: Optional[str] = None
    location: Optional[str] = None
    status: Optional[NodeStatus] = None
    version: Optional[str] = None
    sync_status: Optional[str] = None
    slots: Optional[str] = None
    epoch: Optional[str] = None
    last_update: Optional[str] = None


class EmailSettingsUpdate(BaseModel):
    """SMTP settings. Omitted fields keep their stored value."""
    smtp_host: Optional[str] = None
    smtp_port: Optional[int] = Field(None, ge=1, le=65535)
    smtp_user: Optional[str] = None
    smtp_pass: Optional[str] = None
    smtp_secure: Optional[bool] = None
    smtp_from: Optional[str] = None
    smtp_from_name: Optional[str] = None


def _decision_response(result: DecisionResult, model) -> Dict[str, Any]:
    if not result.success:
        raise_for_failure(result.error, result.kind)
    notification = None
    if result.notification is not None:
        notification = NotificationResponse(
            success=result.notification.success, error=result.notification.error
        )
    return {
        "success": True,
        "request": model.model_validate(result.request),
        "listing_id": result.listing.id if result.listing is not None else None,
        "notification": notification,
    }


# Overview
@router.get("/overview")
async def overview(
    admin: User = Depends(require_admin()),
    ledger: RequestLedger = Depends(get_ledger),
    db: AsyncSession = Depends(get_async_db),
):
    """Request counts by status and directory totals."""
    return {
        "requests": await ledger.count_by_status(),
        "directory": await crud.get_stats(db),
    }


# Node request review
@router.get("/node-requests", response_model=List[NodeRequestResponse])
async def list_node_requests(
    status_filter: Optional[NodeRequestStatus] = Query(None, alias="status"),
    admin: User = Depends(require_admin()),
    ledger: RequestLedger = Depends(get_ledger),
):
    return await ledger.list_node_requests(status_filter)


@router.get("/node-requests/{request_id}", response_model=NodeRequestResponse)
async def get_node_request(
    request_id: int,
    admin: User = Depends(require_admin()),
    ledger: RequestLedger = Depends(get_ledger),
):
    request = await ledger.get_node_request(request_id)
    if request is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Request not found")
    return request


@router.post("/node-requests/{request_id}/approve")
async def approve_node_request(
    request_id: int,
    body: Optional[ApproveRequest] = None,
    admin: User = Depends(require_admin()),
    engine: ApprovalEngine = Depends(get_approval_engine),
):
    """Approve a pending node request and publish it in the directory."""
    result = await engine.approve_node_request(
        request_id, admin_notes=body.admin_notes if body else None
    )
    logger.info("admin_decision", admin_id=admin.id, request_id=request_id, decision="approve")
    return _decision_response(result, NodeRequestResponse)


@router.post("/node-requests/{request_id}/reject")
async def reject_node_request(
    request_id: int,
    body: Optional[RejectRequest] = None,
    admin: User = Depends(require_admin()),
    engine: ApprovalEngine = Depends(get_approval_engine),
):
    result = await engine.reject_node_request(request_id, reason=body.reason if body else None)
    logger.info("admin_decision", admin_id=admin.id, request_id=request_id, decision="reject")
    return _decision_response(result, NodeRequestResponse)


@router.put("/node-requests/{request_id}/notes", response_model=NodeRequestResponse)
async def update_node_request_notes(
    request_id: int,
    body: NotesRequest,
    admin: User = Depends(require_admin()),
    ledger: RequestLedger = Depends(get_ledger),
):
    result = await ledger.update_admin_notes(RequestKind.NODE, request_id, body.admin_notes)
    if not result.success:
        raise_for_failure(result.error, result.kind)
    return result.request


@router.delete("/node-requests/{request_id}")
async def delete_node_request(
    request_id: int,
    admin: User = Depends(require_admin()),
    ledger: RequestLedger = Depends(get_ledger),
):
    result = await ledger.delete_node_request(request_id)
    if not result.success:
        raise_for_failure(result.error, result.kind)
    return {"status": "deleted", "request_id": request_id}


# Token request review
@router.get("/token-requests", response_model=List[TokenRequestResponse])
async def list_token_requests(
    status_filter: Optional[TokenRequestStatus] = Query(None, alias="status"),
    admin: User = Depends(require_admin()),
    ledger: RequestLedger = Depends(get_ledger),
):
    return await ledger.list_token_requests(status_filter)


@router.get("/token-requests/{request_id}", response_model=TokenRequestResponse)
async def get_token_request(
    request_id: int,
    admin: User = Depends(require_admin()),
    ledger: RequestLedger = Depends(get_ledger),
):
    request = await ledger.get_token_request(request_id)
    if request is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Request not found")
    return request


@router.post("/token-requests/{request_id}/approve")
async def approve_token_request(
    request_id: int,
    body: Optional[ApproveRequest] = None,
    admin: User = Depends(require_admin()),
    engine: ApprovalEngine = Depends(get_approval_engine),
):
    result = await engine.approve_token_request(
        request_id, admin_notes=body.admin_notes if body else None
    )
    logger.info("admin_decision", admin_id=admin.id, request_id=request_id, decision="approve_token")
    return _decision_response(result, TokenRequestResponse)


@router.post("/token-requests/{request_id}/reject")
async def reject_token_request(
    request_id: int,
    body: Optional[RejectRequest] = None,
    admin: User = Depends(require_admin()),
    engine: ApprovalEngine = Depends(get_approval_engine),
):
    result = await engine.reject_token_request(request_id, reason=body.reason if body else None)
    logger.info("admin_decision", admin_id=admin.id, request_id=request_id, decision="reject_token")
    return _decision_response(result, TokenRequestResponse)


@router.post("/token-requests/{request_id}/transfer")
async def mark_token_transferred(
    request_id: int,
    body: TransferRequest,
    admin: User = Depends(require_admin()),
    engine: ApprovalEngine = Depends(get_approval_engine),
):
    """Record that the approved tokens have been sent."""
    result = await engine.mark_token_transferred(request_id, body.transferred_amount)
    logger.info("admin_decision", admin_id=admin.id, request_id=request_id, decision="transfer")
    return _decision_response(result, TokenRequestResponse)


@router.put("/token-requests/{request_id}/notes", response_model=TokenRequestResponse)
async def update_token_request_notes(
    request_id: int,
    body: NotesRequest,
    admin: User = Depends(require_admin()),
    ledger: RequestLedger = Depends(get_ledger),
):
    result = await ledger.update_admin_notes(RequestKind.TOKEN, request_id, body.admin_notes)
    if not result.success:
        raise_for_failure(result.error, result.kind)
    return result.request


@router.delete("/token-requests/{request_id}")
async def delete_token_request(
    request_id: int,
    admin: User = Depends(require_admin()),
    ledger: RequestLedger = Depends(get_ledger),
):
    result = await ledger.delete_token_request(request_id)
    if not result.success:
        raise_for_failure(result.error, result.kind)
    return {"status": "deleted", "request_id": request_id}


# Directory writes
@asynccontextmanager
async def _directory_write(db: AsyncSession, event: str, **context: Any) -> AsyncIterator[None]:
    """Roll back and answer 500 when a directory change cannot be stored."""
    try:
        yield
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error(event, error=str(exc), **context)
        raise_for_failure("Could not save directory change", FailureKind.STORAGE)


# RPC endpoint management
@router.post(
    "/rpc-endpoints", response_model=RpcEndpointResponse, status_code=status.HTTP_201_CREATED
)
async def create_rpc_endpoint(
    body: RpcEndpointCreate,
    admin: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_async_db),
):
    async with _directory_write(db, "rpc_endpoint_create_failed", admin_id=admin.id):
        rpc = await crud.create_rpc_endpoint(db, **body.model_dump())
        await db.commit()
    logger.info("rpc_endpoint_created", rpc_endpoint_id=rpc.id, admin_id=admin.id)
    return rpc


@router.patch("/rpc-endpoints/{endpoint_id}", response_model=RpcEndpointResponse)
async def update_rpc_endpoint(
    endpoint_id: int,
    body: RpcEndpointUpdate,
    admin: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_async_db),
):
    async with _directory_write(db, "rpc_endpoint_update_failed", rpc_endpoint_id=endpoint_id):
        rpc = await crud.update_rpc_endpoint(
            db, endpoint_id, **body.model_dump(exclude_unset=True)
        )
        if not rpc:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="RPC endpoint not found"
            )
        await db.commit()
    return rpc


@router.delete("/rpc-endpoints/{endpoint_id}")
async def delete_rpc_endpoint(
    endpoint_id: int,
    admin: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_async_db),
):
    async with _directory_write(db, "rpc_endpoint_delete_failed", rpc_endpoint_id=endpoint_id):
        if not await crud.delete_rpc_endpoint(db, endpoint_id):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="RPC endpoint not found"
            )
        await db.commit()
    logger.info("rpc_endpoint_deleted", rpc_endpoint_id=endpoint_id, admin_id=admin.id)
    return {"status": "deleted", "rpc_endpoint_id": endpoint_id}


# Boot node management
@router.post("/boot-nodes", response_model=BootNodeResponse, status_code=status.HTTP_201_CREATED)
async def create_boot_node(
    body: BootNodeCreate,
    admin: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_async_db),
):
    async with _directory_write(db, "boot_node_create_failed", admin_id=admin.id):
        node = await crud.create_boot_node(db, **body.model_dump())
        await db.commit()
    logger.info("boot_node_created", boot_node_id=node.id, admin_id=admin.id)
    return node


@router.patch("/boot-nodes/{node_id}", response_model=BootNodeResponse)
async def update_boot_node(
    node_id: int,
    body: BootNodeUpdate,
    admin: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_async_db),
):
    async with _directory_write(db, "boot_node_update_failed", boot_node_id=node_id):
        node = await crud.update_boot_node(db, node_id, **body.model_dump(exclude_unset=True))
        if not node:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Boot node not found")
        await db.commit()
    return node


@router.delete("/boot-nodes/{node_id}")
async def delete_boot_node(
    node_id: int,
    admin: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_async_db),
):
    async with _directory_write(db, "boot_node_delete_failed", boot_node_id=node_id):
        if not await crud.delete_boot_node(db, node_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Boot node not found")
        await db.commit()
    logger.info("boot_node_deleted", boot_node_id=node_id, admin_id=admin.id)
    return {"status": "deleted", "boot_node_id": node_id}


# Beacon node management
@router.post(
    "/beacon-nodes", response_model=BeaconNodeResponse, status_code=status.HTTP_201_CREATED
)
async def create_beacon_node(
    body: BeaconNodeCreate,
    admin: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_async_db),
):
    if not body.enr and not body.endpoint:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A beacon node needs an ENR or an endpoint",
        )
    async with _directory_write(db, "beacon_node_create_failed", admin_id=admin.id):
        node = await crud.create_beacon_node(db, **body.model_dump())
        await db.commit()
    logger.info("beacon_node_created", beacon_node_id=node.id, admin_id=admin.id)
    return node


@router.patch("/beacon-nodes/{node_id}", response_model=BeaconNodeResponse)
async def update_beacon_node(
    node_id: int,
    body: BeaconNodeUpdate,
    admin: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_async_db),
):
    async with _directory_write(db, "beacon_node_update_failed", beacon_node_id=node_id):
        node = await crud.update_beacon_node(db, node_id, **body.model_dump(exclude_unset=True))
        if not node:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Beacon node not found"
            )
        await db.commit()
    return node


@router.delete("/beacon-nodes/{node_id}")
async def delete_beacon_node(
    node_id: int,
    admin: User = Depends(require_admin()),
    db: AsyncSession = Depends(get_async_db),
):
    async with _directory_write(db, "beacon_node_delete_failed", beacon_node_id=node_id):
        if not await crud.delete_beacon_node(db, node_id):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Beacon node not found"
            )
        await db.commit()
    logger.info("beacon_node_deleted", beacon_node_id=node_id, admin_id=admin.id)
    return {"status": "deleted", "beacon_node_id": node_id}


# Email settings
async def _email_settings_view(database: Database, notifier: Notifier) -> Dict[str, Any]:
    stored = await read_email_settings(database)
    view: Dict[str, Any] = {key: value for key, value in stored.items() if key != "smtp_pass"}
    view["smtp_pass_set"] = bool(stored.get("smtp_pass"))
    view["configured"] = (
        await notifier.is_email_configured() if isinstance(notifier, EmailNotifier) else False
    )
    return view


@router.get("/settings/email")
async def get_email_settings(
    admin: User = Depends(require_admin()),
    database: Database = Depends(get_db_handle),
    notifier: Notifier = Depends(get_notifier),
):
    """Stored SMTP settings. The password is never returned."""
    return await _email_settings_view(database, notifier)


@router.put("/settings/email")
async def update_email_settings(
    body: EmailSettingsUpdate,
    admin: User = Depends(require_admin()),
    database: Database = Depends(get_db_handle),
    notifier: Notifier = Depends(get_notifier),
):
    values = body.model_dump(exclude_none=True)
    if "smtp_secure" in values:
        values["smtp_secure"] = "true" if values["smtp_secure"] else "false"
    if await write_email_settings(database, values) is None:
        raise_for_failure("Could not save email settings", FailureKind.STORAGE)
    logger.info("email_settings_changed", admin_id=admin.id)
    return await _email_settings_view(database, notifier)
