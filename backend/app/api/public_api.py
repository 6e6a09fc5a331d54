############################################################
#
# labchain-directory - LAB Chain Network Directory and Faucet Portal
#
# public_api.py: Public directory, submission and status endpoints
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Public API endpoints.

Anyone can read the directory, submit a node or token request, and look
up a request by its tracking id. Lookups expose status only, never contact
details or admin notes.
"""

from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.auth import get_ledger, raise_for_failure
from backend.app.db import crud
from backend.app.db.models import (
    NodeRequestStatus,
    NodeStatus,
    NodeType,
    RpcEndpointStatus,
    RpcEndpointType,
    TokenRequestStatus,
)
from backend.app.db.session import get_async_db
from backend.app.services.ledger import RequestLedger

router = APIRouter()


# Directory models
class RpcEndpointResponse(BaseModel):
    """RPC endpoint listing."""
    id: int
    name: str
    endpoint: str
    type: RpcEndpointType
    location: Optional[str] = None
    status: RpcEndpointStatus
    latency: Optional[str] = None
    requests: Optional[str] = None
    rate_limit: Optional[str] = None
    features: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BootNodeResponse(BaseModel):
    """Boot node listing."""
    id: int
    name: str
    enode: str
    location: Optional[str] = None
    status: NodeStatus
    uptime: Optional[str] = None
    peers: int = 0
    last_seen: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BeaconNodeResponse(BaseModel):
    """Beacon node listing."""
    id: int
    name: str
    endpoint: Optional[str] = None
    enr: Optional[str] = None
    p2p: Optional[str] = None
    location: Optional[str] = None
    status: NodeStatus
    version: Optional[str] = None
    sync_status: Optional[str] = None
    slots: Optional[str] = None
    epoch: Optional[str] = None
    last_update: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Submission models
class NodeSubmission(BaseModel):
    """Community node submission."""
    node_type: str
    name: str = Field(..., max_length=255)
    endpoint: str = Field(..., max_length=700)
    location: Optional[str] = Field(None, max_length=255)
    contact_email: str = Field(..., max_length=255)
    contact_name: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None


class TokenSubmission(BaseModel):
    """Faucet request for LAB tokens."""
    first_name: str = Field(..., max_length=100)
    last_name: str = Field(..., max_length=100)
    email: str = Field(..., max_length=255)
    wallet_address: str = Field(..., max_length=100)
    requested_amount: str = Field(..., max_length=78)
    reason: str
    contact_info: Optional[str] = Field(None, max_length=255)


class SubmissionResponse(BaseModel):
    success: bool = True
    tracking_id: str
    status: str


class NodeRequestStatusResponse(BaseModel):
    """Public view of a node request."""
    tracking_id: str
    node_type: NodeType
    name: str
    status: NodeRequestStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TokenRequestStatusResponse(BaseModel):
    """Public view of a token request."""
    tracking_id: str
    status: TokenRequestStatus
    requested_amount: str
    transferred_amount: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Directory
@router.get("/directory/rpc", response_model=List[RpcEndpointResponse])
async def list_rpc_endpoints(db: AsyncSession = Depends(get_async_db)):
    return await crud.get_all_rpc_endpoints(db)


@router.get("/directory/bootnodes", response_model=List[BootNodeResponse])
async def list_boot_nodes(db: AsyncSession = Depends(get_async_db)):
    return await crud.get_all_boot_nodes(db)


@router.get("/directory/beacon", response_model=List[BeaconNodeResponse])
async def list_beacon_nodes(db: AsyncSession = Depends(get_async_db)):
    return await crud.get_all_beacon_nodes(db)


@router.get("/stats")
async def directory_stats(db: AsyncSession = Depends(get_async_db)) -> Dict[str, Dict[str, int]]:
    """Total and active listings per directory table."""
    return await crud.get_stats(db)


# Submissions
@router.post(
    "/requests/nodes", response_model=SubmissionResponse, status_code=status.HTTP_201_CREATED
)
async def submit_node_request(
    body: NodeSubmission,
    ledger: RequestLedger = Depends(get_ledger),
):
    """Submit an RPC endpoint, boot node or beacon node for review."""
    result = await ledger.submit_node_request(body.model_dump())
    if not result.success:
        raise_for_failure(result.error, result.kind)
    return SubmissionResponse(
        tracking_id=result.request.tracking_id, status=result.request.status.value
    )


@router.get("/requests/nodes/{tracking_id}", response_model=NodeRequestStatusResponse)
async def node_request_status(
    tracking_id: str,
    ledger: RequestLedger = Depends(get_ledger),
):
    request = await ledger.get_node_request_by_tracking_id(tracking_id)
    if request is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Request not found")
    return request


@router.post(
    "/requests/tokens", response_model=SubmissionResponse, status_code=status.HTTP_201_CREATED
)
async def submit_token_request(
    body: TokenSubmission,
    ledger: RequestLedger = Depends(get_ledger),
):
    """Request LAB tokens from the faucet."""
    result = await ledger.submit_token_request(body.model_dump())
    if not result.success:
        raise_for_failure(result.error, result.kind)
    return SubmissionResponse(
        tracking_id=result.request.tracking_id, status=result.request.status.value
    )


@router.get("/requests/tokens/{tracking_id}", response_model=TokenRequestStatusResponse)
async def token_request_status(
    tracking_id: str,
    ledger: RequestLedger = Depends(get_ledger),
):
    request = await ledger.get_token_request_by_tracking_id(tracking_id)
    if request is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Request not found")
    return request
