############################################################
#
# labchain-directory - LAB Chain Network Directory and Faucet Portal
#
# duplicates.py: Duplicate endpoint detection for node submissions
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Duplicate detection for node submissions.

An endpoint may not be submitted while another request for it is pending
or approved, or while it is already listed in the directory. Rejected
requests do not block a resubmission.
"""

from typing import Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db import crud
from backend.app.db.models import NodeType
from backend.app.db.session import Database
from backend.app.services.results import DuplicateCheckResult, DuplicateSource


def normalize_endpoint(endpoint: Optional[str]) -> str:
    return (endpoint or "").strip()


def coerce_node_type(node_type: Union[str, NodeType, None]) -> Optional[NodeType]:
    """NodeType for a raw value, or None if it is not a known type."""
    if isinstance(node_type, NodeType):
        return node_type
    try:
        return NodeType(str(node_type).strip().lower())
    except ValueError:
        return None


async def find_duplicate(
    db: AsyncSession, endpoint: str, node_type: NodeType
) -> DuplicateCheckResult:
    """Check the request ledger, then the directory table for ``node_type``."""
    existing_request = await crud.find_open_node_request_by_endpoint(db, endpoint)
    if existing_request:
        return DuplicateCheckResult(
            is_duplicate=True,
            source=DuplicateSource.NODE_REQUEST,
            existing_id=existing_request.id,
            message=(
                f"A request for this endpoint is already {existing_request.status.value} "
                f"({existing_request.tracking_id})"
            ),
        )

    if node_type == NodeType.RPC:
        listing = await crud.get_rpc_endpoint_by_url(db, endpoint)
        source, label = DuplicateSource.RPC_ENDPOINT, "RPC endpoint"
    elif node_type == NodeType.BOOTNODE:
        listing = await crud.get_boot_node_by_enode(db, endpoint)
        source, label = DuplicateSource.BOOT_NODE, "boot node"
    else:
        listing = await crud.get_beacon_node_by_address(db, endpoint)
        source, label = DuplicateSource.BEACON_NODE, "beacon node"

    if listing:
        return DuplicateCheckResult(
            is_duplicate=True,
            source=source,
            existing_id=listing.id,
            message=f"This endpoint is already listed as a {label}",
        )
    return DuplicateCheckResult(is_duplicate=False)


class DuplicateChecker:
    """Standalone entry point for duplicate checks."""

    def __init__(self, database: Database):
        self.database = database

    async def check(
        self, endpoint: str, node_type: Union[str, NodeType]
    ) -> DuplicateCheckResult:
        """Look for ``endpoint`` among open requests and directory listings.

        Raises ValueError for an unknown node type.
        """
        resolved = coerce_node_type(node_type)
        if resolved is None:
            raise ValueError(f"Unknown node type: {node_type!r}")
        endpoint = normalize_endpoint(endpoint)
        if not endpoint:
            return DuplicateCheckResult(is_duplicate=False)
        async with self.database.session() as db:
            return await find_duplicate(db, endpoint, resolved)
