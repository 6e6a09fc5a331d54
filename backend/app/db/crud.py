############################################################
#
# labchain-directory - LAB Chain Network Directory and Faucet Portal
#
# crud.py: Database CRUD operations for all entities
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Database CRUD operations for the LAB Chain directory.

Functions here only flush; committing is the caller's job so several
operations can share one transaction.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Type, TypeVar

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.base import Base
from backend.app.db.models import (
    BeaconNode,
    BootNode,
    NodeRequest,
    NodeRequestStatus,
    NodeStatus,
    RpcEndpoint,
    RpcEndpointStatus,
    RpcEndpointType,
    Setting,
    TokenRequest,
    TokenRequestStatus,
    User,
    UserSession,
)

ModelT = TypeVar("ModelT", bound=Base)

# Columns that callers may never set through the generic update helpers
_PROTECTED_COLUMNS = frozenset({"id", "created_at", "updated_at"})


def _apply_fields(obj: Any, fields: Dict[str, Any]) -> None:
    """Set known, non-protected columns from ``fields``; None values are skipped."""
    columns = obj.__table__.columns.keys()
    for key, value in fields.items():
        if key in _PROTECTED_COLUMNS or key not in columns or value is None:
            continue
        setattr(obj, key, value)


async def _get_by_id(db: AsyncSession, model: Type[ModelT], obj_id: int) -> Optional[ModelT]:
    result = await db.execute(select(model).where(model.id == obj_id))
    return result.scalar_one_or_none()


async def _delete_by_id(db: AsyncSession, model: Type[Base], obj_id: int) -> bool:
    result = await db.execute(delete(model).where(model.id == obj_id))
    return result.rowcount > 0


# User CRUD
async def get_user_by_id(db: AsyncSession, user_id: int) -> Optional[User]:
    """Get user by ID."""
    return await _get_by_id(db, User, user_id)


async def get_user_by_username(db: AsyncSession, username: str) -> Optional[User]:
    """Get user by username."""
    result = await db.execute(select(User).where(User.username == username))
    return result.scalar_one_or_none()


async def count_users(db: AsyncSession) -> int:
    """Number of user accounts."""
    result = await db.execute(select(func.count()).select_from(User))
    return result.scalar_one()


async def create_user(db: AsyncSession, username: str, password_hash: str) -> User:
    """Create a new user."""
    user = User(username=username, password_hash=password_hash)
    db.add(user)
    await db.flush()
    return user


async def update_user(
    db: AsyncSession,
    user_id: int,
    username: Optional[str] = None,
    password_hash: Optional[str] = None,
) -> Optional[User]:
    """Change a user's username and/or password hash."""
    user = await get_user_by_id(db, user_id)
    if user:
        _apply_fields(user, {"username": username, "password_hash": password_hash})
        await db.flush()
    return user


# Session CRUD
async def create_session(
    db: AsyncSession, session_id: str, user_id: int, expires_at: datetime
) -> UserSession:
    """Persist a new login session."""
    row = UserSession(id=session_id, user_id=user_id, expires_at=expires_at)
    db.add(row)
    await db.flush()
    return row


async def get_session(db: AsyncSession, session_id: str) -> Optional[UserSession]:
    """Get a session row by token, regardless of expiry."""
    result = await db.execute(select(UserSession).where(UserSession.id == session_id))
    return result.scalar_one_or_none()


async def delete_session(db: AsyncSession, session_id: str) -> bool:
    """Delete one session. Returns False if it did not exist."""
    result = await db.execute(delete(UserSession).where(UserSession.id == session_id))
    return result.rowcount > 0


async def delete_expired_sessions(db: AsyncSession, now: datetime) -> int:
    """Delete every session whose expiry is not in the future."""
    result = await db.execute(delete(UserSession).where(UserSession.expires_at <= now))
    return result.rowcount


async def delete_user_sessions(
    db: AsyncSession, user_id: int, except_session_id: Optional[str] = None
) -> int:
    """Delete all sessions of one user, optionally keeping the current one."""
    stmt = delete(UserSession).where(UserSession.user_id == user_id)
    if except_session_id:
        stmt = stmt.where(UserSession.id != except_session_id)
    result = await db.execute(stmt)
    return result.rowcount


# RPC Endpoint CRUD
async def get_all_rpc_endpoints(db: AsyncSession) -> List[RpcEndpoint]:
    """Official endpoints first, then by name."""
    result = await db.execute(
        select(RpcEndpoint).order_by(RpcEndpoint.type.desc(), RpcEndpoint.name.asc())
    )
    return list(result.scalars().all())


async def get_rpc_endpoint_by_id(db: AsyncSession, endpoint_id: int) -> Optional[RpcEndpoint]:
    return await _get_by_id(db, RpcEndpoint, endpoint_id)


async def get_rpc_endpoint_by_url(db: AsyncSession, url: str) -> Optional[RpcEndpoint]:
    result = await db.execute(select(RpcEndpoint).where(RpcEndpoint.endpoint == url).limit(1))
    return result.scalar_one_or_none()


async def create_rpc_endpoint(
    db: AsyncSession,
    name: str,
    endpoint: str,
    type: RpcEndpointType = RpcEndpointType.COMMUNITY,
    status: RpcEndpointStatus = RpcEndpointStatus.ACTIVE,
    **fields: Any,
) -> RpcEndpoint:
    """Create an RPC endpoint listing."""
    rpc = RpcEndpoint(name=name, endpoint=endpoint, type=type, status=status)
    _apply_fields(rpc, fields)
    db.add(rpc)
    await db.flush()
    return rpc


async def update_rpc_endpoint(
    db: AsyncSession, endpoint_id: int, **fields: Any
) -> Optional[RpcEndpoint]:
    """Partially update an RPC endpoint. Returns None if not found."""
    rpc = await get_rpc_endpoint_by_id(db, endpoint_id)
    if rpc:
        _apply_fields(rpc, fields)
        await db.flush()
    return rpc


async def delete_rpc_endpoint(db: AsyncSession, endpoint_id: int) -> bool:
    return await _delete_by_id(db, RpcEndpoint, endpoint_id)


# Boot Node CRUD
async def get_all_boot_nodes(db: AsyncSession) -> List[BootNode]:
    result = await db.execute(select(BootNode).order_by(BootNode.status.asc(), BootNode.name.asc()))
    return list(result.scalars().all())


async def get_boot_node_by_id(db: AsyncSession, node_id: int) -> Optional[BootNode]:
    return await _get_by_id(db, BootNode, node_id)


async def get_boot_node_by_enode(db: AsyncSession, enode: str) -> Optional[BootNode]:
    result = await db.execute(select(BootNode).where(BootNode.enode == enode).limit(1))
    return result.scalar_one_or_none()


async def create_boot_node(
    db: AsyncSession,
    name: str,
    enode: str,
    status: NodeStatus = NodeStatus.ACTIVE,
    **fields: Any,
) -> BootNode:
    """Create a boot node listing."""
    node = BootNode(name=name, enode=enode, status=status, peers=0)
    _apply_fields(node, fields)
    db.add(node)
    await db.flush()
    return node


async def update_boot_node(db: AsyncSession, node_id: int, **fields: Any) -> Optional[BootNode]:
    node = await get_boot_node_by_id(db, node_id)
    if node:
        _apply_fields(node, fields)
        await db.flush()
    return node


async def delete_boot_node(db: AsyncSession, node_id: int) -> bool:
    return await _delete_by_id(db, BootNode, node_id)


# Beacon Node CRUD
async def get_all_beacon_nodes(db: AsyncSession) -> List[BeaconNode]:
    result = await db.execute(
        select(BeaconNode).order_by(BeaconNode.status.asc(), BeaconNode.name.asc())
    )
    return list(result.scalars().all())


async def get_beacon_node_by_id(db: AsyncSession, node_id: int) -> Optional[BeaconNode]:
    return await _get_by_id(db, BeaconNode, node_id)


async def get_beacon_node_by_address(db: AsyncSession, address: str) -> Optional[BeaconNode]:
    """Beacon nodes are keyed by ENR, older rows only carry an endpoint."""
    result = await db.execute(
        select(BeaconNode)
        .where(or_(BeaconNode.enr == address, BeaconNode.endpoint == address))
        .limit(1)
    )
    return result.scalar_one_or_none()


async def create_beacon_node(
    db: AsyncSession,
    name: str,
    enr: Optional[str] = None,
    endpoint: Optional[str] = None,
    status: NodeStatus = NodeStatus.ACTIVE,
    **fields: Any,
) -> BeaconNode:
    """Create a beacon node listing."""
    node = BeaconNode(name=name, enr=enr, endpoint=endpoint, status=status)
    _apply_fields(node, fields)
    db.add(node)
    await db.flush()
    return node


async def update_beacon_node(db: AsyncSession, node_id: int, **fields: Any) -> Optional[BeaconNode]:
    node = await get_beacon_node_by_id(db, node_id)
    if node:
        _apply_fields(node, fields)
        await db.flush()
    return node


async def delete_beacon_node(db: AsyncSession, node_id: int) -> bool:
    return await _delete_by_id(db, BeaconNode, node_id)


async def get_stats(db: AsyncSession) -> Dict[str, Dict[str, int]]:
    """Total and active counts per directory table."""
    stats: Dict[str, Dict[str, int]] = {}
    for label, model, active in (
        ("rpc_endpoints", RpcEndpoint, RpcEndpointStatus.ACTIVE),
        ("boot_nodes", BootNode, NodeStatus.ACTIVE),
        ("beacon_nodes", BeaconNode, NodeStatus.ACTIVE),
    ):
        total = await db.execute(select(func.count()).select_from(model))
        active_count = await db.execute(
            select(func.count()).select_from(model).where(model.status == active)
        )
        stats[label] = {"total": total.scalar_one(), "active": active_count.scalar_one()}
    return stats


# Node Request CRUD
async def create_node_request(db: AsyncSession, **fields: Any) -> NodeRequest:
    """Insert a node request. Status handling is the ledger's job."""
    node_request = NodeRequest()
    _apply_fields(node_request, fields)
    db.add(node_request)
    await db.flush()
    return node_request


async def get_node_request_by_id(db: AsyncSession, request_id: int) -> Optional[NodeRequest]:
    return await _get_by_id(db, NodeRequest, request_id)


async def get_node_request_for_update(db: AsyncSession, request_id: int) -> Optional[NodeRequest]:
    """Load a node request with a row lock (no-op on SQLite)."""
    result = await db.execute(
        select(NodeRequest).where(NodeRequest.id == request_id).with_for_update()
    )
    return result.scalar_one_or_none()


async def get_node_request_by_tracking_id(
    db: AsyncSession, tracking_id: str
) -> Optional[NodeRequest]:
    result = await db.execute(select(NodeRequest).where(NodeRequest.tracking_id == tracking_id))
    return result.scalar_one_or_none()


async def get_node_requests(
    db: AsyncSession, status: Optional[NodeRequestStatus] = None
) -> List[NodeRequest]:
    """Node requests, newest first, optionally filtered by status."""
    query = select(NodeRequest)
    if status is not None:
        query = query.where(NodeRequest.status == status)
    query = query.order_by(NodeRequest.created_at.desc(), NodeRequest.id.desc())
    result = await db.execute(query)
    return list(result.scalars().all())


async def find_open_node_request_by_endpoint(
    db: AsyncSession, endpoint: str
) -> Optional[NodeRequest]:
    """A pending or approved request for this endpoint, if any."""
    result = await db.execute(
        select(NodeRequest)
        .where(
            NodeRequest.endpoint == endpoint,
            NodeRequest.status != NodeRequestStatus.REJECTED,
        )
        .order_by(NodeRequest.id.asc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def count_node_requests_by_status(db: AsyncSession) -> Dict[str, int]:
    result = await db.execute(
        select(NodeRequest.status, func.count()).group_by(NodeRequest.status)
    )
    counts = {s.value: 0 for s in NodeRequestStatus}
    for status, count in result.all():
        counts[NodeRequestStatus(status).value] = count
    return counts


async def delete_node_request(db: AsyncSession, request_id: int) -> bool:
    return await _delete_by_id(db, NodeRequest, request_id)


# Token Request CRUD
async def create_token_request(db: AsyncSession, **fields: Any) -> TokenRequest:
    token_request = TokenRequest()
    _apply_fields(token_request, fields)
    db.add(token_request)
    await db.flush()
    return token_request


async def get_token_request_by_id(db: AsyncSession, request_id: int) -> Optional[TokenRequest]:
    return await _get_by_id(db, TokenRequest, request_id)


async def get_token_request_for_update(
    db: AsyncSession, request_id: int
) -> Optional[TokenRequest]:
    result = await db.execute(
        select(TokenRequest).where(TokenRequest.id == request_id).with_for_update()
    )
    return result.scalar_one_or_none()


async def get_token_request_by_tracking_id(
    db: AsyncSession, tracking_id: str
) -> Optional[TokenRequest]:
    result = await db.execute(select(TokenRequest).where(TokenRequest.tracking_id == tracking_id))
    return result.scalar_one_or_none()


async def get_token_requests(
    db: AsyncSession, status: Optional[TokenRequestStatus] = None
) -> List[TokenRequest]:
    query = select(TokenRequest)
    if status is not None:
        query = query.where(TokenRequest.status == status)
    query = query.order_by(TokenRequest.created_at.desc(), TokenRequest.id.desc())
    result = await db.execute(query)
    return list(result.scalars().all())


async def count_token_requests_by_status(db: AsyncSession) -> Dict[str, int]:
    result = await db.execute(
        select(TokenRequest.status, func.count()).group_by(TokenRequest.status)
    )
    counts = {s.value: 0 for s in TokenRequestStatus}
    for status, count in result.all():
        counts[TokenRequestStatus(status).value] = count
    return counts


async def delete_token_request(db: AsyncSession, request_id: int) -> bool:
    return await _delete_by_id(db, TokenRequest, request_id)


# Settings CRUD
async def get_setting(db: AsyncSession, key: str) -> Optional[str]:
    result = await db.execute(select(Setting.value).where(Setting.key == key))
    return result.scalar_one_or_none()


async def get_settings_map(db: AsyncSession, keys: Iterable[str]) -> Dict[str, str]:
    """Stored values for the given keys; missing keys are absent from the result."""
    result = await db.execute(select(Setting.key, Setting.value).where(Setting.key.in_(list(keys))))
    return {key: value for key, value in result.all()}


async def set_setting(db: AsyncSession, key: str, value: str) -> Setting:
    """Insert or update one setting."""
    setting = await db.get(Setting, key)
    if setting is None:
        setting = Setting(key=key, value=value)
        db.add(setting)
    else:
        setting.value = value
    await db.flush()
    return setting


async def create_setting(db: AsyncSession, key: str, value: str) -> Setting:
    """Insert a setting. Fails with IntegrityError if the key already exists."""
    setting = Setting(key=key, value=value)
    db.add(setting)
    await db.flush()
    return setting
