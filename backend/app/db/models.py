############################################################
#
# labchain-directory - LAB Chain Network Directory and Faucet Portal
#
# models.py: SQLAlchemy ORM models for all database entities
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""SQLAlchemy database models for the LAB Chain directory."""

from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.db.base import Base, TimestampMixin, utcnow

# Use enum values (lowercase) for database storage, not enum names (uppercase)
_enum_values = lambda obj: [e.value for e in obj]


# Enums
class NodeType(str, PyEnum):
    """Kinds of infrastructure a community member can submit."""
    RPC = "rpc"
    BOOTNODE = "bootnode"
    BEACON = "beacon"


class NodeRequestStatus(str, PyEnum):
    """Node submission review status."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class TokenRequestStatus(str, PyEnum):
    """Faucet request review status."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    TRANSFERRED = "transferred"


class RpcEndpointType(str, PyEnum):
    """Who operates an RPC endpoint."""
    OFFICIAL = "official"
    COMMUNITY = "community"


class RpcEndpointStatus(str, PyEnum):
    """RPC endpoint availability."""
    ACTIVE = "active"
    INACTIVE = "inactive"


class NodeStatus(str, PyEnum):
    """Boot/beacon node availability."""
    ACTIVE = "active"
    SYNCING = "syncing"
    INACTIVE = "inactive"


# User and Authentication Models
class User(Base, TimestampMixin):
    """Admin account."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)


class UserSession(Base):
    """Server-side login session keyed by an opaque token."""

    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_sessions_user_id", "user_id"),
        Index("ix_sessions_expires_at", "expires_at"),
    )


# Directory Models
class RpcEndpoint(Base, TimestampMixin):
    """Public JSON-RPC endpoint listing."""

    __tablename__ = "rpc_endpoints"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    endpoint: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    type: Mapped[RpcEndpointType] = mapped_column(
        Enum(RpcEndpointType, values_callable=_enum_values),
        nullable=False,
        default=RpcEndpointType.COMMUNITY,
    )
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[RpcEndpointStatus] = mapped_column(
        Enum(RpcEndpointStatus, values_callable=_enum_values),
        nullable=False,
        default=RpcEndpointStatus.ACTIVE,
    )
    latency: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    requests: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    rate_limit: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    features: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class BootNode(Base, TimestampMixin):
    """Execution-layer boot node listing."""

    __tablename__ = "boot_nodes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    enode: Mapped[str] = mapped_column(String(1000), nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[NodeStatus] = mapped_column(
        Enum(NodeStatus, values_callable=_enum_values), nullable=False, default=NodeStatus.ACTIVE
    )
    uptime: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    peers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_seen: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)


class BeaconNode(Base, TimestampMixin):
    """Consensus-layer beacon node listing."""

    __tablename__ = "beacon_nodes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    endpoint: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    enr: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    p2p: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[NodeStatus] = mapped_column(
        Enum(NodeStatus, values_callable=_enum_values), nullable=False, default=NodeStatus.ACTIVE
    )
    version: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    sync_status: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    slots: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    epoch: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    last_update: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)


# Submission Models
class NodeRequest(Base, TimestampMixin):
    """Community submission of an RPC endpoint, boot node or beacon node."""

    __tablename__ = "node_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tracking_id: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    node_type: Mapped[NodeType] = mapped_column(
        Enum(NodeType, values_callable=_enum_values), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    endpoint: Mapped[str] = mapped_column(String(700), nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    contact_email: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[NodeRequestStatus] = mapped_column(
        Enum(NodeRequestStatus, values_callable=_enum_values),
        nullable=False,
        default=NodeRequestStatus.PENDING,
    )
    admin_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_node_requests_status", "status"),
        Index("ix_node_requests_endpoint", "endpoint"),
    )


class TokenRequest(Base, TimestampMixin):
    """Faucet request for LAB tokens."""

    __tablename__ = "token_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tracking_id: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    wallet_address: Mapped[str] = mapped_column(String(100), nullable=False)
    requested_amount: Mapped[str] = mapped_column(String(78), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    contact_info: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[TokenRequestStatus] = mapped_column(
        Enum(TokenRequestStatus, values_callable=_enum_values),
        nullable=False,
        default=TokenRequestStatus.PENDING,
    )
    transferred_amount: Mapped[Optional[str]] = mapped_column(String(78), nullable=True)
    admin_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_token_requests_status", "status"),
    )


# Runtime configuration
class Setting(Base):
    """Admin-editable key/value setting."""

    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )
