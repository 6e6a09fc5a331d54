############################################################
#
# labchain-directory - LAB Chain Network Directory and Faucet Portal
#
# results.py: Result values returned by the workflow services
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Result values for service operations.

Services never raise for expected failures (validation, not found,
storage errors). They return one of these with ``success=False`` and a
human-readable ``error`` the API layer can show as-is.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from backend.app.db.models import User


class FailureKind(str, Enum):
    """Why an operation failed, for mapping onto HTTP status codes."""
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    STORAGE = "storage"


class DuplicateSource(str, Enum):
    """Where an already-known endpoint was found."""
    NODE_REQUEST = "node_request"
    RPC_ENDPOINT = "rpc_endpoint"
    BOOT_NODE = "boot_node"
    BEACON_NODE = "beacon_node"


@dataclass
class EmailResult:
    """Outcome of one notification attempt."""

    success: bool
    error: Optional[str] = None


@dataclass
class DuplicateCheckResult:
    """Outcome of a duplicate endpoint check."""

    is_duplicate: bool
    source: Optional[DuplicateSource] = None
    existing_id: Optional[int] = None
    message: Optional[str] = None


@dataclass
class UserResult:
    """Outcome of an account operation."""

    success: bool
    user: Optional[User] = None
    error: Optional[str] = None
    kind: Optional[FailureKind] = None


@dataclass
class SubmissionResult:
    """Outcome of a public node or token submission."""

    success: bool
    request: Any = None
    error: Optional[str] = None
    kind: Optional[FailureKind] = None
    duplicate: Optional[DuplicateCheckResult] = None


@dataclass
class LedgerResult:
    """Outcome of an admin edit on a stored request."""

    success: bool
    request: Any = None
    error: Optional[str] = None
    kind: Optional[FailureKind] = None


@dataclass
class DecisionResult:
    """Outcome of an approval engine transition.

    ``listing`` is the directory row created by a node approval.
    ``notification`` is None when no notification was attempted.
    """

    success: bool
    request: Any = None
    listing: Any = None
    error: Optional[str] = None
    kind: Optional[FailureKind] = None
    notification: Optional[EmailResult] = None
