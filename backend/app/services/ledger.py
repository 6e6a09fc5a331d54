############################################################
#
# labchain-directory - LAB Chain Network Directory and Faucet Portal
#
# ledger.py: Node and token request ledger with tracking ids
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Request ledger for community submissions.

Every request is stored as ``pending`` with a public tracking id. Status is
owned by the approval engine; nothing here ever moves a request out of
``pending``.
"""

import re
import secrets
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

from prometheus_client import Counter
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db import crud
from backend.app.db.models import (
    NodeRequest,
    NodeRequestStatus,
    NodeType,
    TokenRequest,
    TokenRequestStatus,
)
from backend.app.db.session import Database
from backend.app.logging_config import get_logger
from backend.app.services.duplicates import (
    coerce_node_type,
    find_duplicate,
    normalize_endpoint,
)
from backend.app.services.results import FailureKind, LedgerResult, SubmissionResult

logger = get_logger(__name__)

NODE_REQUEST_PREFIX = "REQ"
TOKEN_REQUEST_PREFIX = "TKN"
TRACKING_ID_PATTERN = re.compile(r"^(REQ|TKN)-[0-9A-F]{8}$")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_WALLET_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

# Longest endpoint each node type can carry into its directory table.
ENDPOINT_MAX_LENGTH = {
    NodeType.RPC: 500,
    NodeType.BOOTNODE: 700,
    NodeType.BEACON: 700,
}

SUBMISSIONS = Counter(
    "labchain_submissions_total",
    "Public submissions by request kind and outcome",
    ["kind", "outcome"],
)


class RequestKind(str, Enum):
    """The two kinds of request held in the ledger."""
    NODE = "node"
    TOKEN = "token"


def generate_tracking_id(prefix: str) -> str:
    """Public handle such as ``REQ-9F2C01AB`` (32 random bits)."""
    return f"{prefix}-{secrets.token_hex(4).upper()}"


def normalize_tracking_id(tracking_id: Optional[str]) -> str:
    return (tracking_id or "").strip().upper()


def parse_amount(value: Any) -> Optional[Decimal]:
    """Positive decimal amount, or None if ``value`` is not one."""
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount <= 0:
        return None
    return amount


def _text(payload: Mapping[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def clean_node_payload(payload: Mapping[str, Any]) -> Tuple[Dict[str, Any], Optional[str]]:
    """Whitelisted, stripped node request fields and a validation error, if any."""
    node_type = coerce_node_type(payload.get("node_type"))
    fields = {
        "node_type": node_type,
        "name": _text(payload, "name"),
        "endpoint": normalize_endpoint(payload.get("endpoint")) or None,
        "location": _text(payload, "location"),
        "contact_email": _text(payload, "contact_email"),
        "contact_name": _text(payload, "contact_name"),
        "description": _text(payload, "description"),
    }
    if node_type is None:
        return fields, "Node type must be one of: rpc, bootnode, beacon"
    for key, label in (("name", "Name"), ("endpoint", "Endpoint"), ("contact_email", "Contact email")):
        if not fields[key]:
            return fields, f"{label} is required"
    limit = ENDPOINT_MAX_LENGTH[node_type]
    if len(fields["endpoint"]) > limit:
        return fields, f"Endpoint must be at most {limit} characters for {node_type.value} nodes"
    if not _EMAIL_RE.match(fields["contact_email"]):
        return fields, "Contact email is not a valid email address"
    return fields, None


def clean_token_payload(payload: Mapping[str, Any]) -> Tuple[Dict[str, Any], Optional[str]]:
    """Whitelisted, stripped token request fields and a validation error, if any."""
    fields = {
        "first_name": _text(payload, "first_name"),
        "last_name": _text(payload, "last_name"),
        "email": _text(payload, "email"),
        "wallet_address": _text(payload, "wallet_address"),
        "requested_amount": _text(payload, "requested_amount"),
        "reason": _text(payload, "reason"),
        "contact_info": _text(payload, "contact_info"),
    }
    for key, label in (
        ("first_name", "First name"),
        ("last_name", "Last name"),
        ("email", "Email"),
        ("wallet_address", "Wallet address"),
        ("requested_amount", "Requested amount"),
        ("reason", "Reason"),
    ):
        if not fields[key]:
            return fields, f"{label} is required"
    if not _EMAIL_RE.match(fields["email"]):
        return fields, "Email is not a valid email address"
    if not _WALLET_RE.match(fields["wallet_address"]):
        return fields, "Wallet address must be a 0x-prefixed 40 character hex address"
    if parse_amount(fields["requested_amount"]) is None:
        return fields, "Requested amount must be a positive number"
    return fields, None


class RequestLedger:
    """Stores and reads node and token requests."""

    def __init__(self, database: Database, tracking_id_attempts: int = 5):
        self.database = database
        self.tracking_id_attempts = max(1, tracking_id_attempts)

    async def _insert(
        self,
        db: AsyncSession,
        prefix: str,
        lookup: Callable[[AsyncSession, str], Awaitable[Any]],
        create: Callable[..., Awaitable[Any]],
        fields: Dict[str, Any],
    ) -> Any:
        """Insert with a fresh tracking id, retrying on collision, and commit."""
        for attempt in range(1, self.tracking_id_attempts + 1):
            tracking_id = generate_tracking_id(prefix)
            if await lookup(db, tracking_id):
                logger.warning("tracking_id_collision", tracking_id=tracking_id, attempt=attempt)
                continue
            try:
                request = await create(db, **fields, tracking_id=tracking_id)
                await db.commit()
                return request
            except IntegrityError:
                # Another writer took the same id between lookup and insert
                await db.rollback()
                logger.warning("tracking_id_collision", tracking_id=tracking_id, attempt=attempt)
        raise RuntimeError(
            f"Could not allocate a unique tracking id after {self.tracking_id_attempts} attempts"
        )

    async def _insert_node_request(self, db: AsyncSession, fields: Dict[str, Any]) -> NodeRequest:
        fields = dict(fields, status=NodeRequestStatus.PENDING)
        return await self._insert(
            db,
            NODE_REQUEST_PREFIX,
            crud.get_node_request_by_tracking_id,
            crud.create_node_request,
            fields,
        )

    async def _insert_token_request(self, db: AsyncSession, fields: Dict[str, Any]) -> TokenRequest:
        fields = dict(fields, status=TokenRequestStatus.PENDING)
        return await self._insert(
            db,
            TOKEN_REQUEST_PREFIX,
            crud.get_token_request_by_tracking_id,
            crud.create_token_request,
            fields,
        )

    # Creation
    async def create_node_request(self, payload: Mapping[str, Any]) -> NodeRequest:
        """Store a node request as pending without a duplicate check.

        Raises ValueError if the payload is invalid.
        """
        fields, error = clean_node_payload(payload)
        if error:
            raise ValueError(error)
        async with self.database.session() as db:
            request = await self._insert_node_request(db, fields)
        logger.info("node_request_created", request_id=request.id, tracking_id=request.tracking_id)
        return request

    async def create_token_request(self, payload: Mapping[str, Any]) -> TokenRequest:
        """Store a token request as pending.

        Raises ValueError if the payload is invalid.
        """
        fields, error = clean_token_payload(payload)
        if error:
            raise ValueError(error)
        async with self.database.session() as db:
            request = await self._insert_token_request(db, fields)
        logger.info("token_request_created", request_id=request.id, tracking_id=request.tracking_id)
        return request

    async def submit_node_request(self, payload: Mapping[str, Any]) -> SubmissionResult:
        """Public node submission: validate, check for duplicates, then store."""
        fields, error = clean_node_payload(payload)
        if error:
            SUBMISSIONS.labels(kind="node", outcome="invalid").inc()
            return SubmissionResult(success=False, error=error, kind=FailureKind.VALIDATION)

        async with self.database.session() as db:
            duplicate = await find_duplicate(db, fields["endpoint"], fields["node_type"])
            if duplicate.is_duplicate:
                SUBMISSIONS.labels(kind="node", outcome="duplicate").inc()
                logger.info(
                    "node_request_duplicate",
                    source=duplicate.source.value,
                    existing_id=duplicate.existing_id,
                )
                return SubmissionResult(
                    success=False,
                    error=duplicate.message,
                    kind=FailureKind.CONFLICT,
                    duplicate=duplicate,
                )
            try:
                request = await self._insert_node_request(db, fields)
            except (SQLAlchemyError, RuntimeError) as exc:
                await db.rollback()
                SUBMISSIONS.labels(kind="node", outcome="error").inc()
                logger.error("node_request_store_failed", error=str(exc))
                return SubmissionResult(
                    success=False, error="Could not store request", kind=FailureKind.STORAGE
                )

        SUBMISSIONS.labels(kind="node", outcome="accepted").inc()
        logger.info(
            "node_request_submitted",
            request_id=request.id,
            tracking_id=request.tracking_id,
            node_type=request.node_type.value,
        )
        return SubmissionResult(success=True, request=request)

    async def submit_token_request(self, payload: Mapping[str, Any]) -> SubmissionResult:
        """Public faucet submission: validate, then store."""
        fields, error = clean_token_payload(payload)
        if error:
            SUBMISSIONS.labels(kind="token", outcome="invalid").inc()
            return SubmissionResult(success=False, error=error, kind=FailureKind.VALIDATION)

        async with self.database.session() as db:
            try:
                request = await self._insert_token_request(db, fields)
            except (SQLAlchemyError, RuntimeError) as exc:
                await db.rollback()
                SUBMISSIONS.labels(kind="token", outcome="error").inc()
                logger.error("token_request_store_failed", error=str(exc))
                return SubmissionResult(
                    success=False, error="Could not store request", kind=FailureKind.STORAGE
                )

        SUBMISSIONS.labels(kind="token", outcome="accepted").inc()
        logger.info("token_request_submitted", request_id=request.id, tracking_id=request.tracking_id)
        return SubmissionResult(success=True, request=request)

    # Reads
    async def list_node_requests(
        self, status: Optional[NodeRequestStatus] = None
    ) -> List[NodeRequest]:
        async with self.database.session() as db:
            return await crud.get_node_requests(db, status)

    async def list_token_requests(
        self, status: Optional[TokenRequestStatus] = None
    ) -> List[TokenRequest]:
        async with self.database.session() as db:
            return await crud.get_token_requests(db, status)

    async def get_node_request(self, request_id: int) -> Optional[NodeRequest]:
        async with self.database.session() as db:
            return await crud.get_node_request_by_id(db, request_id)

    async def get_token_request(self, request_id: int) -> Optional[TokenRequest]:
        async with self.database.session() as db:
            return await crud.get_token_request_by_id(db, request_id)

    async def get_node_request_by_tracking_id(self, tracking_id: str) -> Optional[NodeRequest]:
        """Case-insensitive lookup by public tracking id."""
        tracking_id = normalize_tracking_id(tracking_id)
        if not tracking_id:
            return None
        async with self.database.session() as db:
            return await crud.get_node_request_by_tracking_id(db, tracking_id)

    async def get_token_request_by_tracking_id(self, tracking_id: str) -> Optional[TokenRequest]:
        tracking_id = normalize_tracking_id(tracking_id)
        if not tracking_id:
            return None
        async with self.database.session() as db:
            return await crud.get_token_request_by_tracking_id(db, tracking_id)

    async def count_by_status(self) -> Dict[str, Dict[str, int]]:
        """Request counts per status, for the admin overview."""
        async with self.database.session() as db:
            return {
                "node_requests": await crud.count_node_requests_by_status(db),
                "token_requests": await crud.count_token_requests_by_status(db),
            }

    # Admin edits
    async def update_admin_notes(
        self, kind: RequestKind, request_id: int, notes: Optional[str]
    ) -> LedgerResult:
        """Replace the admin notes of a request. Status is left alone."""
        kind = RequestKind(kind)
        getter = (
            crud.get_node_request_by_id if kind == RequestKind.NODE else crud.get_token_request_by_id
        )
        async with self.database.session() as db:
            request = await getter(db, request_id)
            if request is None:
                return LedgerResult(
                    success=False, error="Request not found", kind=FailureKind.NOT_FOUND
                )
            request.admin_notes = (notes or "").strip() or None
            try:
                await db.commit()
            except SQLAlchemyError as exc:
                await db.rollback()
                logger.error("admin_notes_update_failed", kind=kind.value, request_id=request_id, error=str(exc))
                return LedgerResult(
                    success=False, error="Could not update notes", kind=FailureKind.STORAGE
                )

        logger.info("admin_notes_updated", kind=kind.value, request_id=request_id)
        return LedgerResult(success=True, request=request)

    async def _delete(self, kind: RequestKind, request_id: int) -> LedgerResult:
        deleter = crud.delete_node_request if kind == RequestKind.NODE else crud.delete_token_request
        async with self.database.session() as db:
            try:
                deleted = await deleter(db, request_id)
                await db.commit()
            except SQLAlchemyError as exc:
                await db.rollback()
                logger.error("request_delete_failed", kind=kind.value, request_id=request_id, error=str(exc))
                return LedgerResult(
                    success=False, error="Could not delete request", kind=FailureKind.STORAGE
                )
        if not deleted:
            return LedgerResult(success=False, error="Request not found", kind=FailureKind.NOT_FOUND)
        logger.info("request_deleted", kind=kind.value, request_id=request_id)
        return LedgerResult(success=True)

    async def delete_node_request(self, request_id: int) -> LedgerResult:
        return await self._delete(RequestKind.NODE, request_id)

    async def delete_token_request(self, request_id: int) -> LedgerResult:
        return await self._delete(RequestKind.TOKEN, request_id)
