############################################################
#
# labchain-directory - LAB Chain Network Directory and Faucet Portal
#
# approval.py: Review state machine for node and token requests
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Approval engine.

The only component that changes request status.

Node requests:  pending -> approved | rejected
Token requests: pending -> approved -> transferred, pending -> rejected

Approving a node request publishes it in the directory. The status change
and the new listing are written in one transaction, so either both exist or
neither does. Notifications are sent after the commit and cannot undo it.
"""

from typing import Any, Awaitable, Callable, Optional

from prometheus_client import Counter
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db import crud
from backend.app.db.models import (
    NodeRequest,
    NodeRequestStatus,
    NodeType,
    RpcEndpointType,
    TokenRequestStatus,
)
from backend.app.db.session import Database
from backend.app.logging_config import get_logger
from backend.app.services.ledger import parse_amount
from backend.app.services.notifier import Notifier
from backend.app.services.results import DecisionResult, EmailResult, FailureKind

logger = get_logger(__name__)

DECISIONS = Counter(
    "labchain_review_decisions_total",
    "Review decisions by request kind and decision",
    ["kind", "decision"],
)
NOTIFICATION_FAILURES = Counter(
    "labchain_notification_failures_total",
    "Decision notifications that could not be delivered",
)


def _not_found() -> DecisionResult:
    return DecisionResult(success=False, error="Request not found", kind=FailureKind.NOT_FOUND)


def _already_decided(request: Any) -> DecisionResult:
    return DecisionResult(
        success=False,
        request=request,
        error=f"Request already {request.status.value}",
        kind=FailureKind.CONFLICT,
    )


def _storage_error() -> DecisionResult:
    return DecisionResult(
        success=False, error="Could not save decision", kind=FailureKind.STORAGE
    )


async def materialize_listing(db: AsyncSession, request: NodeRequest) -> Any:
    """Create the directory row for an approved node request."""
    if request.node_type == NodeType.RPC:
        return await crud.create_rpc_endpoint(
            db,
            name=request.name,
            endpoint=request.endpoint,
            type=RpcEndpointType.COMMUNITY,
            location=request.location,
        )
    if request.node_type == NodeType.BOOTNODE:
        return await crud.create_boot_node(
            db, name=request.name, enode=request.endpoint, location=request.location
        )
    return await crud.create_beacon_node(
        db, name=request.name, enr=request.endpoint, location=request.location
    )


class ApprovalEngine:
    """Moves requests through their review states."""

    def __init__(self, database: Database, notifier: Optional[Notifier] = None):
        self.database = database
        self.notifier = notifier

    async def _notify(
        self, event: str, request_id: int, send: Callable[[], Awaitable[EmailResult]]
    ) -> Optional[EmailResult]:
        """Run a notification; failures are logged and returned, never raised."""
        if self.notifier is None:
            return None
        try:
            result = await send()
        except Exception as exc:
            NOTIFICATION_FAILURES.inc()
            logger.error("notification_failed", notification=event, request_id=request_id, error=str(exc))
            return EmailResult(success=False, error=str(exc))
        if not result.success:
            NOTIFICATION_FAILURES.inc()
            logger.warning(
                "notification_failed", notification=event, request_id=request_id, error=result.error
            )
        return result

    # Node requests
    async def approve_node_request(
        self, request_id: int, admin_notes: Optional[str] = None
    ) -> DecisionResult:
        """Approve a pending node request and publish it in the directory."""
        async with self.database.session() as db:
            try:
                request = await crud.get_node_request_for_update(db, request_id)
                if request is None:
                    return _not_found()
                if request.status != NodeRequestStatus.PENDING:
                    return _already_decided(request)

                request.status = NodeRequestStatus.APPROVED
                if admin_notes:
                    request.admin_notes = admin_notes
                listing = await materialize_listing(db, request)
                await db.commit()
            except SQLAlchemyError as exc:
                await db.rollback()
                logger.error("node_request_approve_failed", request_id=request_id, error=str(exc))
                return _storage_error()

        DECISIONS.labels(kind="node", decision="approved").inc()
        logger.info(
            "node_request_approved",
            request_id=request.id,
            tracking_id=request.tracking_id,
            node_type=request.node_type.value,
            listing_id=listing.id,
        )
        notification = await self._notify(
            "node_request_approved", request.id, lambda: self.notifier.node_request_approved(request)
        )
        return DecisionResult(
            success=True, request=request, listing=listing, notification=notification
        )

    async def reject_node_request(
        self, request_id: int, reason: Optional[str] = None
    ) -> DecisionResult:
        """Reject a pending node request. ``reason`` is kept as the admin notes."""
        reason = (reason or "").strip() or None
        async with self.database.session() as db:
            try:
                request = await crud.get_node_request_for_update(db, request_id)
                if request is None:
                    return _not_found()
                if request.status != NodeRequestStatus.PENDING:
                    return _already_decided(request)

                request.status = NodeRequestStatus.REJECTED
                if reason:
                    request.admin_notes = reason
                await db.commit()
            except SQLAlchemyError as exc:
                await db.rollback()
                logger.error("node_request_reject_failed", request_id=request_id, error=str(exc))
                return _storage_error()

        DECISIONS.labels(kind="node", decision="rejected").inc()
        logger.info("node_request_rejected", request_id=request.id, tracking_id=request.tracking_id)
        notification = await self._notify(
            "node_request_rejected",
            request.id,
            lambda: self.notifier.node_request_rejected(request, reason),
        )
        return DecisionResult(success=True, request=request, notification=notification)

    # Token requests
    async def approve_token_request(
        self, request_id: int, admin_notes: Optional[str] = None
    ) -> DecisionResult:
        async with self.database.session() as db:
            try:
                request = await crud.get_token_request_for_update(db, request_id)
                if request is None:
                    return _not_found()
                if request.status != TokenRequestStatus.PENDING:
                    return _already_decided(request)

                request.status = TokenRequestStatus.APPROVED
                if admin_notes:
                    request.admin_notes = admin_notes
                await db.commit()
            except SQLAlchemyError as exc:
                await db.rollback()
                logger.error("token_request_approve_failed", request_id=request_id, error=str(exc))
                return _storage_error()

        DECISIONS.labels(kind="token", decision="approved").inc()
        logger.info("token_request_approved", request_id=request.id, tracking_id=request.tracking_id)
        notification = await self._notify(
            "token_request_approved", request.id, lambda: self.notifier.token_request_approved(request)
        )
        return DecisionResult(success=True, request=request, notification=notification)

    async def reject_token_request(
        self, request_id: int, reason: Optional[str] = None
    ) -> DecisionResult:
        reason = (reason or "").strip() or None
        async with self.database.session() as db:
            try:
                request = await crud.get_token_request_for_update(db, request_id)
                if request is None:
                    return _not_found()
                if request.status != TokenRequestStatus.PENDING:
                    return _already_decided(request)

                request.status = TokenRequestStatus.REJECTED
                if reason:
                    request.admin_notes = reason
                await db.commit()
            except SQLAlchemyError as exc:
                await db.rollback()
                logger.error("token_request_reject_failed", request_id=request_id, error=str(exc))
                return _storage_error()

        DECISIONS.labels(kind="token", decision="rejected").inc()
        logger.info("token_request_rejected", request_id=request.id, tracking_id=request.tracking_id)
        notification = await self._notify(
            "token_request_rejected",
            request.id,
            lambda: self.notifier.token_request_rejected(request, reason),
        )
        return DecisionResult(success=True, request=request, notification=notification)

    async def mark_token_transferred(
        self, request_id: int, transferred_amount: str
    ) -> DecisionResult:
        """Record that tokens were sent. Only approved requests can be transferred.

        ``transferred_amount`` may differ from the requested amount.
        """
        amount = (str(transferred_amount) if transferred_amount is not None else "").strip()
        if parse_amount(amount) is None:
            return DecisionResult(
                success=False,
                error="Transferred amount must be a positive number",
                kind=FailureKind.VALIDATION,
            )

        async with self.database.session() as db:
            try:
                request = await crud.get_token_request_for_update(db, request_id)
                if request is None:
                    return _not_found()
                if request.status == TokenRequestStatus.PENDING:
                    return DecisionResult(
                        success=False,
                        request=request,
                        error="Request must be approved before it can be marked transferred",
                        kind=FailureKind.CONFLICT,
                    )
                if request.status != TokenRequestStatus.APPROVED:
                    return _already_decided(request)

                request.status = TokenRequestStatus.TRANSFERRED
                request.transferred_amount = amount
                await db.commit()
            except SQLAlchemyError as exc:
                await db.rollback()
                logger.error("token_transfer_record_failed", request_id=request_id, error=str(exc))
                return _storage_error()

        DECISIONS.labels(kind="token", decision="transferred").inc()
        logger.info(
            "token_request_transferred",
            request_id=request.id,
            tracking_id=request.tracking_id,
            transferred_amount=amount,
        )
        notification = await self._notify(
            "token_transferred", request.id, lambda: self.notifier.token_transferred(request)
        )
        return DecisionResult(success=True, request=request, notification=notification)
