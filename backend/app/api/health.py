############################################################
#
# labchain-directory - LAB Chain Network Directory and Faucet Portal
#
# health.py: Health check and Prometheus metrics endpoints
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Health check and metrics endpoints."""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, Gauge, generate_latest
from sqlalchemy.exc import SQLAlchemyError

from backend.app.api.auth import get_db_handle, get_ledger
from backend.app.db.session import Database
from backend.app.logging_config import get_logger
from backend.app.services.ledger import RequestLedger

logger = get_logger(__name__)
router = APIRouter(tags=["health"])

# Prometheus metrics
PENDING_REQUESTS = Gauge(
    "labchain_pending_requests",
    "Requests waiting for review",
    ["kind"],
)


@router.get("/healthz")
async def liveness_probe() -> Dict[str, str]:
    """
    Liveness probe - checks if the application is running.

    Returns 200 if the application is alive.
    """
    return {"status": "alive", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/readyz")
async def readiness_probe(
    response: Response,
    database: Database = Depends(get_db_handle),
) -> Dict[str, Any]:
    """
    Readiness probe - checks if the application is ready to serve traffic.

    Returns 503 while the database is unreachable.
    """
    checks = {"database": await database.ping()}
    all_ready = all(checks.values())
    if not all_ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return {
        "status": "ready" if all_ready else "not_ready",
        "checks": checks,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/metrics")
async def prometheus_metrics(ledger: RequestLedger = Depends(get_ledger)) -> Response:
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format.
    """
    try:
        counts = await ledger.count_by_status()
        PENDING_REQUESTS.labels(kind="node").set(counts["node_requests"]["pending"])
        PENDING_REQUESTS.labels(kind="token").set(counts["token_requests"]["pending"])
    except SQLAlchemyError as exc:
        logger.warning("metrics_refresh_failed", error=str(exc))

    metrics = generate_latest()
    return Response(content=metrics, media_type=CONTENT_TYPE_LATEST)
