"""
Metrics API Routes
==================
Prometheus metrics endpoint for observability.
"""

import logging

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

logger = logging.getLogger(__name__)

# No /api prefix since this is a standard Prometheus endpoint
router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics():
    """
    Prometheus scrape target.

    Exposes scan queue depth and durations, agent executions and action
    errors, and backup operations (see devconsole.metrics).
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
