"""
Queue API: enqueue links, drain the queues, inspect status and rows.

Protected by the X-Internal-Api-Key header (INTERNAL_API_KEY setting).
"""

import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from pydantic import BaseModel, Field

from app.service import QueueService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/queue", tags=["queue"])


class LinkIn(BaseModel):
    owner: str = Field(..., min_length=1)
    row_id: str = Field(..., min_length=1)
    url: str


class EnqueueRequest(BaseModel):
    links: List[LinkIn]
    drain: bool = False


def get_queue_service(request: Request) -> QueueService:
    service = getattr(request.app.state, "queue_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Queue service not initialized")
    return service


def verify_internal_api_key(
    x_internal_api_key: Optional[str] = Header(None),
    service: QueueService = Depends(get_queue_service)
):
    """Verify internal API key."""
    expected = service.settings.internal_api_key
    if not expected:
        raise HTTPException(
            status_code=503,
            detail="Internal API not configured (INTERNAL_API_KEY not set)"
        )

    if not x_internal_api_key or x_internal_api_key != expected:
        raise HTTPException(
            status_code=401,
            detail="Invalid or missing internal API key"
        )

    return True


@router.post("/links")
async def enqueue_links(
    body: EnqueueRequest,
    service: QueueService = Depends(get_queue_service),
    _: bool = Depends(verify_internal_api_key)
):
    """
    Queue links for parsing (idempotent per owner/row).

    With `drain=true` the queues are drained right away, like an edit trigger.
    """
    queued = []
    skipped = []
    for link in body.links:
        if service.enqueue_link(link.owner, link.row_id, link.url):
            queued.append({"owner": link.owner, "row_id": link.row_id})
        else:
            skipped.append({"owner": link.owner, "row_id": link.row_id})

    result = {"queued": queued, "skipped": skipped}
    if body.drain and queued:
        report = await service.drain()
        result["drain"] = report.to_dict()
    return result


@router.post("/drain")
async def drain_queues(
    budget_seconds: Optional[float] = Query(None, gt=0),
    service: QueueService = Depends(get_queue_service),
    _: bool = Depends(verify_internal_api_key)
):
    """Drain both queues until empty or out of budget."""
    report = await service.drain(budget_seconds)
    return report.to_dict()


@router.get("/status")
async def queue_status(
    service: QueueService = Depends(get_queue_service),
    _: bool = Depends(verify_internal_api_key)
):
    return service.status()


@router.get("/rows/{owner}/{row_id}")
async def get_row(
    owner: str,
    row_id: str,
    service: QueueService = Depends(get_queue_service),
    _: bool = Depends(verify_internal_api_key)
):
    row = service.rows.get_row(owner, row_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Row not found")
    return {"owner": owner, "row_id": row_id, **row}
