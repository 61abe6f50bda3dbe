from __future__ import annotations

from fastapi import APIRouter, Request

from identity_lifecycle.repositories.redis_client import redis_client
from identity_lifecycle.utils.response import success

router = APIRouter()


@router.get("/health")
async def health(request: Request) -> dict:
    scheduler = getattr(request.app.state, "reconciliation_scheduler", None)
    return success(
        {
            "ok": True,
            "eventStream": await redis_client.is_healthy(),
            "reconciliationScheduler": scheduler is not None and scheduler.scheduled,
        },
        message="healthy",
    )
