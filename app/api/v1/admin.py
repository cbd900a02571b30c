from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.cors import allow_preflight
from app.api.dependencies import get_config_service, get_queue_service
from app.schemas.workflow import CancelQueuedRequest, ConfigUpdate
from app.services.config_service import ConfigService
from app.services.queue_service import QueueService

router = APIRouter()


@router.post("/update-config")
async def update_config(
    payload: ConfigUpdate,
    config: ConfigService = Depends(get_config_service),
):
    return await config.set_config(payload.key, payload.value)


@router.post("/queue")
async def list_queue(queue: QueueService = Depends(get_queue_service)):
    entries = await queue.list_entries()
    return {
        "entries": [
            {
                "position": e.get("position"),
                "app_name": e.get("app_name"),
                "connection_id": e.get("connection_id"),
                "created_at": e.get("created_at"),
            }
            for e in entries
        ],
        "count": len(entries),
    }


@router.post("/cancel-queued")
async def cancel_queued(
    payload: CancelQueuedRequest,
    queue: QueueService = Depends(get_queue_service),
):
    entry = await queue.cancel(payload.position)
    return {"success": True, "position": payload.position, "app_name": entry.get("app_name")}


allow_preflight(router)
