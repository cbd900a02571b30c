"""
Health API Routes
"""
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from app.api.dependencies import get_drainer, get_store
from app.config import settings
from app.integrations.store import StoreClient
from app.services.queue_drainer import QueueDrainer

router = APIRouter()


@router.get("/health")
async def health_check(
    store: StoreClient = Depends(get_store),
    drainer: QueueDrainer | None = Depends(get_drainer),
) -> JSONResponse:
    """Application and store health"""
    store_ok = await store.ping()
    return JSONResponse(
        status_code=status.HTTP_200_OK if store_ok else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if store_ok else "degraded",
            "environment": settings.app_env,
            "store": store_ok,
            "queue_drainer": drainer is not None,
        },
    )
