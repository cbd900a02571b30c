from __future__ import annotations

import logging
from typing import Any, Iterable

from app.core.exceptions import NotFoundError, StoreFailure
from app.integrations.store import Order, StoreClient, eq
from app.models import QUEUE

logger = logging.getLogger(__name__)

REQUEUED_COLUMNS = ("payload", "app_name", "connection_id", "position", "created_at")


class QueueService:
    """FIFO queue of deferred trigger requests, ordered by position."""

    def __init__(self, store: StoreClient):
        self.store = store

    async def enqueue(self, app_name: str, connection_id: str | None, payload: dict[str, Any]) -> int:
        """
        Persist a run request at the tail of the queue and return its position.

        The position comes from the table's identity sequence, so it is never
        handed out twice, even after the entry holding it is cancelled or promoted.
        """
        row = await self.store.insert(
            QUEUE,
            {
                "payload": payload,
                "app_name": app_name,
                "connection_id": connection_id or None,
            },
        )
        if row.get("position") is None:
            raise StoreFailure("Queue insert returned no position", details=row)
        position = int(row["position"])
        logger.info("Queued %s at position %s", app_name, position)
        return position

    async def list_entries(self) -> list[dict[str, Any]]:
        return await self.store.select(QUEUE, order=Order("position"))

    async def claim_next(self, skip_apps: Iterable[str] = ()) -> dict[str, Any] | None:
        """
        Remove and return the lowest-position entry whose app is not in skip_apps.

        The delete is the claim: when it removes nothing, another drainer got the
        entry first and the next candidate is tried.
        """
        skipped = set(skip_apps)
        for entry in await self.list_entries():
            if entry.get("app_name") in skipped:
                continue
            deleted = await self.store.delete(QUEUE, filters=[eq("position", entry["position"])])
            if deleted:
                return deleted[0]
            logger.info("Queue entry at position %s was claimed elsewhere", entry["position"])
        return None

    async def requeue(self, entry: dict[str, Any]) -> int:
        """Put a claimed entry back at the position it was claimed from."""
        row = {column: entry[column] for column in REQUEUED_COLUMNS if entry.get(column) is not None}
        await self.store.insert(QUEUE, row)
        logger.info("Requeued %s at position %s", entry.get("app_name"), entry["position"])
        return int(entry["position"])

    async def cancel(self, position: int) -> dict[str, Any]:
        deleted = await self.store.delete(QUEUE, filters=[eq("position", position)])
        if not deleted:
            raise NotFoundError(f"No queued workflow at position {position}")
        logger.info("Cancelled queued workflow %s at position %s", deleted[0].get("app_name"), position)
        return deleted[0]
