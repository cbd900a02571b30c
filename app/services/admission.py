"""
Admission control for fresh workflow triggers.

Decides whether a trigger runs now, waits in the queue, or is rejected because
the app already has a run in flight. All state is read fresh from the store on
every call; the check-then-write sequence is not atomic, so concurrent callers
may transiently exceed the cap.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Union

from app.integrations.store import StoreClient, eq, in_
from app.models import RUN_STATUS_ACTIVE, RUNS, WORKFLOWS
from app.services.config_service import ConfigService
from app.services.queue_service import QueueService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Proceed:
    active_count: int
    max_concurrent: int


@dataclass(frozen=True)
class Queued:
    position: int
    active_count: int
    max_concurrent: int

    @property
    def message(self) -> str:
        return (
            f"Workflow queued at position {self.position} "
            f"({self.active_count}/{self.max_concurrent} running)"
        )


@dataclass(frozen=True)
class Rejected:
    app_name: str
    workflow_id: str | None
    reason: str = "already_running"


Decision = Union[Proceed, Queued, Rejected]


class AdmissionController:
    def __init__(
        self,
        store: StoreClient,
        config: ConfigService | None = None,
        queue: QueueService | None = None,
    ):
        self.store = store
        self.config = config or ConfigService(store)
        self.queue = queue or QueueService(store)

    async def _active_workflow_ids(self) -> list[str]:
        active_runs = await self.store.select(
            RUNS,
            filters=[eq("status", RUN_STATUS_ACTIVE)],
            columns="workflow_id",
        )
        return sorted({row["workflow_id"] for row in active_runs if row.get("workflow_id")})

    async def active_workflow_for_app(self, app_name: str) -> str | None:
        """Return the workflow id of an active run belonging to app_name, if any."""
        workflow_ids = await self._active_workflow_ids()
        if not workflow_ids:
            return None
        matches = await self.store.select(
            WORKFLOWS,
            filters=[in_("workflow_id", workflow_ids), eq("app_name", app_name)],
            columns="workflow_id",
            limit=1,
        )
        return matches[0]["workflow_id"] if matches else None

    async def active_apps(self) -> set[str]:
        workflow_ids = await self._active_workflow_ids()
        if not workflow_ids:
            return set()
        rows = await self.store.select(
            WORKFLOWS,
            filters=[in_("workflow_id", workflow_ids)],
            columns="app_name",
        )
        return {row["app_name"] for row in rows if row.get("app_name")}

    async def active_count(self) -> int:
        return await self.store.count(RUNS, filters=[eq("status", RUN_STATUS_ACTIVE)])

    async def capacity(self) -> tuple[int, int]:
        """Return (active_count, max_concurrent)."""
        max_concurrent = await self.config.get_max_concurrent()
        active_count = await self.active_count()
        return active_count, max_concurrent

    async def admit(
        self,
        app_name: str,
        payload: dict[str, Any],
        *,
        connection_id: str | None = None,
    ) -> Decision:
        running = await self.active_workflow_for_app(app_name)
        if running is not None:
            logger.info("Rejecting trigger for %s: workflow %s is active", app_name, running)
            return Rejected(app_name=app_name, workflow_id=running)

        active_count, max_concurrent = await self.capacity()
        if active_count >= max_concurrent:
            position = await self.queue.enqueue(app_name, connection_id, payload)
            return Queued(position=position, active_count=active_count, max_concurrent=max_concurrent)

        return Proceed(active_count=active_count, max_concurrent=max_concurrent)
