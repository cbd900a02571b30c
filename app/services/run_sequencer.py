"""
Run numbering and run lifecycle bookkeeping.

A workflow lineage holds numbered runs; at most one of them is active at a time.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from app.core.exceptions import NotFoundError, StoreFailure
from app.integrations.store import Order, StoreClient, eq
from app.models import (
    EXECUTION_STATE_COMPLETED,
    EXECUTION_STATE_PENDING,
    EXECUTION_STATE_SUPERSEDED,
    EXECUTION_STATE_TRIGGER_FAILED,
    RUN_STATUS_ACTIVE,
    RUN_STATUS_COMPLETED,
    RUNS,
)

logger = logging.getLogger(__name__)


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class RunSequencer:
    def __init__(self, store: StoreClient):
        self.store = store

    async def next_run_number(self, workflow_id: str, api_supplied_number: int | None = None) -> int:
        """Prefer the upstream number, else one past the highest recorded run, else 1."""
        if api_supplied_number is not None and api_supplied_number > 0:
            return api_supplied_number

        try:
            rows = await self.store.select(
                RUNS,
                filters=[eq("workflow_id", workflow_id)],
                columns="run_number",
                order=Order("run_number", descending=True),
                limit=1,
            )
        except StoreFailure as exc:
            logger.warning("Run number lookup failed for %s, assuming no prior runs: %s", workflow_id, exc)
            return 1

        if not rows or rows[0].get("run_number") is None:
            return 1
        try:
            return int(rows[0]["run_number"]) + 1
        except (TypeError, ValueError):
            return 1

    async def record_started(self, workflow_id: str, run_number: int) -> dict[str, Any]:
        return await self.store.insert(
            RUNS,
            {
                "workflow_id": workflow_id,
                "run_number": run_number,
                "status": RUN_STATUS_ACTIVE,
                "execution_state": EXECUTION_STATE_PENDING,
                "started_at": utcnow_iso(),
            },
        )

    async def record_trigger_failure(self, workflow_id: str, summary: str) -> dict[str, Any]:
        now = utcnow_iso()
        return await self.store.insert(
            RUNS,
            {
                "workflow_id": workflow_id,
                "run_number": 1,
                "status": RUN_STATUS_COMPLETED,
                "execution_state": EXECUTION_STATE_TRIGGER_FAILED,
                "failure_summary": summary,
                "started_at": now,
                "completed_at": now,
            },
        )

    async def supersede_active(self, workflow_id: str) -> int:
        """Close any still-active run of a workflow before a rerun takes its place."""
        closed = await self.store.update(
            RUNS,
            {
                "status": RUN_STATUS_COMPLETED,
                "execution_state": EXECUTION_STATE_SUPERSEDED,
                "completed_at": utcnow_iso(),
            },
            filters=[eq("workflow_id", workflow_id), eq("status", RUN_STATUS_ACTIVE)],
        )
        if closed:
            logger.info("Superseded %s active run(s) of %s", len(closed), workflow_id)
        return len(closed)

    async def complete_run(
        self,
        workflow_id: str,
        run_number: int | None = None,
        *,
        execution_state: str = EXECUTION_STATE_COMPLETED,
        failure_summary: str | None = None,
    ) -> dict[str, Any]:
        """Mark the active run (or a specific run) of a workflow completed."""
        filters = [eq("workflow_id", workflow_id), eq("status", RUN_STATUS_ACTIVE)]
        if run_number is not None:
            filters.append(eq("run_number", run_number))

        values: dict[str, Any] = {
            "status": RUN_STATUS_COMPLETED,
            "execution_state": execution_state,
            "completed_at": utcnow_iso(),
        }
        if failure_summary:
            values["failure_summary"] = failure_summary

        updated = await self.store.update(RUNS, values, filters=filters)
        if not updated:
            raise NotFoundError(f"No active run for workflow {workflow_id}")
        logger.info(
            "Run %s #%s completed with state %s",
            workflow_id,
            updated[0].get("run_number"),
            execution_state,
        )
        return updated[0]
