"""
Background promotion of queued triggers.

Polls the store on an interval and also runs on demand after a run completes.
Each pass fills free capacity from the head of the queue, skipping apps that
already have an active run. A pass ends at the first trigger the Integrator
refuses; that entry is put back where it was so an outage cannot empty the
queue.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable

from app.services.admission import AdmissionController
from app.services.queue_service import QueueService
from app.services.trigger_orchestrator import TriggerFailed, TriggerOrchestrator, TriggerSucceeded

logger = logging.getLogger(__name__)


class QueueDrainer:
    """Promotes queued entries into runs when capacity frees up."""

    def __init__(self, orchestrator_factory: Callable[[], TriggerOrchestrator], poll_seconds: int = 30):
        self.orchestrator_factory = orchestrator_factory
        self.poll_seconds = poll_seconds
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._drain_lock = asyncio.Lock()

    def start(self) -> None:
        """Start drain loop as background task."""
        if self._task and not self._task.done():
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop())
        logger.info("QueueDrainer started")

    async def stop(self) -> None:
        """Stop drain loop and wait for completion."""
        self._stop_event.set()
        if self._task:
            await self._task
        logger.info("QueueDrainer stopped")

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.drain_once()
            except Exception as exc:
                logger.exception("QueueDrainer tick failed: %s", exc)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_seconds)
            except asyncio.TimeoutError:
                pass

    async def drain_once(self) -> list[TriggerSucceeded | TriggerFailed]:
        """Promote queued entries while capacity allows, stopping at the first failed trigger."""
        async with self._drain_lock:
            orchestrator = self.orchestrator_factory()
            return await drain_queue(orchestrator)


async def drain_queue(orchestrator: TriggerOrchestrator) -> list[TriggerSucceeded | TriggerFailed]:
    admission: AdmissionController = orchestrator.admission
    queue: QueueService = admission.queue
    outcomes: list[TriggerSucceeded | TriggerFailed] = []

    while True:
        active_count, max_concurrent = await admission.capacity()
        if active_count >= max_concurrent:
            break

        entry = await queue.claim_next(skip_apps=await admission.active_apps())
        if entry is None:
            break

        app_name = entry["app_name"]
        payload = entry.get("payload") or {}
        logger.info(
            "Promoting queued workflow for %s from position %s (%s/%s running)",
            app_name,
            entry.get("position"),
            active_count,
            max_concurrent,
        )
        outcome = await orchestrator.dispatch(
            app_name,
            payload,
            connection_id=entry.get("connection_id"),
            environment=payload.get("env"),
        )
        outcomes.append(outcome)
        if isinstance(outcome, TriggerFailed):
            # Keep the entry at the head of the queue and wait for the next pass.
            await queue.requeue(entry)
            logger.error(
                "Queued workflow for %s failed to trigger, back at position %s: %s",
                app_name,
                entry.get("position"),
                outcome.details,
            )
            break

    return outcomes
