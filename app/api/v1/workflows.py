from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends
from fastapi.responses import JSONResponse

from app.api.cors import allow_preflight
from app.api.dependencies import get_drainer, get_integrator, get_orchestrator, get_run_sequencer
from app.core.exceptions import ConflictError
from app.integrations.integrator import IntegratorClient
from app.schemas.workflow import CompleteRunRequest, DetailRequest, RetryRequest, TriggerRequest
from app.services.admission import Queued, Rejected
from app.services.queue_drainer import QueueDrainer, drain_queue
from app.services.run_sequencer import RunSequencer
from app.services.trigger_orchestrator import TriggerFailed, TriggerOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/trigger")
async def trigger_workflow(
    payload: TriggerRequest,
    orchestrator: TriggerOrchestrator = Depends(get_orchestrator),
):
    outcome = await orchestrator.trigger(
        payload.app_name,
        connection_id=payload.connection_id,
        environment=payload.environment,
        finder_instructions=payload.finder_instructions,
        test_all_actions=payload.test_all_actions,
    )
    if isinstance(outcome, Rejected):
        raise ConflictError(outcome.app_name, outcome.workflow_id)
    if isinstance(outcome, Queued):
        return {"queued": True, "position": outcome.position, "message": outcome.message}
    if isinstance(outcome, TriggerFailed):
        raise outcome.error
    return outcome.to_response()


@router.post("/retry")
async def retry_workflow(
    payload: RetryRequest,
    orchestrator: TriggerOrchestrator = Depends(get_orchestrator),
):
    outcome = await orchestrator.retry(
        payload.app_name,
        payload.workflow_id,
        connection_id=payload.connection_id,
        environment=payload.environment,
    )
    return outcome.to_response()


@router.post("/get-detail")
async def workflow_detail(
    payload: DetailRequest,
    integrator: IntegratorClient = Depends(get_integrator),
):
    result = await integrator.get_dashboard_data(payload.workflow_id, payload.run_number)
    if not result.ok:
        return JSONResponse(
            status_code=result.status_code,
            content={"error": "Failed to fetch workflow data", "details": result.body},
        )
    return JSONResponse(status_code=200, content=result.body)


@router.post("/complete-run")
async def complete_run(
    payload: CompleteRunRequest,
    background_tasks: BackgroundTasks,
    sequencer: RunSequencer = Depends(get_run_sequencer),
    orchestrator: TriggerOrchestrator = Depends(get_orchestrator),
    drainer: QueueDrainer | None = Depends(get_drainer),
):
    run = await sequencer.complete_run(
        payload.workflow_id,
        payload.run_number,
        execution_state=payload.execution_state,
        failure_summary=payload.failure_summary,
    )
    background_tasks.add_task(_drain_after_completion, orchestrator, drainer)
    return {
        "success": True,
        "workflow_id": payload.workflow_id,
        "run_number": run.get("run_number", payload.run_number),
    }


async def _drain_after_completion(orchestrator: TriggerOrchestrator, drainer: QueueDrainer | None) -> None:
    try:
        if drainer is not None:
            await drainer.drain_once()
        else:
            await drain_queue(orchestrator)
    except Exception as exc:
        logger.exception("Queue drain after run completion failed: %s", exc)


allow_preflight(router)
