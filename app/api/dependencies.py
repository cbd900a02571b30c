"""Shared API dependencies. Clients live on app.state and are created in the lifespan."""
from __future__ import annotations

from fastapi import Depends, Request

from app.integrations.integrator import IntegratorClient
from app.integrations.store import StoreClient
from app.services.config_service import ConfigService
from app.services.queue_drainer import QueueDrainer
from app.services.queue_service import QueueService
from app.services.run_sequencer import RunSequencer
from app.services.trigger_orchestrator import TriggerOrchestrator


def get_store(request: Request) -> StoreClient:
    return request.app.state.store


def get_integrator(request: Request) -> IntegratorClient:
    return request.app.state.integrator


def get_drainer(request: Request) -> QueueDrainer | None:
    return getattr(request.app.state, "queue_drainer", None)


def get_orchestrator(
    store: StoreClient = Depends(get_store),
    integrator: IntegratorClient = Depends(get_integrator),
) -> TriggerOrchestrator:
    return TriggerOrchestrator(store, integrator)


def get_config_service(store: StoreClient = Depends(get_store)) -> ConfigService:
    return ConfigService(store)


def get_queue_service(store: StoreClient = Depends(get_store)) -> QueueService:
    return QueueService(store)


def get_run_sequencer(store: StoreClient = Depends(get_store)) -> RunSequencer:
    return RunSequencer(store)
