"""
Trigger and retry create-app workflows against the Integrator API.

Fresh triggers go through admission control; retries are operator actions and
bypass it. Successful runs are recorded as an active PENDING run; failed
triggers are recorded under a `fail_` sentinel id so they show up on the
dashboard.
"""
from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from typing import Any, Union

from app.core.exceptions import StoreConflict, StoreFailure, UpstreamFailure
from app.integrations.integrator import IntegratorClient
from app.integrations.store import StoreClient
from app.models import WORKFLOWS
from app.services.admission import AdmissionController, Queued, Rejected
from app.services.run_payload import build_run_payload, normalize_environment
from app.services.run_sequencer import RunSequencer

logger = logging.getLogger(__name__)

FAILURE_ID_PREFIX = "fail_"
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def failure_workflow_id(now_ms: int | None = None) -> str:
    """
    Synthesize an id for a trigger the Integrator never accepted.

    The millisecond timestamp keeps ids roughly time ordered; the random suffix
    keeps failures recorded in the same millisecond apart.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{FAILURE_ID_PREFIX}{_to_base36(now_ms)}_{secrets.token_hex(4)}"


def is_failure_id(workflow_id: str) -> bool:
    return workflow_id.startswith(FAILURE_ID_PREFIX)


@dataclass(frozen=True)
class TriggerSucceeded:
    workflow_id: str
    run_number: int
    app_name: str

    def to_response(self) -> dict[str, Any]:
        return {
            "success": True,
            "workflow_id": self.workflow_id,
            "run_number": self.run_number,
            "app_name": self.app_name,
        }


@dataclass(frozen=True)
class TriggerFailed:
    app_name: str
    error: UpstreamFailure
    failure_id: str

    @property
    def details(self) -> str:
        return str(self.error.details)


TriggerOutcome = Union[TriggerSucceeded, TriggerFailed, Queued, Rejected]


class TriggerOrchestrator:
    def __init__(
        self,
        store: StoreClient,
        integrator: IntegratorClient,
        *,
        admission: AdmissionController | None = None,
        sequencer: RunSequencer | None = None,
    ):
        self.store = store
        self.integrator = integrator
        self.admission = admission or AdmissionController(store)
        self.sequencer = sequencer or RunSequencer(store)

    async def trigger(
        self,
        app_name: str,
        *,
        connection_id: str | None = None,
        environment: str | None = None,
        finder_instructions: str | None = None,
        test_all_actions: bool = False,
    ) -> TriggerOutcome:
        env = normalize_environment(environment)
        payload = build_run_payload(
            app_name,
            env,
            connection_id=connection_id,
            finder_instructions=finder_instructions,
            test_all_actions=test_all_actions,
        )

        decision = await self.admission.admit(app_name, payload, connection_id=connection_id)
        if isinstance(decision, (Rejected, Queued)):
            return decision

        logger.info("Triggering create-app workflow for: %s", app_name)
        return await self.dispatch(app_name, payload, connection_id=connection_id, environment=env)

    async def dispatch(
        self,
        app_name: str,
        payload: dict[str, Any],
        *,
        connection_id: str | None = None,
        environment: str | None = None,
    ) -> TriggerSucceeded | TriggerFailed:
        """Send a built payload to the Integrator and record the result."""
        env = normalize_environment(environment or payload.get("env"))
        try:
            accepted = await self.integrator.run_workflow(payload)
        except UpstreamFailure as exc:
            failure_id = failure_workflow_id()
            await self._record_trigger_failure(failure_id, app_name, connection_id, env, str(exc.details))
            return TriggerFailed(app_name=app_name, error=exc, failure_id=failure_id)

        await self._insert_workflow(accepted.workflow_id, app_name, connection_id, env)
        run_number = await self.sequencer.next_run_number(accepted.workflow_id, accepted.run_number)
        await self.sequencer.record_started(accepted.workflow_id, run_number)
        return TriggerSucceeded(workflow_id=accepted.workflow_id, run_number=run_number, app_name=app_name)

    async def retry(
        self,
        app_name: str,
        prior_workflow_id: str,
        *,
        connection_id: str | None = None,
        environment: str | None = None,
    ) -> TriggerSucceeded:
        """
        Rerun a previous workflow. Raises UpstreamFailure when the Integrator refuses.

        A failure sentinel was never known to the Integrator, so retrying one
        starts a fresh workflow instead of continuing it.
        """
        env = normalize_environment(environment)
        previous_workflow_id = None if is_failure_id(prior_workflow_id) else prior_workflow_id
        payload = build_run_payload(
            app_name,
            env,
            connection_id=connection_id,
            previous_workflow_id=previous_workflow_id,
        )
        logger.info("Retrying create-app workflow %s for %s", prior_workflow_id, app_name)

        accepted = await self.integrator.run_workflow(payload, failure_message="Failed to trigger rerun")

        if accepted.workflow_id != prior_workflow_id:
            await self._insert_workflow(accepted.workflow_id, app_name, connection_id, env)

        run_number = await self.sequencer.next_run_number(accepted.workflow_id, accepted.run_number)
        await self.sequencer.supersede_active(accepted.workflow_id)
        await self.sequencer.record_started(accepted.workflow_id, run_number)
        return TriggerSucceeded(workflow_id=accepted.workflow_id, run_number=run_number, app_name=app_name)

    async def _insert_workflow(
        self,
        workflow_id: str,
        app_name: str,
        connection_id: str | None,
        environment: str,
    ) -> None:
        try:
            await self.store.insert(
                WORKFLOWS,
                {
                    "workflow_id": workflow_id,
                    "app_name": app_name,
                    "connection_id": connection_id or None,
                    "environment": environment,
                },
            )
        except StoreConflict:
            logger.info("Workflow %s already recorded", workflow_id)

    async def _record_trigger_failure(
        self,
        failure_id: str,
        app_name: str,
        connection_id: str | None,
        environment: str,
        summary: str,
    ) -> None:
        try:
            await self.store.insert(
                WORKFLOWS,
                {
                    "workflow_id": failure_id,
                    "app_name": app_name,
                    "connection_id": connection_id or None,
                    "environment": environment,
                },
            )
            await self.sequencer.record_trigger_failure(failure_id, summary)
        except StoreFailure as exc:
            logger.error("Failed to store trigger failure for %s: %s", app_name, exc.details or exc)
