from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from app.config import settings
from app.core.exceptions import UpstreamFailure

logger = logging.getLogger(__name__)


@dataclass
class RunAccepted:
    workflow_id: str
    run_number: int | None
    raw: dict[str, Any]


@dataclass
class DashboardResponse:
    status_code: int
    body: Any
    ok: bool


def _positive_int(value: Any) -> int | None:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


class IntegratorClient:
    """Integrator API client for create-app workflow runs and dashboard data."""

    RUN_PATH = "/workflows/create-app/run"
    DASHBOARD_PATH = "/dashboard/get-data"

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = (base_url or settings.integrator_base_url).rstrip("/")
        self.client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Content-Type": "application/json"},
            timeout=timeout or settings.integrator_timeout_seconds,
        )

    async def run_workflow(
        self,
        payload: dict[str, Any],
        *,
        failure_message: str = "Failed to trigger workflow",
    ) -> RunAccepted:
        """
        Start a create-app run.

        Any transport error, timeout, non-2xx status, unparseable body or missing
        workflow_id raises UpstreamFailure carrying the upstream diagnostics.
        """
        try:
            response = await self.client.post(self.RUN_PATH, json=payload)
        except httpx.TimeoutException as exc:
            logger.error("Integrator run request timed out for %s", payload.get("app_name"))
            raise UpstreamFailure(f"Integrator API timed out: {exc}", message=failure_message) from exc
        except httpx.HTTPError as exc:
            logger.error("Integrator run request failed for %s: %s", payload.get("app_name"), exc)
            raise UpstreamFailure(f"Integrator API request failed: {exc}", message=failure_message) from exc

        try:
            body = response.json()
        except ValueError:
            body = {"raw": response.text}
        logger.info("Integrator API response: %s", json.dumps(body, indent=2, default=str))

        result = body if isinstance(body, dict) else {}
        workflow_id = result.get("workflow_id")
        if not response.is_success or not workflow_id:
            details = result.get("message") or result.get("error") or "No workflow_id returned"
            raise UpstreamFailure(
                str(details),
                api_response=body,
                http_status=response.status_code,
                message=failure_message,
            )

        return RunAccepted(
            workflow_id=str(workflow_id),
            run_number=_positive_int(result.get("run_number")),
            raw=result,
        )

    async def get_dashboard_data(self, workflow_id: str, run_number: Any) -> DashboardResponse:
        """Fetch run details. Non-2xx responses are returned, transport errors raise."""
        try:
            response = await self.client.post(
                self.DASHBOARD_PATH,
                json={"workflow_id": workflow_id, "run_number": run_number},
            )
        except httpx.HTTPError as exc:
            logger.error("Dashboard request failed for %s/%s: %s", workflow_id, run_number, exc)
            raise UpstreamFailure(str(exc), message="Failed to fetch workflow data") from exc

        if not response.is_success:
            return DashboardResponse(status_code=response.status_code, body=response.text, ok=False)
        try:
            body = response.json()
        except ValueError as exc:
            raise UpstreamFailure(
                "Dashboard returned a non-JSON body",
                api_response=response.text,
                http_status=response.status_code,
                message="Failed to fetch workflow data",
            ) from exc
        return DashboardResponse(status_code=response.status_code, body=body, ok=True)

    async def close(self) -> None:
        await self.client.aclose()
