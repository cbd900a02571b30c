from __future__ import annotations

import json
import logging
from typing import Any, Sequence

import httpx

from app.config import settings
from app.core.exceptions import StoreConflict, StoreFailure
from app.integrations.store import Filter, Order, StoreClient

logger = logging.getLogger(__name__)


def _format_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def _format_filter(flt: Filter) -> str:
    if flt.op == "in":
        quoted = ",".join(json.dumps(_format_scalar(v)) for v in flt.value)
        return f"in.({quoted})"
    return f"{flt.op}.{_format_scalar(flt.value)}"


def build_params(
    filters: Sequence[Filter] = (),
    *,
    columns: str | None = None,
    order: Order | None = None,
    limit: int | None = None,
) -> list[tuple[str, str]]:
    """Translate filters/order/limit into PostgREST query parameters."""
    params: list[tuple[str, str]] = []
    if columns:
        params.append(("select", columns))
    for flt in filters:
        params.append((flt.column, _format_filter(flt)))
    if order is not None:
        params.append(("order", f"{order.column}.{'desc' if order.descending else 'asc'}"))
    if limit is not None:
        params.append(("limit", str(limit)))
    return params


class SupabaseStore(StoreClient):
    """Store client for Supabase tables over the PostgREST API."""

    def __init__(
        self,
        base_url: str | None = None,
        service_key: str | None = None,
        *,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        key = service_key if service_key is not None else settings.supabase_service_key.get_secret_value()
        self.base_url = (base_url or settings.supabase_rest_url).rstrip("/")
        self.client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "apikey": key,
                "Authorization": f"Bearer {key}",
                "Content-Type": "application/json",
            },
            timeout=timeout or settings.store_timeout_seconds,
        )

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: list[tuple[str, str]] | None = None,
        json_body: Any = None,
        prefer: str | None = None,
    ) -> httpx.Response:
        headers = {"Prefer": prefer} if prefer else None
        try:
            response = await self.client.request(
                method,
                f"/{table}",
                params=params,
                json=json_body,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            logger.error("Store %s %s failed: %s", method, table, exc)
            raise StoreFailure(f"{method} {table} failed", details=str(exc)) from exc

        if response.status_code == 409:
            raise StoreConflict(f"{method} {table} conflicted", details=response.text)
        if not response.is_success:
            logger.error("Store %s %s failed: %s %s", method, table, response.status_code, response.text)
            raise StoreFailure(f"{method} {table} failed", details=response.text)
        return response

    @staticmethod
    def _rows(response: httpx.Response) -> list[dict[str, Any]]:
        if not response.content:
            return []
        try:
            data = response.json()
        except ValueError:
            return []
        return data if isinstance(data, list) else [data]

    async def select(
        self,
        table: str,
        *,
        filters: Sequence[Filter] = (),
        columns: str = "*",
        order: Order | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        response = await self._request(
            "GET",
            table,
            params=build_params(filters, columns=columns, order=order, limit=limit),
        )
        return self._rows(response)

    async def count(self, table: str, *, filters: Sequence[Filter] = ()) -> int:
        response = await self._request(
            "HEAD",
            table,
            params=build_params(filters, columns="*"),
            prefer="count=exact",
        )
        content_range = response.headers.get("content-range", "")
        total = content_range.rpartition("/")[2]
        if not total.isdigit():
            raise StoreFailure(f"COUNT {table} failed", details=f"Unexpected Content-Range: {content_range!r}")
        return int(total)

    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        response = await self._request("POST", table, json_body=row, prefer="return=representation")
        rows = self._rows(response)
        return rows[0] if rows else dict(row)

    async def update(
        self,
        table: str,
        values: dict[str, Any],
        *,
        filters: Sequence[Filter],
    ) -> list[dict[str, Any]]:
        if not filters:
            raise ValueError("Refusing to update without filters")
        response = await self._request(
            "PATCH",
            table,
            params=build_params(filters),
            json_body=values,
            prefer="return=representation",
        )
        return self._rows(response)

    async def delete(self, table: str, *, filters: Sequence[Filter]) -> list[dict[str, Any]]:
        if not filters:
            raise ValueError("Refusing to delete without filters")
        response = await self._request(
            "DELETE",
            table,
            params=build_params(filters),
            prefer="return=representation",
        )
        return self._rows(response)

    async def ping(self) -> bool:
        try:
            response = await self.client.get("/")
        except httpx.HTTPError:
            return False
        return response.is_success

    async def close(self) -> None:
        await self.client.aclose()
