from __future__ import annotations

import logging
from typing import Any

from app.config import settings
from app.core.exceptions import StoreFailure, UnknownConfigKey, ValidationError
from app.integrations.store import StoreClient, eq
from app.models import CONFIG, CONFIG_MAX_CONCURRENT

logger = logging.getLogger(__name__)

ALLOWED_KEYS = frozenset({CONFIG_MAX_CONCURRENT})


def _coerce_max_concurrent(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    if isinstance(value, float) and value != number:
        return None
    return number if number > 0 else None


class ConfigService:
    def __init__(self, store: StoreClient, default_max_concurrent: int | None = None):
        self.store = store
        self.default_max_concurrent = default_max_concurrent or settings.default_max_concurrent

    async def get_max_concurrent(self) -> int:
        """Read the concurrency cap, falling back to the default when missing or invalid."""
        try:
            rows = await self.store.select(CONFIG, filters=[eq("key", CONFIG_MAX_CONCURRENT)], limit=1)
        except StoreFailure as exc:
            logger.warning(
                "Could not read %s, using default %s: %s",
                CONFIG_MAX_CONCURRENT,
                self.default_max_concurrent,
                exc,
            )
            return self.default_max_concurrent
        if not rows:
            return self.default_max_concurrent
        value = _coerce_max_concurrent(rows[0].get("value"))
        if value is None:
            logger.warning(
                "Invalid %s value %r, using default %s",
                CONFIG_MAX_CONCURRENT,
                rows[0].get("value"),
                self.default_max_concurrent,
            )
            return self.default_max_concurrent
        return value

    async def set_config(self, key: str, value: Any) -> dict[str, Any]:
        """Update an existing config row. Only allow-listed keys are accepted."""
        if key not in ALLOWED_KEYS:
            raise UnknownConfigKey(key)

        if key == CONFIG_MAX_CONCURRENT:
            number = _coerce_max_concurrent(value)
            if number is None:
                raise ValidationError(f"{CONFIG_MAX_CONCURRENT} must be a positive integer")
            value = number

        try:
            updated = await self.store.update(CONFIG, {"value": value}, filters=[eq("key", key)])
        except StoreFailure as exc:
            raise StoreFailure("Failed to update config", details=exc.details) from exc
        if not updated:
            raise StoreFailure("Failed to update config", details=f"Config key {key} is not seeded")

        logger.info("Config %s set to %r", key, value)
        return {"success": True}
