"""
Plan cache contract: keyed by (user, profile version).

Payloads are stored with camelCase keys; snake_case entries still decode.
A new profile version means a new key, so retaking the questionnaire
invalidates the old plan without an explicit delete. Entries written before
plan28 existed are read as misses; unreadable entries are dropped.
"""

import json
import logging
import time
from typing import Callable, Optional, Protocol

from app.schemas import GeneratedPlan

logger = logging.getLogger(__name__)


class PlanCache(Protocol):
    async def get(self, user_id: str, profile_version: int) -> Optional[GeneratedPlan]:
        ...

    async def set(self, user_id: str, profile_version: int, plan: GeneratedPlan) -> None:
        ...

    async def delete(self, user_id: str, profile_version: int) -> None:
        ...


def plan_cache_key(user_id: str, profile_version: int) -> str:
    return f"plan:{user_id}:{profile_version}"


def encode_plan(plan: GeneratedPlan) -> str:
    return json.dumps(plan.model_dump(mode="json", by_alias=True), ensure_ascii=False)


def decode_plan(raw: str, key: str) -> Optional[GeneratedPlan]:
    """Parse a cached payload. None for entries without plan28; ValueError if unreadable."""
    payload = json.loads(raw)
    if not isinstance(payload, dict):
        raise ValueError(f"Cached plan {key} is not an object")
    if not payload.get("plan28"):
        logger.info(f"Cached plan {key} has no plan28, treating as a miss")
        return None
    return GeneratedPlan.model_validate(payload)


class MemoryPlanCache:
    """Process-local cache with per-entry TTL."""

    def __init__(self, ttl_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: dict[str, tuple[float, str]] = {}

    async def get(self, user_id: str, profile_version: int) -> Optional[GeneratedPlan]:
        key = plan_cache_key(user_id, profile_version)
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, raw = entry
        if self.clock() >= expires_at:
            del self._entries[key]
            return None
        try:
            return decode_plan(raw, key)
        except ValueError as e:
            logger.warning(f"Dropping unreadable cached plan {key}: {e}")
            del self._entries[key]
            return None

    async def set(self, user_id: str, profile_version: int, plan: GeneratedPlan) -> None:
        key = plan_cache_key(user_id, profile_version)
        self._entries[key] = (self.clock() + self.ttl_seconds, encode_plan(plan))

    async def delete(self, user_id: str, profile_version: int) -> None:
        self._entries.pop(plan_cache_key(user_id, profile_version), None)
