"""Read-through TTL cache for the staff role flag"""

from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Dict, Optional
import time

import structlog

from bookflow.config import settings

logger = structlog.get_logger()

CONFIDENCE_CACHED = "cached"
CONFIDENCE_VERIFIED = "verified"


@dataclass(frozen=True)
class CachedRole:
    user_id: str
    role: Optional[str]
    is_staff: bool
    confidence: str
    fetched_at: float


class RoleCache:
    """
    Caches the is-staff flag per user.

    ``confidence`` tells callers whether a value was just fetched through the
    loader ("verified") or served from memory ("cached"); anything gating a
    privileged action should ``revalidate()`` first.
    """

    def __init__(
        self,
        loader: Callable[[str], Awaitable[Any]],
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._loader = loader
        self._ttl = settings.role_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CachedRole] = {}

    async def _load(self, user_id: str) -> CachedRole:
        value = await self._loader(user_id)
        role = getattr(value, "role", None)
        entry = CachedRole(
            user_id=user_id,
            role=getattr(role, "value", role),
            is_staff=bool(getattr(value, "is_staff", False)),
            confidence=CONFIDENCE_VERIFIED,
            fetched_at=self._clock(),
        )
        self._entries[user_id] = entry
        logger.debug("Role loaded", user_id=user_id, is_staff=entry.is_staff)
        return entry

    async def get(self, user_id: str) -> CachedRole:
        user_id = str(user_id)
        entry = self._entries.get(user_id)
        if entry is not None and self._clock() - entry.fetched_at < self._ttl:
            return replace(entry, confidence=CONFIDENCE_CACHED)
        return await self._load(user_id)

    async def revalidate(self, user_id: str) -> CachedRole:
        return await self._load(str(user_id))

    def invalidate(self, user_id: Optional[str] = None) -> None:
        if user_id is None:
            self._entries.clear()
        else:
            self._entries.pop(str(user_id), None)
