"""Time-boxed in-memory cache of the route catalog."""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, List, Optional, Tuple

from rsshub_mcp.main.errors import UpstreamUnavailable
from rsshub_mcp.main.tools.catalog import RouteRecord

logger = logging.getLogger(__name__)

CACHE_TTL = 24 * 60 * 60


class RouteCache:
    """Memoises the result of *fetch* for ``ttl`` seconds.

    A refresh that fails falls back to the previous snapshot, however old.
    Only when there is no snapshot at all does the failure reach the caller.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[List[RouteRecord]]],
        clock: Callable[[], float] = time.time,
        ttl: float = CACHE_TTL,
    ) -> None:
        self._fetch = fetch
        self._clock = clock
        self._ttl = ttl
        # (routes, fetched_at); replaced as one value so readers never see a
        # list from one fetch paired with the timestamp of another.
        self._snapshot: Optional[Tuple[Tuple[RouteRecord, ...], float]] = None

    @property
    def age(self) -> Optional[float]:
        if self._snapshot is None:
            return None
        return self._clock() - self._snapshot[1]

    def is_fresh(self) -> bool:
        age = self.age
        return age is not None and age < self._ttl

    def invalidate(self) -> None:
        self._snapshot = None

    async def get_routes(self) -> List[RouteRecord]:
        snapshot = self._snapshot
        if snapshot is not None and self._clock() - snapshot[1] < self._ttl:
            return list(snapshot[0])

        try:
            routes = await self._fetch()
        except UpstreamUnavailable as exc:
            if snapshot is None:
                raise
            logger.warning("Failed to fetch routes, using cached data: %s", exc)
            return list(snapshot[0])

        self._snapshot = (tuple(routes), self._clock())
        return list(routes)
