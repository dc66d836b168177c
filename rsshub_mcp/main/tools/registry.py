"""High-level subscription registry.

The JSON document handling lives in ``rsshub_mcp.main.store``.  This module
offers the operations the tools need:

* ``subscribe`` / ``unsubscribe`` – add or remove a saved route.
* ``list_subscriptions`` – everything currently saved.
* ``load`` / ``save`` – whole-collection access for callers that need it.

Every operation reads the full list and, when it changes something, writes the
full list back.  There is no locking between processes; the last writer wins.
"""

from __future__ import annotations

import logging
import secrets
import string
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from rsshub_mcp.main.errors import InvalidArgument
from rsshub_mcp.main.store import Subscription, read_subscriptions, write_subscriptions

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _format_timestamp(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_subscription_id(now: datetime) -> str:
    """Millisecond timestamp plus nine random base-36 characters."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"sub_{int(now.timestamp() * 1000)}_{suffix}"


class SubscriptionStore:
    """File-backed collection of ``Subscription`` records."""

    def __init__(self, path: Path, clock: Callable[[], datetime] = _utcnow) -> None:
        self._path = Path(path)
        self._clock = clock

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> List[Subscription]:
        return read_subscriptions(self._path)

    def save(self, subscriptions: List[Subscription]) -> None:
        write_subscriptions(self._path, subscriptions)

    def list_subscriptions(self) -> List[Subscription]:
        return self.load()

    def subscribe(
        self,
        route: str,
        name: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Subscription, bool, int]:
        """Save *route* unless it is already saved.

        Returns ``(subscription, created, total)`` where *total* is the size of
        the collection after the call.  The duplicate check compares the
        route string exactly; for an existing route the stored record is
        returned untouched and nothing is written.
        """
        if not route:
            raise InvalidArgument("Missing required parameter: route")

        subscriptions = self.load()
        for existing in subscriptions:
            if existing.route == route:
                return existing, False, len(subscriptions)

        now = self._clock()
        subscription = Subscription(
            id=new_subscription_id(now),
            route=route,
            name=name,
            params=dict(params) if params is not None else None,
            created_at=_format_timestamp(now),
        )
        subscriptions.append(subscription)
        self.save(subscriptions)
        logger.info("Added subscription: %s", route)
        return subscription, True, len(subscriptions)

    def unsubscribe(
        self, subscription_id: Optional[str] = None, route: Optional[str] = None
    ) -> Tuple[int, int]:
        """Remove matching subscriptions.

        Returns ``(removed, remaining)``.  When both keys are given only
        ``subscription_id`` is used.
        """
        if not subscription_id and not route:
            raise InvalidArgument("Must provide either 'id' or 'route' parameter")

        subscriptions = self.load()
        if subscription_id:
            kept = [s for s in subscriptions if s.id != subscription_id]
        else:
            kept = [s for s in subscriptions if s.route != route]

        removed = len(subscriptions) - len(kept)
        if removed:
            self.save(kept)
            logger.info("Removed %d subscription(s)", removed)
        return removed, len(kept)
