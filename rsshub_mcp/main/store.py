"""File utilities for the subscription list.

The whole subscription set lives in a single pretty-printed JSON document.
This module owns reading and writing that document; the subscribe/unsubscribe
logic sits in ``rsshub_mcp.main.tools.registry`` on top of it.

Writes go to a temporary file in the same directory which then replaces the
target with ``os.replace``, so a crash mid-write leaves the previous list in
place instead of a truncated file.
"""

from __future__ import annotations

import json
import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, TextIO

from rsshub_mcp.main.errors import StoreCorrupt, StoreIOError

# Keys written for every subscription, in document order.
_KNOWN_KEYS = ("id", "route", "name", "params", "createdAt")


@dataclass
class Subscription:
    id: str
    route: str
    name: Optional[str] = None
    params: Optional[Dict[str, Any]] = None
    created_at: str = ""
    # Keys found on disk that this version does not know about; kept so a
    # load/save cycle does not drop them.
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Serialise using the on-disk key names; unset optionals are omitted."""
        data: Dict[str, Any] = {"id": self.id, "route": self.route}
        if self.name is not None:
            data["name"] = self.name
        if self.params is not None:
            data["params"] = self.params
        data["createdAt"] = self.created_at
        data.update(self.extra)
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "Subscription":
        if not isinstance(data, dict):
            raise StoreCorrupt(f"Subscription entry is not an object: {data!r}")
        sub_id = data.get("id")
        route = data.get("route")
        if not isinstance(sub_id, str) or not isinstance(route, str):
            raise StoreCorrupt(f"Subscription entry needs string 'id' and 'route': {data!r}")
        params = data.get("params")
        if params is not None and not isinstance(params, dict):
            raise StoreCorrupt(f"Subscription {sub_id} has non-object 'params'")
        return cls(
            id=sub_id,
            route=route,
            name=data.get("name"),
            params=params,
            created_at=data.get("createdAt", ""),
            extra={k: v for k, v in data.items() if k not in _KNOWN_KEYS},
        )


def dumps_subscriptions(subscriptions: List[Subscription]) -> str:
    return json.dumps([s.to_dict() for s in subscriptions], indent=2, ensure_ascii=False)


def read_subscriptions(path: Path) -> List[Subscription]:
    """Return every subscription stored at *path*.

    A missing file is an empty list.  Anything that is not a JSON list of
    subscription objects raises ``StoreCorrupt``; the file is never rewritten
    to "repair" it.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return []
    except UnicodeDecodeError as exc:
        raise StoreCorrupt(f"Subscription file {path} is not valid UTF-8: {exc}") from exc
    except OSError as exc:
        raise StoreIOError(f"Cannot read subscription file {path}: {exc}") from exc

    try:
        raw = json.loads(text)
    except ValueError as exc:
        raise StoreCorrupt(f"Subscription file {path} is not valid JSON: {exc}") from exc
    if not isinstance(raw, list):
        raise StoreCorrupt(f"Subscription file {path} does not contain a list")
    return [Subscription.from_dict(item) for item in raw]


@contextmanager
def _atomic_writer(path: Path) -> Iterator[TextIO]:
    """Yield a text handle whose content replaces *path* on clean exit."""
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            yield handle
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def write_subscriptions(path: Path, subscriptions: List[Subscription]) -> None:
    """Replace the content of *path* with *subscriptions*."""
    text = dumps_subscriptions(subscriptions)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with _atomic_writer(path) as handle:
            handle.write(text)
    except OSError as exc:
        raise StoreIOError(f"Cannot write subscription file {path}: {exc}") from exc
