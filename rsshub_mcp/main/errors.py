"""Exception hierarchy for the RSSHub MCP adapter.

Upstream failures, subscription-file failures and bad tool arguments each get
their own class so the tool layer can decide how to report them.  The
``Upstream*`` HTTP classes carry the status code that produced them; use
``classify_status`` to map a status onto the matching class.
"""

from __future__ import annotations

from typing import Optional, Type


class RSSHubMCPError(Exception):
    """Base class for every error raised by ``rsshub_mcp``."""


class UpstreamUnavailable(RSSHubMCPError):
    """The RSSHub instance could not be reached or returned unusable data."""


class UpstreamHTTPError(RSSHubMCPError):
    """RSSHub answered, but with an error status."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class RouteNotFound(UpstreamHTTPError):
    """HTTP 404: the route does not exist on the instance."""


class UpstreamOverloaded(UpstreamHTTPError):
    """HTTP 502/503: the instance or the site behind it is struggling."""


class UpstreamInternalError(UpstreamHTTPError):
    """HTTP 500: the route crashed, usually because of bad parameters."""


class StoreError(RSSHubMCPError):
    """Base class for subscription file failures."""


class StoreCorrupt(StoreError):
    """The subscription file exists but does not hold a subscription list."""


class StoreIOError(StoreError):
    """The subscription file could not be read or written."""


class InvalidArgument(RSSHubMCPError):
    """A tool was called without an argument it needs."""


def classify_status(status: int) -> Optional[Type[UpstreamHTTPError]]:
    """Return the error class for an HTTP *status*, or ``None`` below 400."""
    if status < 400:
        return None
    if status == 404:
        return RouteNotFound
    if status in (502, 503):
        return UpstreamOverloaded
    if status == 500:
        return UpstreamInternalError
    return UpstreamHTTPError
