"""Fetch RSSHub routes and classify the outcome.

``FeedFetcher.fetch_route`` builds the outbound URL for one route, issues a
single GET and returns either a ``FetchSuccess`` or a ``FetchFailure``.  It
never raises for network or HTTP problems; those become diagnostics meant to
be shown to the caller.  ``fetch_subscriptions`` runs the same fetch for every
saved subscription and reports each one separately, so one broken route does
not hide the others.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union
from urllib.parse import urlencode, urlparse

import httpx

from rsshub_mcp.main.errors import (
    RSSHubMCPError,
    RouteNotFound,
    UpstreamHTTPError,
    UpstreamInternalError,
    UpstreamOverloaded,
    UpstreamUnavailable,
    classify_status,
)
from rsshub_mcp.main.store import Subscription
from rsshub_mcp.main.tools.rss_feed_utils import looks_like_feed, summarize_feed

logger = logging.getLogger(__name__)

FEED_TIMEOUT = 60.0
USER_AGENT = "RSSHub-MCP/1.0"
MAX_CONTENT_LENGTH = 50 * 1024 * 1024
RESPONSE_PREVIEW_LIMIT = 1000
DEFAULT_CONCURRENCY = 4
PUBLIC_INSTANCE_HOST = "rsshub.app"

_TEXT_MIME_HINTS = ("json", "xml", "javascript", "html")


class ResponseTooLarge(UpstreamUnavailable):
    """The response body went over ``MAX_CONTENT_LENGTH``."""


@dataclass
class FetchSuccess:
    url: str
    status: int
    content_type: Optional[str]
    duration_ms: int
    body: Any
    feed: Optional[Dict[str, Any]] = None
    success = True

    def to_payload(self, instance: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "url": self.url,
            "instance": instance,
            "status": self.status,
            "contentType": self.content_type,
            "requestDuration": f"{self.duration_ms}ms",
        }
        if self.feed is not None:
            payload["feed"] = self.feed
        payload["data"] = self.body
        return payload


@dataclass
class FetchFailure:
    url: str
    status: Optional[int]
    diagnostic: Dict[str, Any] = field(default_factory=dict)
    error: Optional[RSSHubMCPError] = None
    success = False

    @property
    def message(self) -> str:
        return self.diagnostic.get("message") or str(self.error or "Request failed")


FetchResult = Union[FetchSuccess, FetchFailure]


def normalize_route(route: str) -> str:
    return route if route.startswith("/") else f"/{route}"


def _query_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, ensure_ascii=False)


def build_url(instance: str, route: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """Join *instance* and *route* and append *params* as query arguments.

    Each value is appended, never replacing one already in the query; list
    values append one occurrence per element.
    """
    base = instance[:-1] if instance.endswith("/") else instance
    url = base + normalize_route(route)
    pairs: List[Tuple[str, str]] = []
    for key, value in (params or {}).items():
        values = value if isinstance(value, (list, tuple)) else [value]
        pairs.extend((str(key), _query_value(v)) for v in values)
    if not pairs:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode(pairs)}"


def merge_params(
    defaults: Optional[Mapping[str, Any]], overrides: Optional[Mapping[str, Any]]
) -> Dict[str, Any]:
    """Subscription defaults updated with call-site values; the call site wins."""
    merged: Dict[str, Any] = dict(defaults or {})
    merged.update(overrides or {})
    return merged


def is_public_instance(instance: str) -> bool:
    host = (urlparse(instance).hostname or "").lower()
    return host == PUBLIC_INSTANCE_HOST or host.endswith("." + PUBLIC_INSTANCE_HOST)


def _is_textual(content_type: Optional[str]) -> bool:
    if not content_type:
        return True
    mime = content_type.split(";", 1)[0].strip().lower()
    return mime.startswith("text/") or any(hint in mime for hint in _TEXT_MIME_HINTS)


def _is_json(content_type: Optional[str]) -> bool:
    return bool(content_type) and "json" in content_type.lower()


def _first_segment(route: str) -> str:
    segments = [s for s in normalize_route(route).split("/") if s]
    return segments[0] if segments else ""


def http_diagnostic(
    url: str,
    route: str,
    status: int,
    reason: str,
    body: Optional[str],
    instance: str,
) -> Tuple[Dict[str, Any], UpstreamHTTPError]:
    """Build the caller-facing report for an error status from RSSHub."""
    error_class = classify_status(status) or UpstreamHTTPError
    diagnostic: Dict[str, Any] = {
        "url": url,
        "status": status,
        "statusText": reason,
        "error": "RSSHub server returned error",
        "errorType": error_class.__name__,
    }
    if error_class is RouteNotFound:
        diagnostic["message"] = (
            "Route not found. Please use the search_routes tool to search for the correct route."
        )
        diagnostic["suggestion"] = (
            f'Try searching for related routes, e.g.: search_routes(query="{_first_segment(route)}")'
        )
    elif error_class is UpstreamOverloaded:
        diagnostic["message"] = (
            "RSSHub server is temporarily unavailable or upstream service has issues."
        )
        if is_public_instance(instance):
            diagnostic["suggestion"] = (
                "Public instance rsshub.app is currently under high load. Suggestions: "
                "1) Retry later 2) Self-deploy RSSHub instance (5-minute Docker deployment)"
            )
        else:
            diagnostic["suggestion"] = (
                "This is usually a temporary issue. Please retry later. If the problem "
                "persists, the upstream website may be temporarily inaccessible."
            )
        diagnostic["possibleReasons"] = [
            "RSSHub server overloaded",
            "Upstream website timeout or error",
            "Network connection issues",
        ]
    elif error_class is UpstreamInternalError:
        diagnostic["message"] = "RSSHub server internal error."
        diagnostic["suggestion"] = (
            "The route may have a bug, or the required parameters are incorrect."
        )
    else:
        diagnostic["message"] = f"RSSHub server returned HTTP {status} {reason}".rstrip()
        diagnostic["suggestion"] = "Check the route path and parameters, then retry."

    if body:
        diagnostic["responseData"] = body[:RESPONSE_PREVIEW_LIMIT]
    return diagnostic, error_class(diagnostic["message"], status=status)


def transport_diagnostic(exc: Exception) -> Dict[str, Any]:
    """Report for a request that never produced a usable response."""
    diagnostic: Dict[str, Any] = {
        "error": "RSSHub processing failed",
        "message": str(exc) or type(exc).__name__,
        "type": type(exc).__name__,
    }
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
        diagnostic["suggestion"] = (
            "Upstream website timeout. Please retry later or check if the target "
            "website is accessible."
        )
    elif isinstance(exc, httpx.NetworkError):
        diagnostic["suggestion"] = (
            "Network connection issue. Please check network connection and firewall settings."
        )
    elif isinstance(exc, ResponseTooLarge):
        diagnostic["suggestion"] = (
            "The feed is too large. Try a smaller 'limit' parameter to reduce the item count."
        )
    else:
        diagnostic["suggestion"] = (
            "Route processing error. The route parameters may be incorrect, or the "
            "upstream website structure has changed."
        )
    return diagnostic


class FeedFetcher:
    """Fetches feeds from one RSSHub instance."""

    def __init__(
        self,
        instance: str,
        client: httpx.AsyncClient,
        *,
        timeout: float = FEED_TIMEOUT,
        max_content_length: int = MAX_CONTENT_LENGTH,
        concurrency: int = DEFAULT_CONCURRENCY,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.instance = instance
        self._client = client
        self._timeout = timeout
        self._max_content_length = max_content_length
        self._concurrency = max(1, concurrency)
        self._clock = clock

    async def _get(self, url: str) -> Tuple[int, str, Optional[str], bytes, str]:
        """GET *url* and return status, reason, content type, body and encoding."""
        async with self._client.stream(
            "GET", url, headers={"User-Agent": USER_AGENT}, timeout=self._timeout
        ) as response:
            declared = response.headers.get("Content-Length")
            if declared and declared.isdigit() and int(declared) > self._max_content_length:
                raise ResponseTooLarge(f"Response of {declared} bytes exceeds the 50MB limit")
            chunks: List[bytes] = []
            size = 0
            async for chunk in response.aiter_bytes():
                size += len(chunk)
                if size > self._max_content_length:
                    raise ResponseTooLarge("Response body exceeds the 50MB limit")
                chunks.append(chunk)
            return (
                response.status_code,
                response.reason_phrase,
                response.headers.get("Content-Type"),
                b"".join(chunks),
                response.encoding or "utf-8",
            )

    async def fetch_route(
        self, route: str, params: Optional[Mapping[str, Any]] = None
    ) -> FetchResult:
        url = build_url(self.instance, route, params)
        logger.info("Requesting: %s", url)
        started = self._clock()
        try:
            status, reason, content_type, raw, encoding = await asyncio.wait_for(
                self._get(url), self._timeout
            )
        except asyncio.TimeoutError as exc:
            logger.error("Request to %s exceeded %ss", url, self._timeout)
            error = UpstreamUnavailable(f"Request exceeded {self._timeout:g}s")
            diagnostic = transport_diagnostic(exc)
            diagnostic["message"] = str(error)
            return FetchFailure(url=url, status=None, diagnostic=diagnostic, error=error)
        except (httpx.HTTPError, httpx.InvalidURL, UpstreamUnavailable) as exc:
            logger.error("Request to %s failed: %s", url, exc)
            error = exc if isinstance(exc, UpstreamUnavailable) else UpstreamUnavailable(str(exc))
            return FetchFailure(url=url, status=None, diagnostic=transport_diagnostic(exc), error=error)

        duration_ms = int(round((self._clock() - started) * 1000))
        logger.info("Request completed: %d (%dms)", status, duration_ms)
        text = raw.decode(encoding, errors="replace")

        if status >= 400:
            preview = text if _is_textual(content_type) else None
            diagnostic, error = http_diagnostic(url, route, status, reason, preview, self.instance)
            return FetchFailure(url=url, status=status, diagnostic=diagnostic, error=error)

        body: Any = text
        if _is_json(content_type):
            try:
                body = json.loads(text)
            except ValueError:
                logger.debug("Response from %s claims JSON but does not parse", url)
        feed = summarize_feed(raw) if looks_like_feed(content_type) else None
        return FetchSuccess(
            url=url,
            status=status,
            content_type=content_type,
            duration_ms=duration_ms,
            body=body,
            feed=feed,
        )

    async def fetch_subscriptions(
        self,
        subscriptions: Iterable[Subscription],
        params: Optional[Mapping[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch every subscription and return one tagged entry per subscription.

        Stored ``params`` are merged with *params* (the latter wins on key
        collisions).  Requests run at most ``concurrency`` at a time; results
        keep subscription order.
        """
        subs = list(subscriptions)
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _fetch_one(sub: Subscription) -> FetchResult:
            async with semaphore:
                logger.info("Fetching subscription: %s", sub.name or sub.route)
                return await self.fetch_route(sub.route, merge_params(sub.params, params))

        results = await asyncio.gather(*(_fetch_one(s) for s in subs), return_exceptions=True)
        return [subscription_entry(sub, result) for sub, result in zip(subs, results)]


def subscription_entry(sub: Subscription, result: Union[FetchResult, BaseException]) -> Dict[str, Any]:
    """Per-subscription record of an aggregate fetch."""
    entry: Dict[str, Any] = {
        "subscription": {"id": sub.id, "name": sub.name, "route": sub.route},
    }
    if isinstance(result, BaseException):
        logger.error("Subscription %s failed: %s", sub.route, result)
        entry.update(success=False, data=None, error=str(result) or type(result).__name__)
        return entry

    entry.update(
        url=result.url,
        status=result.status,
        success=result.success,
    )
    if isinstance(result, FetchSuccess):
        entry.update(data=result.body, error=None)
    else:
        entry.update(data=None, error=result.message)
    return entry
