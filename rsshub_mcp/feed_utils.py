"""Shared tool logic for the RSSHub adapter.

Both the FastMCP tool server (``rsshub_mcp/server.py``) and the FastAPI HTTP
server (``rsshub_mcp/app_server.py``) expose the same five operations.  This
module implements them once on ``FeedService`` so the two servers only deal
with their own transport.

Every operation returns a ``ToolResponse``: the single text block to send back
and a flag telling the transport whether the call failed.  Errors from the
layers below are turned into JSON diagnostics here; nothing is raised to the
transport except programming errors.
"""

from __future__ import annotations

import functools
import json
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, NamedTuple, Optional

import httpx

from rsshub_mcp.config import Settings, load_settings
from rsshub_mcp.main.errors import InvalidArgument, StoreError, UpstreamUnavailable
from rsshub_mcp.main.store import Subscription
from rsshub_mcp.main.tools.catalog import CatalogClient
from rsshub_mcp.main.tools.fetcher import FeedFetcher, FetchSuccess, build_url
from rsshub_mcp.main.tools.registry import SubscriptionStore
from rsshub_mcp.main.tools.route_cache import RouteCache
from rsshub_mcp.main.tools.search import render_search_results, search_routes

logger = logging.getLogger(__name__)

NO_SUBSCRIPTIONS = {
    "message": "No subscriptions found",
    "suggestion": "Use the 'subscribe' tool to add feeds to your subscription list",
    "subscriptionCount": 0,
}


class ToolResponse(NamedTuple):
    text: str
    is_error: bool = False


def _dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False)


def _store_failure(exc: StoreError) -> ToolResponse:
    return ToolResponse(
        _dumps(
            {
                "error": "Subscription store error",
                "message": str(exc),
                "type": type(exc).__name__,
                "suggestion": "Check that the subscription file is valid JSON and writable. "
                "It is left untouched so no subscriptions are lost.",
            }
        ),
        True,
    )


def _reports_errors(
    func: Callable[..., Awaitable[ToolResponse]]
) -> Callable[..., Awaitable[ToolResponse]]:
    """Turn the adapter's own exceptions into error responses."""

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> ToolResponse:
        try:
            return await func(*args, **kwargs)
        except InvalidArgument as exc:
            logger.warning("%s rejected: %s", func.__name__, exc)
            return ToolResponse(_dumps({"error": "Invalid arguments", "message": str(exc)}), True)
        except StoreError as exc:
            logger.error("%s failed on the subscription store: %s", func.__name__, exc)
            return _store_failure(exc)
        except UpstreamUnavailable as exc:
            logger.error("%s failed upstream: %s", func.__name__, exc)
            return ToolResponse(
                _dumps(
                    {
                        "error": "API request failed",
                        "message": str(exc),
                        "suggestion": "Failed to fetch the route list. Please check the "
                        "network connection or try again later.",
                    }
                ),
                True,
            )

    return wrapper


def _format_created(created_at: str) -> str:
    try:
        ts = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
    except ValueError:
        return created_at
    return ts.strftime("%Y-%m-%d %H:%M:%S %Z").strip()


class FeedService:
    """The five tool operations, bound to one instance and one subscription file."""

    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient,
        *,
        store: Optional[SubscriptionStore] = None,
        route_cache: Optional[RouteCache] = None,
        fetcher: Optional[FeedFetcher] = None,
    ) -> None:
        self.settings = settings
        self._client = client
        self.store = store or SubscriptionStore(settings.subscriptions_path)
        self.catalog = CatalogClient(settings.instance, client)
        self.route_cache = route_cache or RouteCache(self.catalog.fetch_namespaces)
        self.fetcher = fetcher or FeedFetcher(settings.instance, client)

    @property
    def instance(self) -> str:
        return self.settings.instance

    async def aclose(self) -> None:
        await self._client.aclose()

    @_reports_errors
    async def get_feed(
        self, route: Optional[str] = None, params: Optional[Dict[str, Any]] = None
    ) -> ToolResponse:
        """Fetch one route, or every subscription when *route* is empty."""
        if not route:
            subscriptions = self.store.load()
            if not subscriptions:
                return ToolResponse(_dumps(NO_SUBSCRIPTIONS))
            results = await self.fetcher.fetch_subscriptions(subscriptions, params)
            return ToolResponse(
                _dumps(
                    {
                        "message": f"Fetched {len(results)} subscription(s)",
                        "subscriptions": results,
                    }
                )
            )

        result = await self.fetcher.fetch_route(route, params)
        if isinstance(result, FetchSuccess):
            return ToolResponse(_dumps(result.to_payload(self.instance)))
        payload = dict(result.diagnostic)
        payload.setdefault("url", result.url)
        return ToolResponse(_dumps(payload), True)

    @_reports_errors
    async def search_routes(self, query: str) -> ToolResponse:
        if query is None:
            raise InvalidArgument("Missing required parameter: query")
        routes = await self.route_cache.get_routes()
        matches = search_routes(routes, query)
        return ToolResponse(render_search_results(query, matches, self.instance))

    @_reports_errors
    async def subscribe(
        self,
        route: str,
        name: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> ToolResponse:
        subscription, created, total = self.store.subscribe(route, name=name, params=params)
        if not created:
            return ToolResponse(
                _dumps(
                    {
                        "message": "Already subscribed to this route",
                        "subscription": subscription.to_dict(),
                    }
                )
            )
        return ToolResponse(
            _dumps(
                {
                    "message": "Successfully subscribed",
                    "subscription": subscription.to_dict(),
                    "totalSubscriptions": total,
                }
            )
        )

    @_reports_errors
    async def unsubscribe(
        self, subscription_id: Optional[str] = None, route: Optional[str] = None
    ) -> ToolResponse:
        removed, remaining = self.store.unsubscribe(subscription_id=subscription_id, route=route)
        if not removed:
            searched = {"id": subscription_id} if subscription_id else {"route": route}
            return ToolResponse(_dumps({"message": "Subscription not found", "searched": searched}))
        return ToolResponse(
            _dumps(
                {
                    "message": "Successfully unsubscribed",
                    "removedCount": removed,
                    "remainingSubscriptions": remaining,
                }
            )
        )

    @_reports_errors
    async def list_subscriptions(self) -> ToolResponse:
        subscriptions = self.store.list_subscriptions()
        if not subscriptions:
            return ToolResponse(_dumps(NO_SUBSCRIPTIONS))
        return ToolResponse(self._render_subscriptions(subscriptions))

    def _render_subscriptions(self, subscriptions: list[Subscription]) -> str:
        output = "# RSS Feed Subscriptions\n\n"
        output += f"Total subscriptions: {len(subscriptions)}\n\n"
        for sub in subscriptions:
            output += f"## {sub.name or sub.route}\n\n"
            output += f"- **ID**: `{sub.id}`\n"
            output += f"- **Route**: `{sub.route}`\n"
            output += f"- **Full URL**: `{build_url(self.instance, sub.route)}`\n"
            if sub.name:
                output += f"- **Name**: {sub.name}\n"
            if sub.params:
                output += "- **Default Parameters**:\n"
                for key, value in sub.params.items():
                    output += f"  - `{key}`: {value}\n"
            output += f"- **Created**: {_format_created(sub.created_at)}\n\n"
        output += "\n---\n\n"
        output += "💡 **Tip**: Use `get_feed()` without parameters to fetch all subscribed feeds\n"
        return output


def create_service(settings: Optional[Settings] = None) -> FeedService:
    """Build a ``FeedService`` with its own HTTP client from *settings*."""
    settings = settings or load_settings()
    client = httpx.AsyncClient(follow_redirects=True)
    return FeedService(settings, client)
