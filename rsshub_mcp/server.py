"""FastMCP server exposing RSSHub as tools.

Available tools:
* ``get_feed(route=None, params=None)`` – fetch one RSSHub route, or every
  subscription when ``route`` is omitted.
* ``search_routes(query)`` – fuzzy search over the instance's route catalog.
* ``subscribe(route, name=None, params=None)`` – save a route.
* ``unsubscribe(id=None, route=None)`` – remove a saved route.
* ``list_subscriptions()`` – show every saved route.

Failed calls raise ``ToolError`` so the client sees the MCP error flag; the
error text is the same JSON diagnostic a successful call would carry.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from rsshub_mcp.config import configure_logging, load_settings
from rsshub_mcp.feed_utils import FeedService, ToolResponse, create_service

logger = logging.getLogger(__name__)

mcp = FastMCP("rsshub-mcp")

# Created on first use so importing this module never touches the environment.
_service: Optional[FeedService] = None


def get_service() -> FeedService:
    """Get or create the shared ``FeedService``."""
    global _service
    if _service is None:
        _service = create_service()
        logger.info("Using RSSHub instance: %s", _service.instance)
    return _service


def _unwrap(response: ToolResponse) -> str:
    if response.is_error:
        raise ToolError(response.text)
    return response.text


@mcp.tool
async def get_feed(route: Optional[str] = None, params: Optional[Dict[str, Any]] = None) -> str:
    """Get RSSHub feed content.

    If ``route`` is provided (e.g. ``/bilibili/bangumi/media/9192``), fetch that
    feed.  Without it, fetch every subscribed feed.  ``params`` holds general
    query parameters such as ``limit``, ``filter`` or ``filterout``; for
    subscriptions they override the stored defaults.
    """
    return _unwrap(await get_service().get_feed(route, params))


@mcp.tool
async def search_routes(query: str) -> str:
    """Search RSSHub routes by keyword.

    Matches platform names (``bilibili``, ``github``), categories
    (``social-media``), route names, paths, descriptions and websites.  The
    route list is fetched from the instance and cached for 24 hours.
    """
    return _unwrap(await get_service().search_routes(query))


@mcp.tool
async def subscribe(
    route: str, name: Optional[str] = None, params: Optional[Dict[str, Any]] = None
) -> str:
    """Add an RSSHub route to the subscription list.

    ``name`` is an optional friendly label and ``params`` the default query
    parameters used whenever the subscription is fetched.  Subscribing to a
    route twice returns the existing subscription.
    """
    return _unwrap(await get_service().subscribe(route, name=name, params=params))


@mcp.tool
async def unsubscribe(id: Optional[str] = None, route: Optional[str] = None) -> str:
    """Remove a subscription by ``id`` or by ``route`` (``id`` wins if both are given)."""
    return _unwrap(await get_service().unsubscribe(subscription_id=id, route=route))


@mcp.tool
async def list_subscriptions() -> str:
    """List all RSS feed subscriptions with their details."""
    return _unwrap(await get_service().list_subscriptions())


def main() -> None:
    """Entry point – start the FastMCP server on stdio transport."""
    settings = load_settings()
    configure_logging(settings.log_level)
    logger.info("RSSHub MCP server starting (stdio transport), instance %s", settings.instance)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
