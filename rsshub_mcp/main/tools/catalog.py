"""Client for the RSSHub route catalog.

RSSHub publishes every route it knows at ``/api/namespace`` as a mapping of
namespace key to a namespace descriptor, each with its own ``routes``
mapping.  ``CatalogClient.fetch_namespaces`` downloads that document and
``flatten_namespaces`` turns it into a flat list of ``RouteRecord`` objects.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Tuple

import httpx

from rsshub_mcp.main.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

CATALOG_TIMEOUT = 30.0


@dataclass(frozen=True)
class RouteRecord:
    path: str
    name: str = ""
    url: str = ""
    maintainers: Tuple[str, ...] = ()
    example: str = ""
    parameters: Mapping[str, str] = field(default_factory=dict)
    description: str = ""
    categories: Tuple[str, ...] = ()
    namespace: str = ""
    namespace_name: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "name": self.name,
            "url": self.url,
            "maintainers": list(self.maintainers),
            "example": self.example,
            "parameters": dict(self.parameters),
            "description": self.description,
            "categories": list(self.categories),
            "namespace": self.namespace,
            "namespaceName": self.namespace_name,
        }


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _strings(value: Any) -> Tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(_text(v) for v in value)


def _parameters(value: Any) -> Dict[str, str]:
    """Parameter descriptions are usually strings; newer instances send objects."""
    if not isinstance(value, dict):
        return {}
    result: Dict[str, str] = {}
    for key, desc in value.items():
        if isinstance(desc, dict):
            desc = desc.get("description", "")
        result[str(key)] = _text(desc)
    return result


def flatten_namespaces(payload: Mapping[str, Any]) -> List[RouteRecord]:
    """Flatten a namespace document into route records, in document order.

    Missing ``url`` and ``categories`` on a route fall back to the owning
    namespace; every other missing field becomes an empty value.
    """
    routes: List[RouteRecord] = []
    for namespace, ns_data in payload.items():
        if not isinstance(ns_data, dict):
            logger.warning("Skipping malformed namespace %s", namespace)
            continue
        ns_routes = ns_data.get("routes") or {}
        if not isinstance(ns_routes, dict):
            logger.warning("Skipping namespace %s with malformed routes", namespace)
            continue
        for route_path, route_data in ns_routes.items():
            if not isinstance(route_data, dict):
                logger.warning("Skipping malformed route %s in %s", route_path, namespace)
                continue
            routes.append(
                RouteRecord(
                    path=route_path,
                    name=_text(route_data.get("name")),
                    url=_text(route_data.get("url") or ns_data.get("url")),
                    maintainers=_strings(route_data.get("maintainers")),
                    example=_text(route_data.get("example")),
                    parameters=_parameters(route_data.get("parameters")),
                    description=_text(route_data.get("description")),
                    categories=_strings(
                        route_data.get("categories") or ns_data.get("categories")
                    ),
                    namespace=namespace,
                    namespace_name=_text(ns_data.get("name")),
                )
            )
    return routes


class CatalogClient:
    """Fetches the route catalog of one RSSHub instance."""

    def __init__(
        self, instance: str, client: httpx.AsyncClient, timeout: float = CATALOG_TIMEOUT
    ) -> None:
        self.instance = instance
        self._client = client
        self._timeout = timeout

    @property
    def namespace_url(self) -> str:
        return f"{self.instance.rstrip('/')}/api/namespace"

    async def fetch_namespaces(self) -> List[RouteRecord]:
        """Download and flatten the catalog.

        Raises ``UpstreamUnavailable`` on network errors, timeouts, non-2xx
        responses and bodies that are not a JSON object.
        """
        url = self.namespace_url
        logger.info("Fetching route catalog from %s", url)
        try:
            response = await self._client.get(url, timeout=self._timeout)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise UpstreamUnavailable(f"Failed to fetch route catalog: {exc}") from exc
        except ValueError as exc:
            raise UpstreamUnavailable(f"Route catalog is not valid JSON: {exc}") from exc

        if not isinstance(payload, dict):
            raise UpstreamUnavailable("Route catalog is not a JSON object")

        routes = flatten_namespaces(payload)
        logger.info("Loaded %d routes from %d namespaces", len(routes), len(payload))
        return routes
