"""Fuzzy route search and its Markdown report.

Matching is a plain case-insensitive substring test over the text fields of a
route plus its category tags.  There is no scoring; matches come back in
catalog order and are capped at ``MAX_RESULTS``.
"""

from __future__ import annotations

from itertools import islice
from typing import Dict, Iterable, List

from rsshub_mcp.main.tools.catalog import RouteRecord

MAX_RESULTS = 50
DESCRIPTION_LIMIT = 200
DOCS_URL = "https://docs.rsshub.app/"


def route_matches(route: RouteRecord, lowered_query: str) -> bool:
    fields = (
        route.namespace,
        route.namespace_name,
        route.name,
        route.path,
        route.description,
        route.url,
    )
    if any(lowered_query in value.lower() for value in fields):
        return True
    return any(lowered_query in cat.lower() for cat in route.categories)


def search_routes(
    routes: Iterable[RouteRecord], query: str, limit: int = MAX_RESULTS
) -> List[RouteRecord]:
    """Return up to *limit* routes matching *query*, in input order.

    An empty query is a substring of everything, so it matches every route.
    """
    lowered = query.lower()
    return list(islice((r for r in routes if route_matches(r, lowered)), limit))


def _group_by_namespace(routes: List[RouteRecord]) -> Dict[str, List[RouteRecord]]:
    groups: Dict[str, List[RouteRecord]] = {}
    for route in routes:
        groups.setdefault(route.namespace_name or route.namespace, []).append(route)
    return groups


def _render_route(route: RouteRecord, instance: str) -> str:
    lines = [f"### {route.name or route.path}", "", f"- **Route**: `{route.path}`"]
    if route.example:
        lines.append(f"- **Example**: `{route.example}`")
        lines.append(f"- **Full URL**: `{instance}{route.example}`")
    if route.description:
        desc = route.description[:DESCRIPTION_LIMIT]
        if len(route.description) > DESCRIPTION_LIMIT:
            desc += "..."
        lines.append(f"- **Description**: {desc}")
    if route.categories:
        lines.append(f"- **Categories**: {', '.join(route.categories)}")
    if route.url:
        lines.append(f"- **Website**: {route.url}")
    if route.maintainers:
        lines.append(f"- **Maintainers**: {', '.join(route.maintainers)}")
    if route.parameters:
        lines.append("- **Parameters**:")
        for param, desc in route.parameters.items():
            lines.append(f"  - `{param}`: {desc}")
    return "\n".join(lines) + "\n\n"


def render_search_results(
    query: str, matches: List[RouteRecord], instance: str, limit: int = MAX_RESULTS
) -> str:
    """Format *matches* as the Markdown report returned by ``search_routes``."""
    output = f'# RSSHub Route Search Results: "{query}"\n\n'
    output += f"Found {len(matches)} matching route(s)"
    if len(matches) >= limit:
        output += f" (showing first {limit} only)"
    output += "\n\n"

    if not matches:
        output += f'No routes matching "{query}" found.\n\n'
        output += "## Suggestions\n\n"
        output += "- Try using more generic keywords\n"
        output += "- Use English keywords for search\n"
        output += f"- Visit complete route documentation: {DOCS_URL}\n"
    else:
        for namespace_name, routes in _group_by_namespace(matches).items():
            output += f"## {namespace_name}\n\n"
            for route in routes:
                output += _render_route(route, instance)
        output += "\n---\n\n"
        output += "💡 **Tip**: Use the `get_feed` tool to fetch specific feed content\n\n"

    output += f"📚 For more information, visit [RSSHub Documentation]({DOCS_URL})\n"
    return output
