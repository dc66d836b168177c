from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import uvicorn
from fastapi import Body, FastAPI, Request

from rsshub_mcp.config import configure_logging, load_settings
from rsshub_mcp.feed_utils import FeedService, ToolResponse, create_service


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Tests may install their own service before startup.
    owned = not hasattr(app.state, "service")
    if owned:
        app.state.service = create_service()
    yield
    if owned:
        await app.state.service.aclose()
        del app.state.service


app = FastAPI(
    title="RSSHub MCP API",
    description="HTTP mirror of the RSSHub MCP tools: feeds, route search and subscriptions.",
    version="0.1.0",
    docs_url="/docs",        # Swagger UI
    redoc_url="/redoc",      # ReDoc UI
    openapi_url="/openapi.json",
    lifespan=lifespan,
)


def _service(request: Request) -> FeedService:
    return request.app.state.service


def _result(response: ToolResponse) -> Dict[str, Any]:
    # Same shape as an MCP tool result: one text block plus the error flag.
    return {"text": response.text, "isError": response.is_error}


@app.get("/", tags=["Root"], summary="API root")
async def read_root():
    return {"message": "Welcome to the RSSHub MCP FastAPI server!"}


@app.post(
    "/getFeed",
    tags=["Feed"],
    summary="Fetch a feed",
    description=(
        "Fetch one RSSHub route if ``route`` is supplied, otherwise every "
        "subscription. ``params`` are added to the query string."
    ),
)
async def get_feed(
    request: Request,
    route: Optional[str] = None,
    params: Optional[Dict[str, Any]] = Body(default=None, embed=True),
) -> dict:
    return _result(await _service(request).get_feed(route, params))


@app.get("/searchRoutes", tags=["Routes"], summary="Search routes")
async def search_routes(request: Request, query: str) -> dict:
    return _result(await _service(request).search_routes(query))


@app.post("/subscribe", tags=["Subscriptions"], summary="Subscribe to a route")
async def subscribe(
    request: Request,
    route: str,
    name: Optional[str] = None,
    params: Optional[Dict[str, Any]] = Body(default=None, embed=True),
) -> dict:
    return _result(await _service(request).subscribe(route, name=name, params=params))


@app.post("/unsubscribe", tags=["Subscriptions"], summary="Remove a subscription")
async def unsubscribe(request: Request, id: Optional[str] = None, route: Optional[str] = None) -> dict:
    return _result(await _service(request).unsubscribe(subscription_id=id, route=route))


@app.get("/listSubscriptions", tags=["Subscriptions"], summary="List subscriptions")
async def list_subscriptions(request: Request) -> dict:
    return _result(await _service(request).list_subscriptions())


def main():
    settings = load_settings()
    configure_logging(settings.log_level)
    # bind to localhost interface
    uvicorn.run(app, host="127.0.0.1", port=settings.http_port)


if __name__ == "__main__":
    main()
