"""Tests for URL building, status classification and aggregate fetching.

All HTTP traffic goes through ``httpx.MockTransport``; no real network calls
are made.
"""

import asyncio
import tempfile
from pathlib import Path
from unittest import IsolatedAsyncioTestCase, TestCase, mock

import httpx

from rsshub_mcp.main.errors import (
    RouteNotFound,
    UpstreamInternalError,
    UpstreamOverloaded,
    UpstreamUnavailable,
)
from rsshub_mcp.main.store import Subscription
from rsshub_mcp.main.tools.fetcher import (
    USER_AGENT,
    FeedFetcher,
    FetchFailure,
    FetchSuccess,
    ResponseTooLarge,
    build_url,
    merge_params,
    normalize_route,
)

RSS_BODY = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"><channel>
<title>Bilibili Dynamic</title>
<link>https://space.bilibili.com/123</link>
<description>&lt;p&gt;Posts by &lt;b&gt;123&lt;/b&gt;&lt;/p&gt;</description>
<item><title>One</title><link>https://t.bilibili.com/1</link></item>
<item><title>Two</title><link>https://t.bilibili.com/2</link></item>
</channel></rss>"""


def _ticking_clock(*values):
    ticks = iter(values)
    return lambda: next(ticks)


class TestBuildUrl(TestCase):
    def test_missing_leading_slash_is_added(self) -> None:
        self.assertEqual(normalize_route("bilibili/user/dynamic/123"), "/bilibili/user/dynamic/123")
        self.assertEqual(
            build_url("https://rsshub.app", "bilibili/user/dynamic/123"),
            "https://rsshub.app/bilibili/user/dynamic/123",
        )

    def test_existing_leading_slash_is_kept(self) -> None:
        self.assertEqual(normalize_route("/github/issue/a/b"), "/github/issue/a/b")

    def test_instance_trailing_slash_is_stripped(self) -> None:
        self.assertEqual(
            build_url("https://hub.example.com/", "/github/issue/a/b"),
            "https://hub.example.com/github/issue/a/b",
        )

    def test_params_are_string_coerced(self) -> None:
        url = build_url("https://rsshub.app", "/x", {"limit": 5, "brief": True, "filter": "a b"})
        self.assertEqual(url, "https://rsshub.app/x?limit=5&brief=true&filter=a+b")

    def test_list_values_repeat_the_key(self) -> None:
        url = build_url("https://rsshub.app", "/x", {"tag": ["a", "b"]})
        self.assertEqual(url, "https://rsshub.app/x?tag=a&tag=b")

    def test_params_append_to_existing_query(self) -> None:
        url = build_url("https://rsshub.app", "/x?mode=full", {"limit": "3"})
        self.assertEqual(url, "https://rsshub.app/x?mode=full&limit=3")

    def test_merge_prefers_call_site_values(self) -> None:
        self.assertEqual(
            merge_params({"limit": "5", "mode": "full"}, {"limit": "10"}),
            {"limit": "10", "mode": "full"},
        )
        self.assertEqual(merge_params(None, None), {})


class TestFetchRoute(IsolatedAsyncioTestCase):
    def _fetcher(self, handler, instance="https://rsshub.app", **kwargs) -> FeedFetcher:
        self.client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        self.addAsyncCleanup(self.client.aclose)
        return FeedFetcher(instance, self.client, **kwargs)

    async def test_success_returns_body_and_metadata(self) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200, text=RSS_BODY, headers={"Content-Type": "application/xml; charset=utf-8"}
            )

        fetcher = self._fetcher(handler, clock=_ticking_clock(10.0, 10.25))
        result = await fetcher.fetch_route("bilibili/user/dynamic/123", {"limit": "2"})

        self.assertIsInstance(result, FetchSuccess)
        self.assertEqual(result.url, "https://rsshub.app/bilibili/user/dynamic/123?limit=2")
        self.assertEqual(result.status, 200)
        self.assertEqual(result.duration_ms, 250)
        self.assertEqual(result.body, RSS_BODY)
        self.assertEqual(result.feed["title"], "Bilibili Dynamic")
        self.assertEqual(result.feed["entryCount"], 2)
        self.assertNotIn("<", result.feed["description"])
        self.assertEqual(seen[0].headers["User-Agent"], USER_AGENT)

        payload = result.to_payload("https://rsshub.app")
        self.assertEqual(payload["requestDuration"], "250ms")
        self.assertEqual(payload["contentType"], "application/xml; charset=utf-8")
        self.assertEqual(payload["instance"], "https://rsshub.app")

    async def test_json_body_is_decoded(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"version": "https://jsonfeed.org/version/1.1", "items": []})

        result = await self._fetcher(handler).fetch_route("/x", {"format": "json"})
        self.assertIsInstance(result, FetchSuccess)
        self.assertEqual(result.body["items"], [])
        self.assertIsNone(result.feed)

    async def test_404_suggests_search(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, text="Not Found", headers={"Content-Type": "text/plain"})

        result = await self._fetcher(handler).fetch_route("bilibili/nope")

        self.assertIsInstance(result, FetchFailure)
        self.assertEqual(result.status, 404)
        self.assertIsInstance(result.error, RouteNotFound)
        self.assertIn("search_routes", result.diagnostic["message"])
        self.assertIn('search_routes(query="bilibili")', result.diagnostic["suggestion"])
        self.assertEqual(result.diagnostic["statusText"], "Not Found")
        self.assertEqual(result.diagnostic["responseData"], "Not Found")

    async def test_503_on_public_instance_suggests_self_hosting(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="busy")

        public = await self._fetcher(handler).fetch_route("/x")
        custom = await self._fetcher(handler, instance="https://hub.example.com").fetch_route("/x")

        self.assertIsInstance(public.error, UpstreamOverloaded)
        self.assertIn("Self-deploy", public.diagnostic["suggestion"])
        self.assertNotIn("Self-deploy", custom.diagnostic["suggestion"])
        self.assertNotEqual(public.diagnostic["suggestion"], custom.diagnostic["suggestion"])
        self.assertEqual(len(custom.diagnostic["possibleReasons"]), 3)

    async def test_500_points_at_parameters(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="boom")

        result = await self._fetcher(handler).fetch_route("/x")
        self.assertIsInstance(result.error, UpstreamInternalError)
        self.assertIn("parameters", result.diagnostic["suggestion"])

    async def test_error_body_preview_is_capped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="x" * 5000, headers={"Content-Type": "text/html"})

        result = await self._fetcher(handler).fetch_route("/x")
        self.assertEqual(len(result.diagnostic["responseData"]), 1000)

    async def test_binary_error_body_is_not_included(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                502, content=b"\x89PNG", headers={"Content-Type": "image/png"}
            )

        result = await self._fetcher(handler).fetch_route("/x")
        self.assertNotIn("responseData", result.diagnostic)

    async def test_timeout_becomes_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        result = await self._fetcher(handler).fetch_route("/x")

        self.assertIsInstance(result, FetchFailure)
        self.assertIsNone(result.status)
        self.assertIsInstance(result.error, UpstreamUnavailable)
        self.assertEqual(result.diagnostic["type"], "ReadTimeout")
        self.assertIn("timeout", result.diagnostic["suggestion"].lower())

    async def test_connection_error_becomes_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        result = await self._fetcher(handler).fetch_route("/x")
        self.assertIn("Network", result.diagnostic["suggestion"])

    async def test_oversized_body_is_rejected(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"a" * 100)

        result = await self._fetcher(handler, max_content_length=10).fetch_route("/x")

        self.assertIsInstance(result, FetchFailure)
        self.assertIsInstance(result.error, ResponseTooLarge)
        self.assertEqual(result.diagnostic["type"], "ResponseTooLarge")

    async def test_slow_body_hits_total_timeout(self) -> None:
        async def trickle():
            for _ in range(20):
                await asyncio.sleep(0.05)
                yield b"<"

        async def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=trickle(), headers={"Content-Type": "application/xml"})

        result = await self._fetcher(handler, timeout=0.1).fetch_route("/x")

        self.assertIsInstance(result, FetchFailure)
        self.assertIsNone(result.status)
        self.assertIsInstance(result.error, UpstreamUnavailable)
        self.assertEqual(result.diagnostic["message"], "Request exceeded 0.1s")
        self.assertIn("timeout", result.diagnostic["suggestion"].lower())

    async def test_path_like_feed_body_is_not_read_from_disk(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            local = Path(tmp) / "feed.xml"
            local.write_text(RSS_BODY, encoding="utf-8")

            def handler(request: httpx.Request) -> httpx.Response:
                return httpx.Response(200, text=str(local), headers={"Content-Type": "application/xml"})

            result = await self._fetcher(handler).fetch_route("/x")

        self.assertIsInstance(result, FetchSuccess)
        self.assertEqual(result.body, str(local))
        self.assertIsNone(result.feed)


class TestFetchSubscriptions(IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            if request.url.path == "/missing/route":
                return httpx.Response(404, text="Not Found")
            return httpx.Response(200, text=RSS_BODY, headers={"Content-Type": "application/rss+xml"})

        self.client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        self.fetcher = FeedFetcher("https://rsshub.app", self.client)

    async def asyncTearDown(self) -> None:
        await self.client.aclose()

    async def test_partial_failure_is_reported_per_subscription(self) -> None:
        subs = [
            Subscription(id="sub_1", route="/bilibili/user/dynamic/123", name="Bili"),
            Subscription(id="sub_2", route="/missing/route"),
        ]

        results = await self.fetcher.fetch_subscriptions(subs)

        self.assertEqual(len(results), 2)
        ok, failed = results
        self.assertTrue(ok["success"])
        self.assertEqual(ok["data"], RSS_BODY)
        self.assertIsNone(ok["error"])
        self.assertEqual(ok["subscription"], {"id": "sub_1", "name": "Bili", "route": "/bilibili/user/dynamic/123"})
        self.assertFalse(failed["success"])
        self.assertEqual(failed["status"], 404)
        self.assertIsNone(failed["data"])
        self.assertIn("Route not found", failed["error"])

    async def test_call_params_override_stored_params(self) -> None:
        subs = [Subscription(id="sub_1", route="/x", params={"limit": "5", "mode": "full"})]

        await self.fetcher.fetch_subscriptions(subs, {"limit": "10"})

        params = self.requests[0].url.params
        self.assertEqual(params.get_list("limit"), ["10"])
        self.assertEqual(params["mode"], "full")

    async def test_unexpected_exception_does_not_abort_batch(self) -> None:
        subs = [Subscription(id="sub_1", route="/a"), Subscription(id="sub_2", route="/b")]
        good = FetchSuccess(url="u", status=200, content_type="text/plain", duration_ms=1, body="ok")

        with mock.patch.object(
            self.fetcher, "fetch_route", side_effect=[RuntimeError("kaboom"), good]
        ):
            results = await self.fetcher.fetch_subscriptions(subs)

        self.assertFalse(results[0]["success"])
        self.assertEqual(results[0]["error"], "kaboom")
        self.assertTrue(results[1]["success"])

    async def test_no_subscriptions_makes_no_requests(self) -> None:
        self.assertEqual(await self.fetcher.fetch_subscriptions([]), [])
        self.assertEqual(self.requests, [])
