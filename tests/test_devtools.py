"""Tests for the DevTools HTTP adapter and the tab registry."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from chromate.tab import registry
from chromate.tab.devtools import DevTools

TARGETS = [
    {"id": "A", "type": "page", "url": "about:blank", "webSocketDebuggerUrl": "ws://localhost:9222/devtools/page/A"},
    {"id": "B", "type": "page", "url": "https://example.com", "webSocketDebuggerUrl": "ws://localhost:9222/devtools/page/B"},
    {"id": "C", "type": "service_worker", "url": "https://example.com/sw.js"},
]


def make_transport(requests: list[httpx.Request]) -> httpx.MockTransport:
    """Mock browser endpoints, recording every request."""

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        path = request.url.path
        if path == "/json/new":
            return httpx.Response(200, json={"id": "NEW", "type": "page", "url": request.url.query.decode()})
        if path == "/json/list":
            return httpx.Response(200, json=TARGETS)
        if path == "/json/version":
            return httpx.Response(200, json={"Browser": "HeadlessChrome/126.0", "Protocol-Version": "1.3"})
        if path.startswith("/json/close/"):
            target_id = path.rsplit("/", 1)[1]
            if target_id in {t["id"] for t in TARGETS}:
                return httpx.Response(200, text="Target is closing")
            return httpx.Response(404, text=f"No such target id: {target_id}")
        return httpx.Response(404)

    return httpx.MockTransport(handler)


class TestDevTools:
    """Tests for DevTools HTTP endpoints."""

    @pytest.mark.asyncio
    async def test_new_target_uses_put(self):
        """New targets are created with PUT /json/new."""
        requests = []
        devtools = DevTools(port=9333, transport=make_transport(requests))

        target = await devtools.new_target()

        assert target["id"] == "NEW"
        assert requests[0].method == "PUT"
        assert str(requests[0].url).startswith("http://localhost:9333/json/new")

    @pytest.mark.asyncio
    async def test_list_targets_unfiltered(self):
        """Every target is returned, including non-pages."""
        devtools = DevTools(transport=make_transport([]))

        targets = await devtools.list_targets()

        assert [t["id"] for t in targets] == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_close_unknown_target_raises(self):
        """HTTP errors from close propagate."""
        devtools = DevTools(transport=make_transport([]))

        with pytest.raises(httpx.HTTPStatusError):
            await devtools.close_target("missing")

    @pytest.mark.asyncio
    async def test_version(self):
        """Version info comes from /json/version."""
        devtools = DevTools(transport=make_transport([]))

        info = await devtools.version()

        assert info["Protocol-Version"] == "1.3"

    @pytest.mark.asyncio
    async def test_connect_starts_cdp_client(self):
        """connect() starts a cdp-use client on the target websocket."""
        client = MagicMock()
        client.start = AsyncMock()

        with patch("chromate.tab.devtools.CDPClient", return_value=client) as client_class:
            result = await DevTools().connect(TARGETS[0])

        client_class.assert_called_once_with(TARGETS[0]["webSocketDebuggerUrl"])
        client.start.assert_awaited_once()
        assert result is client

    @pytest.mark.asyncio
    async def test_connect_without_websocket_raises(self):
        """Targets without a debugger URL cannot be attached."""
        with pytest.raises(RuntimeError):
            await DevTools().connect(TARGETS[2])


class TestRegistry:
    """Tests for list/close/close-all helpers."""

    @pytest.mark.asyncio
    async def test_list_tabs(self):
        """list_tabs returns all targets of the given port."""
        with patch.object(DevTools, "list_targets", AsyncMock(return_value=TARGETS)):
            assert await registry.list_tabs(9222) == TARGETS

    @pytest.mark.asyncio
    async def test_close_all_tabs_returns_count(self):
        """close_all_tabs closes each listed target and returns the count."""
        close_target = AsyncMock()
        with (
            patch.object(DevTools, "list_targets", AsyncMock(return_value=TARGETS)),
            patch.object(DevTools, "close_target", close_target),
        ):
            count = await registry.close_all_tabs(9222)

        assert count == 3
        assert sorted(call.args[0] for call in close_target.await_args_list) == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_close_all_tabs_with_none_open(self):
        """Nothing listed means nothing closed."""
        with patch.object(DevTools, "list_targets", AsyncMock(return_value=[])):
            assert await registry.close_all_tabs(9222) == 0

    @pytest.mark.asyncio
    async def test_close_tab_propagates_errors(self):
        """Closing an unknown id raises."""
        error = httpx.HTTPStatusError("404", request=MagicMock(), response=MagicMock())
        with patch.object(DevTools, "close_target", AsyncMock(side_effect=error)):
            with pytest.raises(httpx.HTTPStatusError):
                await registry.close_tab("missing", 9222)
