"""Pytest configuration and fixtures for the chromate test suite.

No browser is needed: tabs run against in-memory fakes of the DevTools HTTP
adapter and the cdp-use client.

Shared Fakes:
    FakeCDPClient mimics ``client.send.<Domain>.<method>(params=...)`` and
    ``client.register.<Domain>.<event>(handler)``. Responses are canned per
    method, and protocol events can be scripted to fire after a command
    (typically ``Page.navigate``) returns.
    FakeDevTools hands out one fake client and records closed targets.

Path Setup:
    The src directory is added to sys.path so the suite also runs from a
    plain checkout: ``from chromate.tab.session import Tab``
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from chromate.tab.session import Tab  # noqa: E402

TARGET_ID = "TARGET-1"
FRAME_ID = "FRAME-1"


# ---------------------------------------------------------------------------
# Protocol event builders
# ---------------------------------------------------------------------------


def console_debug(payload: Any) -> tuple[str, dict]:
    """A ``console.debug`` call carrying ``payload`` as a JSON string."""
    value = payload if isinstance(payload, str) else json.dumps(payload)
    return (
        "Runtime.consoleAPICalled",
        {"type": "debug", "args": [{"type": "string", "value": value}], "executionContextId": 1, "timestamp": 0},
    )


def console_call(call_type: str, *values: str) -> tuple[str, dict]:
    """A non-debug console call such as ``console.log('a', 'b')``."""
    args = [{"type": "string", "value": value} for value in values]
    return (
        "Runtime.consoleAPICalled",
        {"type": call_type, "args": args, "executionContextId": 1, "timestamp": 0},
    )


def log_entry(level: str, text: str) -> tuple[str, dict]:
    return ("Log.entryAdded", {"entry": {"source": "javascript", "level": level, "text": text, "url": "file:///x"}})


LOAD_EVENT = ("Page.loadEventFired", {"timestamp": 1.0})


# ---------------------------------------------------------------------------
# Fake cdp-use client
# ---------------------------------------------------------------------------


class _SendDomain:
    def __init__(self, client: "FakeCDPClient", domain: str):
        self._client = client
        self._domain = domain

    def __getattr__(self, method: str):
        name = f"{self._domain}.{method}"

        async def call(params: dict | None = None, session_id: str | None = None):
            return self._client.handle_command(name, params)

        return call


class _Send:
    def __init__(self, client: "FakeCDPClient"):
        self._client = client

    def __getattr__(self, domain: str) -> _SendDomain:
        return _SendDomain(self._client, domain)


class _RegisterDomain:
    def __init__(self, client: "FakeCDPClient", domain: str):
        self._client = client
        self._domain = domain

    def __getattr__(self, event: str):
        name = f"{self._domain}.{event}"

        def register(handler):
            self._client.handlers[name] = handler

        return register


class _Register:
    def __init__(self, client: "FakeCDPClient"):
        self._client = client

    def __getattr__(self, domain: str) -> _RegisterDomain:
        return _RegisterDomain(self._client, domain)


class FakeCDPClient:
    """In-memory stand-in for ``cdp_use.CDPClient``.

    Like cdp-use, one handler is kept per event method; registering again
    replaces the previous handler.
    """

    def __init__(self, responses: dict[str, Any] | None = None):
        self.responses: dict[str, Any] = {"Page.navigate": {"frameId": FRAME_ID}}
        self.responses.update(responses or {})
        self.calls: list[tuple[str, dict | None]] = []
        self.handlers: dict[str, Any] = {}
        self.scripted: dict[str, list[tuple[str, dict]]] = {}
        self.send = _Send(self)
        self.register = _Register(self)
        self.stopped = False

    def after(self, command: str, *events: tuple[str, dict]) -> "FakeCDPClient":
        """Fire ``events`` in order on later loop iterations once ``command`` returns."""
        self.scripted.setdefault(command, []).extend(events)
        return self

    def handle_command(self, name: str, params: dict | None) -> Any:
        self.calls.append((name, params))
        response = self.responses.get(name, {})
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            response = response(params)
        loop = asyncio.get_running_loop()
        for method, event_params in self.scripted.pop(name, []):
            loop.call_soon(self.fire, method, event_params)
        return response

    def fire(self, method: str, params: dict) -> None:
        handler = self.handlers.get(method)
        if handler is not None:
            handler(params, None)

    def sent(self, name: str) -> list[dict | None]:
        return [params for method, params in self.calls if method == name]

    def methods(self) -> list[str]:
        return [method for method, _ in self.calls]

    async def stop(self) -> None:
        self.stopped = True


class FakeDevTools:
    """In-memory stand-in for ``chromate.tab.devtools.DevTools``."""

    def __init__(self, client: FakeCDPClient, port: int = 9222):
        self.client = client
        self.port = port
        self.target = {
            "id": TARGET_ID,
            "type": "page",
            "title": "",
            "url": "about:blank",
            "webSocketDebuggerUrl": f"ws://localhost:{port}/devtools/page/{TARGET_ID}",
        }
        self.closed: list[str] = []
        self.close_error: BaseException | None = None

    async def new_target(self, url: str = "about:blank") -> dict:
        return dict(self.target)

    async def connect(self, target: dict) -> FakeCDPClient:
        return self.client

    async def disconnect(self, client: FakeCDPClient) -> None:
        await client.stop()

    async def close_target(self, target_id: str) -> None:
        if self.close_error is not None:
            raise self.close_error
        self.closed.append(target_id)

    async def list_targets(self) -> list[dict]:
        return [dict(self.target)]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cdp_client() -> FakeCDPClient:
    return FakeCDPClient()


@pytest.fixture
def devtools(cdp_client) -> FakeDevTools:
    return FakeDevTools(cdp_client)


@pytest.fixture
def abort_handler() -> MagicMock:
    """Replaces the default abort handler, which would exit the test process."""
    return MagicMock()


@pytest.fixture
def make_tab(devtools, abort_handler):
    """Factory for tabs wired to the fakes."""

    def factory(**settings) -> Tab:
        settings.setdefault("timeout", 2)
        return Tab(devtools=devtools, abort_handler=abort_handler, **settings)

    return factory
