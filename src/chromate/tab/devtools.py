"""Remote debugging client adapter.

Targets are created, listed and closed through the browser's HTTP endpoints
(``/json/new``, ``/json/list``, ``/json/close``, ``/json/version``) using httpx.
Each tab then talks CDP over its own websocket through a cdp-use ``CDPClient``.
"""

import logging
from typing import Any
from urllib.parse import quote

import httpx
from cdp_use import CDPClient

from chromate.config import CONFIG

logger = logging.getLogger(__name__)

Target = dict[str, Any]


class DevTools:
    """HTTP + websocket access to one browser's remote debugging port.

    Example:
        >>> devtools = DevTools(port=9222)
        >>> target = await devtools.new_target()
        >>> client = await devtools.connect(target)
        >>> await client.send.Page.navigate(params={'url': 'https://example.com'})
    """

    def __init__(
        self,
        port: int | None = None,
        host: str = 'localhost',
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.port = port or CONFIG.CHROME_PORT
        self.host = host
        self.timeout = timeout
        self.transport = transport

    @property
    def base_url(self) -> str:
        return f'http://{self.host}:{self.port}'

    async def _request(self, method: str, path: str) -> httpx.Response:
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
            response = await client.request(method, path)
            response.raise_for_status()
            return response

    async def new_target(self, url: str = 'about:blank') -> Target:
        """Open a new page target and return its description."""
        response = await self._request('PUT', f'/json/new?{quote(url, safe=":/?&=#%")}')
        target = response.json()
        logger.debug(f'[DevTools] Created target {target.get("id")} on port {self.port}')
        return target

    async def list_targets(self) -> list[Target]:
        """Return every target the browser reports, unfiltered."""
        response = await self._request('GET', '/json/list')
        return response.json()

    async def close_target(self, target_id: str) -> None:
        """Close a target by id. HTTP errors (e.g. unknown id) propagate."""
        await self._request('GET', f'/json/close/{target_id}')
        logger.debug(f'[DevTools] Closed target {target_id}')

    async def version(self) -> dict[str, Any]:
        """Return browser and protocol version info."""
        response = await self._request('GET', '/json/version')
        return response.json()

    async def connect(self, target: Target) -> CDPClient:
        """Open a CDP websocket connection scoped to ``target``."""
        ws_url = target.get('webSocketDebuggerUrl')
        if not ws_url:
            raise RuntimeError(f'Target {target.get("id")} has no webSocketDebuggerUrl (already attached?)')
        client = CDPClient(ws_url)
        await client.start()
        logger.debug(f'[DevTools] Connected to {ws_url}')
        return client

    async def disconnect(self, client: CDPClient) -> None:
        await client.stop()
