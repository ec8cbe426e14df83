"""Target registry: list and close the tabs of a running browser."""

import asyncio
import logging
from typing import Any

from chromate.tab.devtools import DevTools, Target

logger = logging.getLogger(__name__)


async def list_tabs(port: int | None = None) -> list[Target]:
    """All targets of the browser on ``port``, including non-page ones."""
    return await DevTools(port=port).list_targets()


async def close_tab(target_id: str, port: int | None = None) -> None:
    """Close one target. Unknown ids raise ``httpx.HTTPStatusError``."""
    await DevTools(port=port).close_target(target_id)


async def close_all_tabs(port: int | None = None) -> int:
    """Close every target concurrently and return how many there were."""
    devtools = DevTools(port=port)
    targets = await devtools.list_targets()
    await asyncio.gather(*(devtools.close_target(target['id']) for target in targets))
    logger.debug(f'[registry] Closed {len(targets)} targets on port {devtools.port}')
    return len(targets)


async def version(port: int | None = None) -> dict[str, Any]:
    return await DevTools(port=port).version()
