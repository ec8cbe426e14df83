"""Process supervisor for local headless Chrome.

``Chrome`` owns a bubus ``EventBus``; launch and kill requests are dispatched as
``BrowserLaunchEvent`` / ``BrowserKillEvent`` and handled by a
``LocalBrowserWatchdog``. Listing uses psutil and works on processes started by
anyone, which is what ``killall`` relies on.

Example:
    >>> chrome = Chrome(port=9333)
    >>> proc = await chrome.start()
    >>> tab = await Tab.open_url('https://example.com', port=proc.port, wait_for_done=False)
    >>> await tab.close()
    >>> await chrome.kill(proc)
"""

import logging
import re
from collections.abc import Iterable
from typing import Any

import psutil
from bubus import EventBus

from chromate.browser.events import BrowserKillEvent, BrowserLaunchEvent
from chromate.browser.profile import ChromeProfile, get_exec_path
from chromate.browser.views import ChromeProcess, ProcessInfo
from chromate.browser.watchdogs.local_browser_watchdog import LocalBrowserWatchdog, wait_until_ready
from chromate.exceptions import LaunchError
from chromate.tab.devtools import DevTools

logger = logging.getLogger(__name__)

_CHROME_COMMAND = re.compile(r'chrome', re.IGNORECASE)

KillTarget = ChromeProcess | int | str | Iterable[Any] | None


def _collect_pids(job: KillTarget) -> list[int]:
    if job is None:
        return []
    if isinstance(job, ChromeProcess):
        return [job.pid]
    if isinstance(job, (int, str)):
        return [int(job)]
    pids: list[int] = []
    for item in job:
        pids.extend(_collect_pids(item))
    return pids


def list_processes(include_children: bool = False) -> list[ProcessInfo]:
    """Find running headless Chrome processes.

    Matches processes whose command contains ``chrome`` (any case) and that
    were started with ``--headless``. Helper processes (``--type=...``) are
    dropped unless ``include_children`` is set.
    """
    found = []
    for proc in psutil.process_iter(['pid', 'name', 'cmdline']):
        cmdline = proc.info.get('cmdline') or []
        name = proc.info.get('name') or ''
        command = cmdline[0] if cmdline else name
        if not (_CHROME_COMMAND.search(command) or _CHROME_COMMAND.search(name)):
            continue
        arguments = list(cmdline[1:])
        if not any(arg.startswith('--headless') for arg in arguments):
            continue
        info = ProcessInfo(pid=proc.info['pid'], command=command, arguments=arguments)
        if info.is_child and not include_children:
            continue
        found.append(info)
    return found


class Chrome:
    """Start, probe, list and kill local Chrome processes."""

    def __init__(
        self,
        profile: ChromeProfile | None = None,
        event_bus: EventBus | None = None,
        **overrides: Any,
    ):
        self.profile = (profile or ChromeProfile()).merge(**overrides)
        self.event_bus = event_bus or EventBus()
        self._local_browser_watchdog: LocalBrowserWatchdog | None = None

    @property
    def logger(self) -> logging.Logger:
        return logger

    def attach_watchdogs(self) -> None:
        if self._local_browser_watchdog is not None:
            return
        LocalBrowserWatchdog.model_rebuild()
        self._local_browser_watchdog = LocalBrowserWatchdog(event_bus=self.event_bus, supervisor=self)
        self._local_browser_watchdog.attach_to_supervisor()

    async def start(self, **overrides: Any) -> ChromeProcess:
        """Spawn Chrome and wait until its debugging port accepts connections.

        Args:
            **overrides: ``ChromeProfile`` fields for this launch only.

        Raises:
            LaunchError: the browser could not be started or never became ready.
        """
        self.attach_watchdogs()
        profile = self.profile.merge(**overrides)
        event = self.event_bus.dispatch(BrowserLaunchEvent(profile=profile))
        await event
        try:
            return await event.event_result(raise_if_any=True, raise_if_none=True)
        except LaunchError:
            raise
        except Exception as e:
            raise LaunchError(f'Failed to launch Chrome: {e}', port=profile.debug_port) from e

    async def ready(self, **overrides: Any) -> None:
        """Probe the debugging port with retry. Raises ``LaunchError`` if it never answers."""
        profile = self.profile.merge(**overrides)
        await wait_until_ready(profile.debug_port, profile.retry, profile.retry_interval)

    async def kill(self, job: KillTarget) -> int:
        """SIGTERM a started process, a pid, or several pids.

        Missing processes are ignored. Temporary profiles are removed either
        way. Returns how many processes were signalled.
        """
        pids = _collect_pids(job)
        if not pids:
            return 0
        self.attach_watchdogs()
        event = self.event_bus.dispatch(BrowserKillEvent(pids=pids))
        await event
        return await event.event_result(raise_if_any=True, raise_if_none=False) or 0

    async def killall(self) -> int:
        """Kill every listed headless Chrome. Returns the number listed."""
        processes = self.list()
        await self.kill([info.pid for info in processes])
        return len(processes)

    async def version(self, port: int | None = None) -> dict[str, Any]:
        """Browser and protocol version info from ``/json/version``."""
        return await DevTools(port=port or self.profile.debug_port).version()

    async def stop(self) -> None:
        """Stop the event bus. Running browsers are left alone."""
        await self.event_bus.stop(clear=True, timeout=5)

    @staticmethod
    def get_exec_path(canary: bool = False) -> str:
        return get_exec_path(canary)

    def list(self, include_children: bool = False) -> list[ProcessInfo]:
        return list_processes(include_children)
