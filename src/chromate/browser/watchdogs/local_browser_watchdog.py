"""Local browser watchdog for managing browser subprocess lifecycle.

Launches Chrome with remote debugging enabled, probes the debugging port until
it accepts TCP connections, and terminates processes again. Temporary profile
directories are recorded in a marker file per pid (``<tmp>/chromate-<pid>``)
so that a different process (e.g. ``chromate kill``) can remove them later.
"""

import asyncio
import os
import shutil
import signal
import subprocess
import tempfile
from pathlib import Path
from typing import Any, ClassVar

from bubus import BaseEvent
from pydantic import Field

from chromate.browser.events import BrowserKillEvent, BrowserLaunchEvent
from chromate.browser.profile import ChromeProfile
from chromate.browser.views import ChromeProcess
from chromate.browser.watchdogs.base import BaseWatchdog
from chromate.config import CONFIG
from chromate.exceptions import LaunchError

KILL_SIGNAL = signal.SIGTERM
MARKER_PREFIX = 'chromate-'
PROFILE_PREFIX = 'chromate-profile-'


def marker_path(pid: int) -> Path:
    return CONFIG.TMP_DIR / f'{MARKER_PREFIX}{pid}'


def remove_profile(pid: int) -> bool:
    """Delete the temporary profile recorded for ``pid`` and its marker.

    Returns True if a marker existed.
    """
    marker = marker_path(pid)
    if not marker.exists():
        return False
    profile_dir = marker.read_text(encoding='utf-8').strip()
    if profile_dir:
        shutil.rmtree(profile_dir, ignore_errors=True)
    marker.unlink(missing_ok=True)
    return True


async def check_port(port: int, host: str = 'localhost') -> None:
    """Open and close one TCP connection. Raises ``OSError`` if refused."""
    _, writer = await asyncio.open_connection(host, port)
    writer.close()
    await writer.wait_closed()


async def wait_until_ready(
    port: int,
    retry: int = 3,
    retry_interval: float = 0.1,
    process: subprocess.Popen | None = None,
) -> None:
    """Probe ``port`` up to ``1 + retry`` times, ``retry_interval`` seconds apart.

    Raises:
        LaunchError: the port never answered, or ``process`` exited first.
    """
    tries = 1 + retry
    while True:
        if process is not None and process.poll() is not None:
            raise LaunchError(
                f'Chrome exited with code {process.returncode} before port {port} was ready',
                port=port,
            )
        try:
            await check_port(port)
            return
        except OSError as e:
            tries -= 1
            if tries <= 0:
                raise LaunchError(f'Chrome not ready on port {port}: {e}', port=port) from e
            await asyncio.sleep(retry_interval)


class LocalBrowserWatchdog(BaseWatchdog):
    """Manages local browser subprocesses.

    Listens to:
        BrowserLaunchEvent: Spawns Chrome and waits for its debugging port.
        BrowserKillEvent: Sends SIGTERM and removes temporary profiles.

    Example:
        >>> watchdog = LocalBrowserWatchdog(event_bus=bus, supervisor=chrome)
        >>> watchdog.attach_to_supervisor()
        >>> event = bus.dispatch(BrowserLaunchEvent(profile=ChromeProfile(port=9333)))
        >>> chrome_process = await event.event_result()
    """

    LISTENS_TO: ClassVar[list[type[BaseEvent[Any]]]] = [
        BrowserLaunchEvent,
        BrowserKillEvent,
    ]

    EMITS: ClassVar[list[type[BaseEvent[Any]]]] = []

    # Processes spawned by this watchdog, so kill can reap them
    processes: dict[int, Any] = Field(default_factory=dict)

    async def on_BrowserLaunchEvent(self, event: BrowserLaunchEvent) -> ChromeProcess:
        """Launch a local browser process.

        Raises:
            LaunchError: no executable, spawn failure, or the port never
                became ready. A temporary profile is removed again.
        """
        try:
            self.logger.debug('[LocalBrowserWatchdog] Received BrowserLaunchEvent, launching local browser...')
            return await self._launch_browser(event.profile)
        except Exception as e:
            self.logger.error(f'[LocalBrowserWatchdog] Exception in on_BrowserLaunchEvent: {e}')
            raise

    async def on_BrowserKillEvent(self, event: BrowserKillEvent) -> int:
        """Terminate every pid in the event. Returns how many were signalled."""
        killed = 0
        for pid in event.pids:
            if await self._kill(pid):
                killed += 1
        return killed

    async def _kill(self, pid: int) -> bool:
        self.logger.info(f'[LocalBrowserWatchdog] Killing browser process (PID {pid})')
        signalled = True
        try:
            os.kill(pid, KILL_SIGNAL)
        except ProcessLookupError:
            signalled = False
        except PermissionError as e:
            self.logger.warning(f'[LocalBrowserWatchdog] Not allowed to kill PID {pid}: {e}')
            signalled = False

        process = self.processes.pop(pid, None)
        if process is not None and signalled:
            try:
                await asyncio.to_thread(process.wait, 5.0)
            except subprocess.TimeoutExpired:
                self.logger.warning('[LocalBrowserWatchdog] Process did not terminate gracefully, killing')
                try:
                    process.kill()
                    await asyncio.to_thread(process.wait)
                except ProcessLookupError:
                    pass

        if remove_profile(pid):
            self.logger.debug(f'[LocalBrowserWatchdog] Removed temporary profile for PID {pid}')
        return signalled

    async def _launch_browser(self, profile: ChromeProfile) -> ChromeProcess:
        exec_path = await asyncio.to_thread(profile.resolve_exec_path)
        if not exec_path:
            raise LaunchError(
                'No Chrome installation found. Set CHROME_BIN or run `playwright install chromium`.',
                port=profile.port,
            )
        if not Path(exec_path).exists() and shutil.which(exec_path) is None:
            raise LaunchError(f'Chrome executable not found at: {exec_path}', exec_path=exec_path, port=profile.port)

        profile_dir: Path | None = None
        temporary = False
        if profile.wants_profile_dir:
            if profile.user_data_dir:
                profile_dir = Path(profile.user_data_dir).expanduser()
            else:
                profile_dir = Path(tempfile.mkdtemp(prefix=PROFILE_PREFIX, dir=CONFIG.TMP_DIR))
                temporary = True

        args = profile.get_args(profile_dir)
        self.logger.info(f'[LocalBrowserWatchdog] Starting Chrome on port {profile.debug_port}: {exec_path}')

        # Detached so the browser outlives the event loop that started it
        output = None if profile.verbose else subprocess.DEVNULL
        try:
            process = subprocess.Popen(
                [exec_path, *args],
                stdin=subprocess.DEVNULL,
                stdout=output,
                stderr=output,
                start_new_session=True,
            )
        except OSError as e:
            if temporary:
                shutil.rmtree(profile_dir, ignore_errors=True)
            raise LaunchError(f'Failed to start {exec_path}: {e}', exec_path=exec_path, port=profile.port) from e

        self.logger.info(f'[LocalBrowserWatchdog] Chrome process started with PID {process.pid}')

        try:
            await asyncio.sleep(profile.retry_interval)
            await wait_until_ready(profile.debug_port, profile.retry, profile.retry_interval, process)
        except BaseException:
            if process.poll() is None:
                try:
                    process.terminate()
                except ProcessLookupError:
                    pass
            if temporary:
                shutil.rmtree(profile_dir, ignore_errors=True)
            raise

        if temporary:
            marker_path(process.pid).write_text(str(profile_dir), encoding='utf-8')
        self.processes[process.pid] = process

        chrome_process = ChromeProcess(
            pid=process.pid,
            port=profile.debug_port,
            exec_path=exec_path,
            args=args,
            user_data_dir=profile_dir,
            temporary=temporary,
        )
        chrome_process._process = process
        self.logger.info(f'[LocalBrowserWatchdog] Chrome ready on port {profile.debug_port}')
        return chrome_process
