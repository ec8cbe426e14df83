"""Browser launch configuration."""

import os
import sys
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from chromate.config import CONFIG

# Flags passed to every launch, after the caller's own flags
DEFAULT_FLAGS: tuple[str, ...] = (
    # Google Translate service
    '--disable-translate',
    '--disable-extensions',
    # Extension updating, safe browsing, upgrade detector, UMA
    '--disable-background-networking',
    '--safebrowsing-disable-auto-update',
    '--disable-sync',
    # Collect but never report metrics
    '--metrics-recording-only',
    '--disable-default-apps',
    '--no-first-run',
    '--disable-background-timer-throttling',
    '--disable-renderer-backgrounding',
    '--disable-device-discovery-notifications',
)

EXEC_PATHS: dict[str, list[str]] = {
    'darwin': [
        '/Applications/Google Chrome.app/Contents/MacOS/Google Chrome',
        '/Applications/Chromium.app/Contents/MacOS/Chromium',
    ],
    'linux': [
        '/usr/bin/google-chrome',
        '/usr/bin/google-chrome-stable',
        '/opt/google/chrome/chrome',
        '/usr/bin/chromium-browser',
        '/usr/bin/chromium',
    ],
    'win32': [
        'C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe',
        'C:\\Program Files (x86)\\Google\\Chrome\\Application\\chrome.exe',
    ],
}

CANARY_PATHS: dict[str, list[str]] = {
    'darwin': ['/Applications/Google Chrome Canary.app/Contents/MacOS/Google Chrome Canary'],
    # No Canary channel on Linux
    'linux': [],
    'win32': [os.path.join(os.environ.get('LOCALAPPDATA', ''), 'Google', 'Chrome SxS', 'Application', 'chrome.exe')],
}


def _platform() -> Literal['darwin', 'linux', 'win32']:
    if sys.platform.startswith('linux'):
        return 'linux'
    if sys.platform == 'darwin':
        return 'darwin'
    return 'win32'


def _first_existing(paths: list[str]) -> str | None:
    for path in paths:
        if path and Path(path).exists():
            return path
    return None


def _playwright_chromium() -> str | None:
    """Path of playwright's bundled chromium, if it has been installed."""
    try:
        from playwright.sync_api import sync_playwright

        with sync_playwright() as p:
            path = p.chromium.executable_path
    except Exception:
        return None
    return path if path and Path(path).exists() else None


def find_exec_path(canary: bool = False) -> str | None:
    """Resolve a browser executable for this platform.

    ``CHROME_BIN`` wins when set. Otherwise the stable (or, with ``canary``,
    the Canary) install locations are tried first, then the other channel,
    then playwright's bundled chromium.
    """
    if CONFIG.CHROME_BIN:
        return CONFIG.CHROME_BIN if Path(CONFIG.CHROME_BIN).exists() else None

    platform = _platform()
    stable = EXEC_PATHS.get(platform, [])
    canary_paths = CANARY_PATHS.get(platform, [])
    ordered = canary_paths + stable if canary else stable + canary_paths
    return _first_existing(ordered) or _playwright_chromium()


def get_exec_path(canary: bool = False) -> str:
    """Like ``find_exec_path`` but returns a message when nothing is installed."""
    return find_exec_path(canary) or 'No Chrome installation found'


class ChromeProfile(BaseModel):
    """Launch settings for one browser process.

    ``user_data_dir`` selects the profile directory: ``None`` creates a
    temporary directory that is removed when the process is killed, a path is
    used as is and kept, and ``False`` uses the system default profile.
    """

    model_config = ConfigDict(extra='ignore', validate_assignment=True)

    debug: bool = Field(default=True, description='Enable the remote debugging port')
    port: int = Field(default_factory=lambda: CONFIG.CHROME_PORT)
    headless: bool = True
    disable_gpu: bool = True
    exec_path: str | None = Field(default=None, description='Browser executable; resolved at launch when unset')
    user_data_dir: Path | Literal[False] | None = None
    chrome_flags: list[str] = Field(default_factory=list)
    canary: bool = False
    retry: int = Field(default=3, ge=0, description='Readiness probes after the first one')
    retry_interval: float = Field(default=0.1, ge=0, description='Seconds between readiness probes')
    verbose: bool = False

    def merge(self, **overrides) -> 'ChromeProfile':
        if not overrides:
            return self
        return type(self).model_validate({**self.model_dump(), **overrides})

    def resolve_exec_path(self) -> str | None:
        if self.exec_path and not self.canary:
            return self.exec_path
        return find_exec_path(self.canary)

    @property
    def debug_port(self) -> int:
        """Port to probe: a caller-supplied --remote-debugging-port flag wins."""
        for flag in self.chrome_flags:
            if flag.startswith('--remote-debugging-port='):
                value = flag.split('=', 1)[1]
                if value.isdigit():
                    return int(value)
        return self.port

    @property
    def wants_profile_dir(self) -> bool:
        """False when no ``--user-data-dir`` should be added by us."""
        if self.user_data_dir is False:
            return False
        return not any(flag.startswith('--user-data-dir') for flag in self.chrome_flags)

    def get_args(self, user_data_dir: Path | None = None) -> list[str]:
        """Chrome command line arguments, excluding the executable."""
        args = []
        if self.debug:
            args.append(f'--remote-debugging-port={self.port}')
        if self.headless:
            args.append('--headless')
        if self.disable_gpu:
            args.append('--disable-gpu')
        if user_data_dir is not None:
            args.append(f'--user-data-dir={user_data_dir}')
        if CONFIG.IN_DOCKER and '--no-sandbox' not in self.chrome_flags:
            args.append('--no-sandbox')
        args.extend(self.chrome_flags)
        args.extend(DEFAULT_FLAGS)
        return args
