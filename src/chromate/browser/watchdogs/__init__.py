"""Browser watchdogs for event-driven process management."""

from chromate.browser.watchdogs.base import BaseWatchdog
from chromate.browser.watchdogs.local_browser_watchdog import LocalBrowserWatchdog

__all__ = [
    'BaseWatchdog',
    'LocalBrowserWatchdog',
]
