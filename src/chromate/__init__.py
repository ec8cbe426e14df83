"""chromate - headless Chrome process and tab automation over CDP."""

__version__ = "0.3.0"

from chromate.browser import Chrome, ChromeProcess, ChromeProfile, ProcessInfo
from chromate.exceptions import (
    ChromateError,
    LaunchError,
    NavigationError,
    PageError,
    TabSessionError,
    TabTimeoutError,
)
from chromate.tab import (
    DevTools,
    EventKind,
    Tab,
    TabSettings,
    TabState,
    close_all_tabs,
    close_tab,
    list_tabs,
)

__all__ = [
    "Chrome",
    "ChromeProcess",
    "ChromeProfile",
    "ChromateError",
    "DevTools",
    "EventKind",
    "LaunchError",
    "NavigationError",
    "PageError",
    "ProcessInfo",
    "Tab",
    "TabSessionError",
    "TabSettings",
    "TabState",
    "TabTimeoutError",
    "close_all_tabs",
    "close_tab",
    "list_tabs",
]
