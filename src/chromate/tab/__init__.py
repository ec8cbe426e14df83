"""Tab sessions driven over the Chrome DevTools Protocol."""

from chromate.tab.devtools import DevTools
from chromate.tab.registry import close_all_tabs, close_tab, list_tabs, version
from chromate.tab.session import Tab
from chromate.tab.views import EventKind, EventRecord, TabSettings, TabState, Viewport

__all__ = [
    'DevTools',
    'EventKind',
    'EventRecord',
    'Tab',
    'TabSettings',
    'TabState',
    'Viewport',
    'close_all_tabs',
    'close_tab',
    'list_tabs',
    'version',
]
