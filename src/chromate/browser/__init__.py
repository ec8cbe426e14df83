"""Local Chrome process management."""

from chromate.browser.profile import DEFAULT_FLAGS, ChromeProfile, get_exec_path
from chromate.browser.supervisor import Chrome, list_processes
from chromate.browser.views import ChromeProcess, ProcessInfo

__all__ = [
    'Chrome',
    'ChromeProcess',
    'ChromeProfile',
    'DEFAULT_FLAGS',
    'ProcessInfo',
    'get_exec_path',
    'list_processes',
]
