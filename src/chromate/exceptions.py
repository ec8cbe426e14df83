"""Exceptions raised by chromate."""

from typing import Any


class ChromateError(Exception):
    """Base exception for all chromate errors."""
    pass


class LaunchError(ChromateError):
    """Raised when the browser process cannot be spawned or never becomes ready."""

    def __init__(self, message: str, exec_path: str | None = None, port: int | None = None):
        super().__init__(message)
        self.message = message
        self.exec_path = exec_path
        self.port = port


class TabSessionError(ChromateError):
    """Raised when a tab is used out of order (e.g. opened twice)."""
    pass


class NavigationError(TabSessionError):
    """Raised when the browser reports a navigation failure."""

    def __init__(self, url: str, error_text: str):
        super().__init__(f'Navigation to {url} failed: {error_text}')
        self.url = url
        self.error_text = error_text


class PageError(TabSessionError):
    """Raised when the page logs an error-level entry and fail_on_error is set."""

    def __init__(self, entry: dict[str, Any]):
        text = entry.get('text', '')
        url = entry.get('url')
        super().__init__(f'{text} ({url})' if url else text)
        self.entry = entry

    @property
    def level(self) -> str | None:
        return self.entry.get('level')

    @property
    def source(self) -> str | None:
        return self.entry.get('source')


class TabTimeoutError(TabSessionError, TimeoutError):
    """Raised when a tab does not complete within its configured timeout."""

    def __init__(self, target_id: str | None, url: str | None, timeout: float):
        super().__init__(f'Tab timed out after {timeout}s: {target_id} {url}')
        self.target_id = target_id
        self.url = url
        self.timeout = timeout
