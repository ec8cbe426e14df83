"""Data models for tab sessions."""

from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from chromate.config import CONFIG

EventHandler = Callable[..., Any]


class TabState(str, Enum):
    """Lifecycle states of a tab session."""

    CONSTRUCTED = 'constructed'
    CONNECTING = 'connecting'
    NAVIGATING = 'navigating'
    ACTIVE = 'active'
    SETTLED = 'settled'
    CLOSED = 'closed'


class EventKind(str, Enum):
    """Reserved event names. Any other string is a page-defined or protocol event."""

    READY = 'ready'
    LOAD = 'load'
    DONE = 'done'
    ABORT = 'abort'
    EXCEPTION = 'exception'
    DATA = 'data'
    CONSOLE = 'console'
    # Raw protocol messages as {method, params}
    EVENT = 'event'


class Viewport(BaseModel):
    """Viewport size applied through Emulation.setDeviceMetricsOverride."""

    model_config = ConfigDict(frozen=True)

    width: int = Field(default=680, gt=0)
    height: int = Field(default=800, gt=0)


class TabSettings(BaseModel):
    """Immutable tab configuration.

    Unknown keyword arguments are kept as extra fields so callers can carry
    their own values into event handlers (``tab.settings.my_value``).
    """

    model_config = ConfigDict(frozen=True, extra='allow')

    port: int = Field(default_factory=lambda: CONFIG.CHROME_PORT, description='Remote debugging port')
    fail_on_error: bool = Field(default=True, description='Reject when the page logs an error-level entry')
    verbose: bool = Field(default=False, description='Log network, console and protocol traffic at INFO')
    screenshot: bool = Field(default=False, description='Capture a screenshot before settling on done')
    screenshot_path: Path = Field(default=Path('screenshot.png'))
    viewport: Viewport = Field(default_factory=Viewport)
    wait_for_done: bool = Field(
        default=True,
        description="Complete on the page's 'done' event instead of the load event",
    )
    timeout: float = Field(
        default_factory=lambda: CONFIG.CHROMATE_TIMEOUT,
        ge=0,
        description='Seconds to wait for completion, 0 disables the timer',
    )

    def merge(self, **overrides: Any) -> 'TabSettings':
        """Return a new settings object with ``overrides`` applied."""
        if not overrides:
            return self
        return type(self).model_validate({**self.model_dump(), **overrides})


class EventRecord(BaseModel):
    """A message decoded from a page-side ``console.debug`` call."""

    model_config = ConfigDict(frozen=True)

    event: str = EventKind.DATA.value
    data: Any = None
    payload: Any = None

    @classmethod
    def from_payload(cls, payload: Any) -> 'EventRecord':
        """Build a record from a decoded value, defaulting the name to ``data``.

        ``data`` is the message's ``data`` field. A mapping with neither
        ``event`` nor ``data`` and any non-mapping value is its own data.
        """
        name = EventKind.DATA.value
        data = payload
        if isinstance(payload, dict) and ('event' in payload or 'data' in payload):
            if isinstance(payload.get('event'), str) and payload['event']:
                name = payload['event']
            data = payload.get('data')
        return cls(event=name, data=data, payload=payload)


class EventHandlers:
    """Mapping of event name to an ordered list of callbacks.

    Every callback registered for a name fires on dispatch; duplicates are
    allowed. Callbacks registered with ``once`` are dropped after their first call.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[tuple[EventHandler, bool]]] = {}

    @staticmethod
    def _key(name: 'str | EventKind') -> str:
        return name.value if isinstance(name, EventKind) else name

    def add(self, name: 'str | EventKind', handler: EventHandler, once: bool = False) -> None:
        if not callable(handler):
            raise TypeError(f'Handler for {name!r} must be callable, got {type(handler).__name__}')
        self._handlers.setdefault(self._key(name), []).append((handler, once))

    def remove(self, name: 'str | EventKind', handler: EventHandler | None = None) -> None:
        key = self._key(name)
        if handler is None:
            self._handlers.pop(key, None)
            return
        remaining = [(h, once) for h, once in self._handlers.get(key, []) if h is not handler]
        if remaining:
            self._handlers[key] = remaining
        else:
            self._handlers.pop(key, None)

    def has(self, name: 'str | EventKind') -> bool:
        return bool(self._handlers.get(self._key(name)))

    def names(self) -> list[str]:
        return list(self._handlers)

    def take(self, name: 'str | EventKind') -> list[EventHandler]:
        """Return the callbacks for ``name`` and drop the ``once`` ones."""
        key = self._key(name)
        entries = self._handlers.get(key, [])
        if any(once for _, once in entries):
            kept = [(h, once) for h, once in entries if not once]
            if kept:
                self._handlers[key] = kept
            else:
                self._handlers.pop(key, None)
        return [h for h, _ in entries]

    def __len__(self) -> int:
        return sum(len(v) for v in self._handlers.values())
