"""Base watchdog class for browser process components."""

import logging
from typing import Any, ClassVar

from bubus import BaseEvent, EventBus
from pydantic import BaseModel, ConfigDict, Field


class BaseWatchdog(BaseModel):
    """Base class for watchdogs attached to a ``Chrome`` supervisor's event bus.

    Subclasses declare the events they handle in ``LISTENS_TO`` and register
    ``on_<EventName>`` handlers in ``attach_to_supervisor``.
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        extra='forbid',
        validate_assignment=False,
        revalidate_instances='never',
    )

    LISTENS_TO: ClassVar[list[type[BaseEvent[Any]]]] = []
    EMITS: ClassVar[list[type[BaseEvent[Any]]]] = []

    event_bus: EventBus = Field()
    supervisor: Any = Field()  # Chrome

    @property
    def logger(self) -> logging.Logger:
        return self.supervisor.logger

    def attach_to_supervisor(self) -> None:
        """Register handlers for every event in ``LISTENS_TO``."""
        for event_class in self.LISTENS_TO:
            handler = getattr(self, f'on_{event_class.__name__}')
            self.event_bus.on(event_class, handler)
