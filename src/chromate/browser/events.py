"""Event definitions for the browser process lifecycle."""

import os

from bubus import BaseEvent
from pydantic import Field

from chromate.browser.profile import ChromeProfile
from chromate.browser.views import ChromeProcess


def _get_timeout(env_var: str, default: float) -> float | None:
    """Parse a timeout override from the environment.

    Args:
        env_var: Environment variable name (e.g. 'TIMEOUT_BrowserLaunchEvent')
        default: Default timeout in seconds

    Returns:
        Parsed float value, or the default if unset, negative or malformed
    """
    env_value = os.getenv(env_var)
    if env_value:
        try:
            parsed = float(env_value)
            if parsed < 0:
                return default
            return parsed
        except (ValueError, TypeError):
            pass

    return default


class BrowserLaunchEvent(BaseEvent[ChromeProcess]):
    """Launch a local browser process and wait until its debugging port answers."""

    profile: ChromeProfile = Field(default_factory=ChromeProfile)

    event_timeout: float | None = _get_timeout('TIMEOUT_BrowserLaunchEvent', 30.0)


class BrowserKillEvent(BaseEvent[int]):
    """Terminate browser processes and remove their temporary profiles."""

    pids: list[int] = Field(default_factory=list)

    event_timeout: float | None = _get_timeout('TIMEOUT_BrowserKillEvent', 30.0)
