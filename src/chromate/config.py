"""Configuration system for chromate.

Environment variables are read through pydantic-settings (which also picks up a
local ``.env`` file). The ``CONFIG`` singleton re-reads the environment on every
access so tests and long-running processes see changes without re-importing.
"""

import logging
import os
from functools import cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_PORT = 9222


class EnvConfig(BaseSettings):
    """Environment variable configuration using pydantic-settings."""

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=True,
        extra='allow',
    )

    # Browser process
    CHROME_PORT: int = Field(default=DEFAULT_PORT)
    CHROME_BIN: str | None = Field(default=None)

    # Tabs
    CHROMATE_TIMEOUT: float = Field(default=0.0, ge=0)

    # Logging
    CHROMATE_LOGGING_LEVEL: str = Field(default='info')
    CDP_LOGGING_LEVEL: str = Field(default='WARNING')


@cache
def is_running_in_docker() -> bool:
    """Detect if we are running in a docker container.

    Chrome needs ``--no-sandbox`` when running as root inside a container.
    """
    try:
        if Path('/.dockerenv').exists():
            return True
        cgroup_path = Path('/proc/1/cgroup')
        if cgroup_path.exists() and 'docker' in cgroup_path.read_text().lower():
            return True
    except OSError:
        pass
    return False


class Config:
    """Configuration class backed by environment variables.

    Re-reads environment variables on every access for flexibility.
    """

    _instance: 'Config | None' = None

    def __new__(cls) -> 'Config':
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @property
    def CHROME_PORT(self) -> int:
        return EnvConfig().CHROME_PORT

    @property
    def CHROME_BIN(self) -> str | None:
        return EnvConfig().CHROME_BIN or None

    @property
    def CHROMATE_TIMEOUT(self) -> float:
        return EnvConfig().CHROMATE_TIMEOUT

    @property
    def LOGGING_LEVEL(self) -> str:
        return os.getenv('CHROMATE_LOGGING_LEVEL', 'info').lower()

    @property
    def CDP_LOGGING_LEVEL(self) -> str:
        return os.getenv('CDP_LOGGING_LEVEL', 'WARNING').upper()

    @property
    def IN_DOCKER(self) -> bool:
        return os.getenv('IN_DOCKER', 'false').lower()[:1] in 'ty1' or is_running_in_docker()

    @property
    def TMP_DIR(self) -> Path:
        import tempfile

        return Path(tempfile.gettempdir())


# Create singleton instance
CONFIG = Config()


def get_port() -> int:
    """Default remote debugging port (``CHROME_PORT`` or 9222)."""
    return CONFIG.CHROME_PORT
