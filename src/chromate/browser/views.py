"""Data models for browser processes."""

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr


class ChromeProcess(BaseModel):
    """A browser process started by ``Chrome.start``.

    ``user_data_dir`` is the profile directory in use; it is ``None`` when the
    system default profile was requested. ``temporary`` marks directories that
    are removed again when the process is killed.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    pid: int
    port: int
    exec_path: str
    args: list[str] = Field(default_factory=list)
    user_data_dir: Path | None = None
    temporary: bool = False

    _process: Any = PrivateAttr(default=None)

    @property
    def spawnargs(self) -> list[str]:
        return [self.exec_path, *self.args]

    @property
    def returncode(self) -> int | None:
        return self._process.poll() if self._process is not None else None

    def __str__(self) -> str:
        return f'{self.pid}: {" ".join(self.spawnargs)}'


class ProcessInfo(BaseModel):
    """One row of ``Chrome.list``."""

    model_config = ConfigDict(frozen=True)

    pid: int
    command: str
    arguments: list[str] = Field(default_factory=list)

    @property
    def is_child(self) -> bool:
        """Renderer, GPU and other helper processes carry a ``--type=`` flag."""
        return any('--type=' in arg for arg in self.arguments)
