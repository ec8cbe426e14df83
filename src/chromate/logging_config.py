"""Logging setup shared by the CLI and library users."""

import logging
import sys

from chromate.config import CONFIG

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Chatty third-party loggers that follow CDP_LOGGING_LEVEL instead of ours
THIRD_PARTY_LOGGERS = ('cdp_use', 'websockets', 'httpx', 'httpcore', 'bubus')


def setup_logging(level: str | int | None = None, stream=None) -> logging.Logger:
    """Configure root logging for chromate.

    Args:
        level: Log level name or number. Defaults to ``CHROMATE_LOGGING_LEVEL``.
        stream: Output stream, stderr by default so stdout stays clean for
            command output.

    Returns:
        The ``chromate`` package logger.
    """
    if level is None:
        level = CONFIG.LOGGING_LEVEL
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logging.basicConfig(stream=stream or sys.stderr, level=level, format=LOG_FORMAT, force=True)

    cdp_level = logging.getLevelName(CONFIG.CDP_LOGGING_LEVEL)
    if not isinstance(cdp_level, int):
        cdp_level = logging.WARNING
    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(max(cdp_level, level))

    logger = logging.getLogger('chromate')
    logger.setLevel(level)
    return logger
