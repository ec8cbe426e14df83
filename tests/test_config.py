"""Tests for environment configuration and logging setup."""

import io
import logging

from chromate.config import CONFIG, DEFAULT_PORT, get_port
from chromate.logging_config import THIRD_PARTY_LOGGERS, setup_logging
from chromate.tab import TabSettings


class TestConfig:
    """Tests for the CONFIG singleton."""

    def test_default_port(self, monkeypatch):
        monkeypatch.delenv('CHROME_PORT', raising=False)

        assert get_port() == DEFAULT_PORT == 9222

    def test_port_from_env(self, monkeypatch):
        """CHROME_PORT is re-read on every access."""
        monkeypatch.setenv('CHROME_PORT', '9444')

        assert CONFIG.CHROME_PORT == 9444
        assert TabSettings().port == 9444

    def test_chrome_bin_blank_is_unset(self, monkeypatch):
        monkeypatch.setenv('CHROME_BIN', '')

        assert CONFIG.CHROME_BIN is None

    def test_logging_levels(self, monkeypatch):
        monkeypatch.setenv('CHROMATE_LOGGING_LEVEL', 'DEBUG')
        monkeypatch.setenv('CDP_LOGGING_LEVEL', 'error')

        assert CONFIG.LOGGING_LEVEL == 'debug'
        assert CONFIG.CDP_LOGGING_LEVEL == 'ERROR'

    def test_in_docker_override(self, monkeypatch):
        monkeypatch.setenv('IN_DOCKER', 'true')

        assert CONFIG.IN_DOCKER is True


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_level_and_stream(self, monkeypatch):
        """Records go to the given stream in the shared format."""
        monkeypatch.setenv('CDP_LOGGING_LEVEL', 'WARNING')
        stream = io.StringIO()

        logger = setup_logging('debug', stream=stream)
        logging.getLogger('chromate.tab.session').debug('[Tab] hello')

        assert logger.level == logging.DEBUG
        assert 'DEBUG - chromate.tab.session - [Tab] hello' in stream.getvalue()
        for name in THIRD_PARTY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self):
        logger = setup_logging('chatty', stream=io.StringIO())

        assert logger.level == logging.INFO
