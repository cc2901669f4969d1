"""
HTTP Client Factory and Settings Unit Tests
"""

import logging

import httpx
import pytest

from httpmetrics.config import Settings, get_settings
from httpmetrics.http_client import create_async_client, create_client
from httpmetrics.logging_config import setup_logging
from httpmetrics.transport import AsyncTracingTransport, TracingTransport


class TestSettings:
    """Environment configuration"""

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.RESOLVE_DNS is True
        assert settings.FOLLOW_REDIRECTS is False
        assert settings.KEEPALIVE_EXPIRY == 90.0

    def test_env_override(self, monkeypatch):
        """Test HTTPMETRICS_ prefixed variables override defaults"""
        monkeypatch.setenv("HTTPMETRICS_HTTP_TIMEOUT", "5")
        monkeypatch.setenv("HTTPMETRICS_RESOLVE_DNS", "false")

        settings = get_settings()
        assert settings.HTTP_TIMEOUT == 5.0
        assert settings.RESOLVE_DNS is False

    def test_cached(self):
        assert get_settings() is get_settings()


class TestCreateClient:
    """Client factory"""

    def test_tracing_transport_by_default(self):
        with create_client() as client:
            assert isinstance(client._transport, TracingTransport)
            assert client.follow_redirects is False
            assert client.timeout.read == get_settings().HTTP_TIMEOUT

    def test_plain_transport_when_resolution_disabled(self, monkeypatch):
        monkeypatch.setenv("HTTPMETRICS_RESOLVE_DNS", "false")
        with create_client() as client:
            assert type(client._transport) is httpx.HTTPTransport

    def test_settings_applied(self, monkeypatch):
        """Test timeouts and redirect policy come from settings"""
        monkeypatch.setenv("HTTPMETRICS_HTTP_CONNECT_TIMEOUT", "2.5")
        monkeypatch.setenv("HTTPMETRICS_FOLLOW_REDIRECTS", "true")
        with create_client() as client:
            assert client.timeout.connect == 2.5
            assert client.follow_redirects is True

    @pytest.mark.asyncio
    async def test_async_client(self):
        async with create_async_client() as client:
            assert isinstance(client._transport, AsyncTracingTransport)


class TestSetupLogging:
    """Logging configuration"""

    @pytest.fixture(autouse=True)
    def restore_loggers(self):
        names = ("httpmetrics", "httpx", "httpcore")
        saved = {
            name: (logging.getLogger(name).level, list(logging.getLogger(name).handlers), logging.getLogger(name).propagate)
            for name in names
        }
        yield
        for name, (level, handlers, propagate) in saved.items():
            logger = logging.getLogger(name)
            logger.setLevel(level)
            logger.handlers = handlers
            logger.propagate = propagate

    def test_info_by_default(self):
        setup_logging()
        assert logging.getLogger("httpmetrics").level == logging.INFO
        assert logging.getLogger("httpcore").level == logging.WARNING

    def test_debug(self, monkeypatch):
        """Test DEBUG raises verbosity of the package and httpcore"""
        monkeypatch.setenv("HTTPMETRICS_DEBUG", "true")
        setup_logging()
        assert logging.getLogger("httpmetrics").level == logging.DEBUG
        assert logging.getLogger("httpcore").level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.INFO
