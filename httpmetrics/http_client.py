"""
HTTP Client Factory Module

Builds default-configured httpx clients whose transports report the full
request lifecycle, including name resolution, to a bound Metric.
"""

from typing import Any

import httpx

from httpmetrics.config import get_settings
from httpmetrics.transport import AsyncTracingTransport, TracingTransport


def _transport_options() -> dict[str, Any]:
    """
    Transport arguments derived from settings

    Returns:
        dict: Keyword arguments for (Async)HTTPTransport
    """
    settings = get_settings()
    return {
        "verify": settings.VERIFY_TLS,
        "http2": settings.HTTP2,
        "limits": httpx.Limits(
            max_connections=settings.MAX_CONNECTIONS,
            max_keepalive_connections=settings.MAX_KEEPALIVE_CONNECTIONS,
            keepalive_expiry=settings.KEEPALIVE_EXPIRY,
        ),
    }


def _client_options() -> dict[str, Any]:
    settings = get_settings()
    return {
        "timeout": httpx.Timeout(settings.HTTP_TIMEOUT, connect=settings.HTTP_CONNECT_TIMEOUT),
        "follow_redirects": settings.FOLLOW_REDIRECTS,
    }


def create_client(**overrides: Any) -> httpx.Client:
    """
    Create a synchronous client for measured requests

    Args:
        **overrides: Transport arguments replacing the configured ones
            (e.g. verify=ssl_context, http2=True)

    Returns:
        httpx.Client: Client on a TracingTransport, or a plain transport
            when RESOLVE_DNS is disabled
    """
    settings = get_settings()
    options = {**_transport_options(), **overrides}
    transport_cls = TracingTransport if settings.RESOLVE_DNS else httpx.HTTPTransport
    return httpx.Client(transport=transport_cls(**options), **_client_options())


def create_async_client(**overrides: Any) -> httpx.AsyncClient:
    """
    Create an asynchronous client for measured requests

    Args:
        **overrides: Transport arguments replacing the configured ones

    Returns:
        httpx.AsyncClient: Client on an AsyncTracingTransport, or a plain
            transport when RESOLVE_DNS is disabled
    """
    settings = get_settings()
    options = {**_transport_options(), **overrides}
    transport_cls = AsyncTracingTransport if settings.RESOLVE_DNS else httpx.AsyncHTTPTransport
    return httpx.AsyncClient(transport=transport_cls(**options), **_client_options())
