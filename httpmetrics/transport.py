"""
Tracing Transports

httpx transports whose connection pool resolves host names explicitly, so the
request's ClientTrace receives DNS start/done and a connect start per resolved
address. httpcore itself resolves inside ``connect_tcp`` and reports no DNS
events.

The trace of the request being dispatched is carried in a ContextVar, which
follows the request into the network backend on the same thread (sync) or
task (async).
"""

import ipaddress
import logging
import socket
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterable, Iterator, Optional

import anyio
import httpcore
import httpx

from httpmetrics.trace import DNSDoneInfo, DNSStartInfo, TraceAdapter

logger = logging.getLogger(__name__)

_active_trace: ContextVar[Optional[TraceAdapter]] = ContextVar(
    "httpmetrics_active_trace", default=None
)


@contextmanager
def activate(adapter: TraceAdapter) -> Iterator[TraceAdapter]:
    """Make ``adapter`` the trace seen by resolving backends in this context."""
    token = _active_trace.set(adapter)
    try:
        yield adapter
    finally:
        _active_trace.reset(token)


def active_trace() -> Optional[TraceAdapter]:
    """Trace adapter of the request currently being dispatched, if any"""
    return _active_trace.get()


def _is_ip_literal(host: str) -> bool:
    try:
        ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        return False
    return True


def _unique_addresses(infos: Iterable[tuple]) -> list[str]:
    """Resolved addresses in resolver order, without duplicates."""
    addresses: list[str] = []
    for info in infos:
        address = info[4][0]
        if address not in addresses:
            addresses.append(address)
    return addresses


def _host_port(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


class ResolvingBackend(httpcore.NetworkBackend):
    """
    Network backend wrapper that reports name resolution

    With an active trace, host names are resolved with ``socket.getaddrinfo``
    and each resolved address is tried in turn. IP literals skip resolution.
    Without an active trace every call is delegated untouched.
    """

    def __init__(self, backend: httpcore.NetworkBackend):
        self._backend = backend

    def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        local_address: Optional[str] = None,
        socket_options: Optional[Iterable[Any]] = None,
    ) -> httpcore.NetworkStream:
        adapter = _active_trace.get()
        if adapter is None:
            return self._backend.connect_tcp(
                host, port, timeout=timeout, local_address=local_address, socket_options=socket_options
            )

        if _is_ip_literal(host):
            addresses = [host]
        else:
            adapter.fire("dns_start", DNSStartInfo(host=host))
            try:
                infos = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM)
            except OSError as e:
                adapter.fire("dns_done", DNSDoneInfo(error=e))
                raise httpcore.ConnectError(f"Name resolution failed for {host}: {e}") from e
            addresses = _unique_addresses(infos)
            adapter.fire("dns_done", DNSDoneInfo(addrs=addresses))

        last_error: Optional[Exception] = None
        for address in addresses:
            adapter.fire("connect_start", "tcp", _host_port(address, port))
            try:
                return self._backend.connect_tcp(
                    address, port, timeout=timeout, local_address=local_address, socket_options=socket_options
                )
            except (httpcore.ConnectError, httpcore.ConnectTimeout) as e:
                logger.debug("Connect to %s failed: %s", _host_port(address, port), e)
                last_error = e

        if last_error is None:
            raise httpcore.ConnectError(f"No addresses found for {host}")
        raise last_error

    def connect_unix_socket(
        self,
        path: str,
        timeout: Optional[float] = None,
        socket_options: Optional[Iterable[Any]] = None,
    ) -> httpcore.NetworkStream:
        return self._backend.connect_unix_socket(path, timeout=timeout, socket_options=socket_options)

    def sleep(self, seconds: float) -> None:
        self._backend.sleep(seconds)


class AsyncResolvingBackend(httpcore.AsyncNetworkBackend):
    """
    Async counterpart of ResolvingBackend, resolving with anyio.getaddrinfo

    Resolution is bounded by the connect timeout, as in httpcore's own
    AnyIO backend.
    """

    def __init__(self, backend: httpcore.AsyncNetworkBackend):
        self._backend = backend

    async def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        local_address: Optional[str] = None,
        socket_options: Optional[Iterable[Any]] = None,
    ) -> httpcore.AsyncNetworkStream:
        adapter = _active_trace.get()
        if adapter is None:
            return await self._backend.connect_tcp(
                host, port, timeout=timeout, local_address=local_address, socket_options=socket_options
            )

        if _is_ip_literal(host):
            addresses = [host]
        else:
            adapter.fire("dns_start", DNSStartInfo(host=host))
            try:
                with anyio.fail_after(timeout):
                    infos = await anyio.getaddrinfo(host, port, type=socket.SOCK_STREAM)
            except TimeoutError as e:
                adapter.fire("dns_done", DNSDoneInfo(error=e))
                raise httpcore.ConnectTimeout(f"Name resolution timed out for {host}") from e
            except OSError as e:
                adapter.fire("dns_done", DNSDoneInfo(error=e))
                raise httpcore.ConnectError(f"Name resolution failed for {host}: {e}") from e
            addresses = _unique_addresses(infos)
            adapter.fire("dns_done", DNSDoneInfo(addrs=addresses))

        last_error: Optional[Exception] = None
        for address in addresses:
            adapter.fire("connect_start", "tcp", _host_port(address, port))
            try:
                return await self._backend.connect_tcp(
                    address, port, timeout=timeout, local_address=local_address, socket_options=socket_options
                )
            except (httpcore.ConnectError, httpcore.ConnectTimeout) as e:
                logger.debug("Connect to %s failed: %s", _host_port(address, port), e)
                last_error = e

        if last_error is None:
            raise httpcore.ConnectError(f"No addresses found for {host}")
        raise last_error

    async def connect_unix_socket(
        self,
        path: str,
        timeout: Optional[float] = None,
        socket_options: Optional[Iterable[Any]] = None,
    ) -> httpcore.AsyncNetworkStream:
        return await self._backend.connect_unix_socket(path, timeout=timeout, socket_options=socket_options)

    async def sleep(self, seconds: float) -> None:
        await self._backend.sleep(seconds)


class TracingTransport(httpx.HTTPTransport):
    """
    httpx.HTTPTransport with a resolving network backend

    Accepts the same arguments as httpx.HTTPTransport.
    """

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        # httpx has no network_backend option; wrap the pool's backend in place
        self._pool._network_backend = ResolvingBackend(self._pool._network_backend)

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        adapter = request.extensions.get("trace")
        if not isinstance(adapter, TraceAdapter):
            return super().handle_request(request)
        adapter.resolves_names = True
        with activate(adapter):
            return super().handle_request(request)


class AsyncTracingTransport(httpx.AsyncHTTPTransport):
    """
    httpx.AsyncHTTPTransport with a resolving network backend

    Accepts the same arguments as httpx.AsyncHTTPTransport.
    """

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._pool._network_backend = AsyncResolvingBackend(self._pool._network_backend)

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        adapter = request.extensions.get("trace")
        if not isinstance(adapter, TraceAdapter):
            return await super().handle_async_request(request)
        adapter.resolves_names = True
        with activate(adapter):
            return await super().handle_async_request(request)
