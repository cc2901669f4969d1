"""
Client Trace

Lifecycle hooks of a single outgoing HTTP request, and the adapters that feed
them from httpcore's "trace" request extension.

httpcore reports events as ``"<area>.<step>.<stage>"`` names, e.g.
``connection.connect_tcp.started`` or ``http11.receive_response_headers.complete``.
The adapters translate those into ClientTrace calls in the order:

    dns_start -> dns_done -> connect_start -> connect_done
    -> tls_handshake_start -> tls_handshake_done
    -> got_conn -> wrote_request -> got_first_response_byte

DNS events only fire when the request goes through a resolving transport
(see httpmetrics.transport); httpcore resolves names inside connect_tcp.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

logger = logging.getLogger(__name__)

_CONNECT_TCP = "connection.connect_tcp"
_CONNECT_UNIX = "connection.connect_unix_socket"
_START_TLS = "connection.start_tls"
_HTTP_AREAS = ("http11", "http2")


@dataclass
class DNSStartInfo:
    """Name resolution is about to start"""

    host: str


@dataclass
class DNSDoneInfo:
    """Name resolution finished"""

    addrs: list[str] = field(default_factory=list)
    error: Optional[BaseException] = None


@dataclass
class GotConnInfo:
    """A connection was obtained for the request"""

    # True when the connection came from the pool instead of being dialed
    reused: bool = False


@dataclass
class WroteRequestInfo:
    """The request (headers and body) has been written"""

    error: Optional[BaseException] = None


@dataclass
class ClientTrace:
    """
    Handler set for the lifecycle of one HTTP request

    Any hook may be left unset. The dispatcher invokes the hooks of a single
    request sequentially, never concurrently.
    """

    dns_start: Optional[Callable[[DNSStartInfo], None]] = None
    dns_done: Optional[Callable[[DNSDoneInfo], None]] = None
    connect_start: Optional[Callable[[str, str], None]] = None
    connect_done: Optional[Callable[[str, str, Optional[BaseException]], None]] = None
    tls_handshake_start: Optional[Callable[[], None]] = None
    tls_handshake_done: Optional[Callable[[Optional[BaseException]], None]] = None
    got_conn: Optional[Callable[[GotConnInfo], None]] = None
    wrote_request: Optional[Callable[[WroteRequestInfo], None]] = None
    got_first_response_byte: Optional[Callable[[], None]] = None


class TraceAdapter:
    """
    httpcore "trace" extension for synchronous clients

    One adapter belongs to one request. It remembers whether a connection was
    dialed for that request, which is how connection reuse is detected:
    httpcore emits no connect events for a pooled connection.
    """

    def __init__(self, trace: ClientTrace, parent: Optional[Callable[..., Any]] = None):
        """
        Args:
            trace: Hooks to drive
            parent: Trace extension that was already set on the request
        """
        self.trace = trace
        self.parent = parent
        # Set by the tracing transport when its backend reports DNS and
        # per-address connect starts itself
        self.resolves_names = False
        self._dial_target: Optional[tuple[str, str]] = None
        self._dialed = False
        self._got_conn = False

    def __call__(self, event_name: str, info: dict[str, Any]) -> None:
        if self.parent is not None:
            self.parent(event_name, info)
        self.dispatch(event_name, info)

    def fire(self, hook: str, *args: Any) -> None:
        """Invoke a ClientTrace hook by name if it is set."""
        callback = getattr(self.trace, hook)
        if callback is not None:
            callback(*args)

    def dispatch(self, event_name: str, info: dict[str, Any]) -> None:
        """Translate one httpcore trace event into ClientTrace calls."""
        name, _, stage = event_name.rpartition(".")

        if name in (_CONNECT_TCP, _CONNECT_UNIX):
            self._on_connect_event(name, stage, info)
        elif name == _START_TLS:
            if stage == "started":
                self.fire("tls_handshake_start")
            else:
                self.fire("tls_handshake_done", info.get("exception"))
        else:
            area, _, step = name.partition(".")
            if area in _HTTP_AREAS:
                self._on_http_event(step, stage, info)

    def _on_connect_event(self, name: str, stage: str, info: dict[str, Any]) -> None:
        if stage == "started":
            self._dialed = True
            if name == _CONNECT_UNIX:
                self._dial_target = ("unix", str(info.get("path", "")))
            else:
                self._dial_target = ("tcp", f"{info.get('host', '')}:{info.get('port', '')}")
            if name == _CONNECT_UNIX or not self.resolves_names:
                self.fire("connect_start", *self._dial_target)
            return

        network, addr = self._dial_target or ("tcp", "")
        self.fire("connect_done", network, addr, info.get("exception"))

    def _on_http_event(self, step: str, stage: str, info: dict[str, Any]) -> None:
        if step == "send_request_headers" and stage == "started":
            if not self._got_conn:
                self._got_conn = True
                reused = not self._dialed
                logger.debug("Connection acquired: reused=%s", reused)
                self.fire("got_conn", GotConnInfo(reused=reused))
        elif step == "send_request_body" and stage in ("complete", "failed"):
            self.fire("wrote_request", WroteRequestInfo(error=info.get("exception")))
        elif step == "receive_response_headers" and stage == "complete":
            self.fire("got_first_response_byte")


class AsyncTraceAdapter(TraceAdapter):
    """
    httpcore "trace" extension for asynchronous clients

    httpcore awaits the extension on async connections, so the callable must
    return a coroutine. Hooks themselves stay plain functions.
    """

    async def __call__(self, event_name: str, info: dict[str, Any]) -> None:
        if self.parent is not None:
            await self.parent(event_name, info)
        self.dispatch(event_name, info)


def with_client_trace(
    extensions: Optional[Mapping[str, Any]],
    trace: ClientTrace,
    *,
    asynchronous: bool = False,
) -> dict[str, Any]:
    """
    Attach a ClientTrace to request extensions

    Args:
        extensions: Existing request extensions, left unmodified
        trace: Hooks to drive
        asynchronous: Build the coroutine adapter required by httpx.AsyncClient

    Returns:
        dict: New extensions with the adapter under "trace"
    """
    new_extensions = dict(extensions or {})
    adapter_cls = AsyncTraceAdapter if asynchronous else TraceAdapter
    new_extensions["trace"] = adapter_cls(trace, parent=new_extensions.get("trace"))
    return new_extensions
