"""
HTTP Request Timing Metric

Timing state machine for a single HTTP request. A trace-capable client calls
the lifecycle handlers as the connection progresses; each handler stamps a
timestamp and derives the durations that just became known.

Example:
    metric = Metric()
    request = client.build_request("GET", "https://example.com")
    request.extensions = with_http_metrics(request.extensions, metric)
    response = client.send(request, stream=True)
    response.read()
    response.close()
    metric.finalize()
    print(metric.format(ReportFormat.DETAILED))
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from httpmetrics.trace import (
    ClientTrace,
    GotConnInfo,
    with_client_trace,
)

logger = logging.getLogger(__name__)

ZERO = timedelta(0)
MILLISECOND = timedelta(milliseconds=1)

# Phase durations first, cumulative checkpoints second
DURATION_NAMES = (
    "DNSLookup",
    "TCPConnection",
    "TLSHandshake",
    "ServerProcessing",
    "ContentTransfer",
    "NameLookup",
    "Connect",
    "Pretransfer",
    "StartTransfer",
    "Total",
)

_DETAILED_LINES = (
    ("DNS lookup:        ", "dns_lookup"),
    ("TCP connection:    ", "tcp_connection"),
    ("TLS handshake:     ", "tls_handshake"),
    ("Server processing: ", "server_processing"),
    ("Content transfer:  ", "content_transfer"),
    ("Name Lookup:    ", "name_lookup"),
    ("Connect:        ", "connect"),
    ("Pre Transfer:   ", "pretransfer"),
    ("Start Transfer: ", "start_transfer"),
    ("Total:          ", "total"),
)


class ReportFormat(str, Enum):
    """Output variants of Metric.format()"""

    DETAILED = "detailed"
    COMPACT = "compact"


def _between(start: Optional[float], end: Optional[float]) -> timedelta:
    """Duration between two clock readings, zero unless both are known."""
    if start is None or end is None:
        return ZERO
    return timedelta(seconds=end - start)


def to_milliseconds(duration: timedelta) -> int:
    """Floor a duration to whole milliseconds."""
    return duration // MILLISECOND


@dataclass
class Metric:
    """
    Timing measurement of one HTTP request

    Durations are public and read as zero until the phase that defines them
    completes. Raw timestamps are readings of ``clock`` (seconds, monotonic)
    and stay ``None`` until their event fires.

    A Metric is mutated by the callbacks of exactly one request and must not
    be shared between requests.
    """

    # Phase durations
    dns_lookup: timedelta = ZERO
    tcp_connection: timedelta = ZERO
    tls_handshake: timedelta = ZERO
    server_processing: timedelta = ZERO
    content_transfer: timedelta = ZERO

    # Cumulative checkpoints, measured from dns_start
    name_lookup: timedelta = ZERO
    connect: timedelta = ZERO
    pretransfer: timedelta = ZERO
    start_transfer: timedelta = ZERO
    total: timedelta = ZERO

    clock: Callable[[], float] = field(default=time.perf_counter, repr=False, compare=False)

    _dns_start: Optional[float] = field(default=None, init=False, repr=False)
    _dns_done: Optional[float] = field(default=None, init=False, repr=False)
    _tcp_start: Optional[float] = field(default=None, init=False, repr=False)
    _tcp_done: Optional[float] = field(default=None, init=False, repr=False)
    _tls_start: Optional[float] = field(default=None, init=False, repr=False)
    _tls_done: Optional[float] = field(default=None, init=False, repr=False)
    _server_start: Optional[float] = field(default=None, init=False, repr=False)
    _server_done: Optional[float] = field(default=None, init=False, repr=False)
    _transfer_start: Optional[float] = field(default=None, init=False, repr=False)
    _transfer_done: Optional[float] = field(default=None, init=False, repr=False)

    _is_tls: bool = field(default=False, init=False, repr=False)
    _is_reused: bool = field(default=False, init=False, repr=False)

    @property
    def is_tls(self) -> bool:
        """Whether a TLS handshake started on this request's connection"""
        return self._is_tls

    @property
    def is_reused(self) -> bool:
        """Whether the request went out on a pooled connection"""
        return self._is_reused

    # Lifecycle handlers

    def on_dns_start(self) -> None:
        """Stamp the start of name resolution"""
        self._dns_start = self.clock()

    def on_dns_done(self) -> None:
        """Stamp the end of name resolution and derive DNSLookup and NameLookup"""
        self._dns_done = self.clock()
        self.dns_lookup = _between(self._dns_start, self._dns_done)
        self.name_lookup = _between(self._dns_start, self._dns_done)

    def on_connect_start(self) -> None:
        """Stamp the start of the TCP connect"""
        self._tcp_start = self.clock()
        # No DNS event came first (IP literal, resolver not traced, or a race):
        # anchor the timeline at connect start.
        if self._dns_start is None:
            self._dns_start = self._tcp_start
            self._dns_done = self._tcp_start

    def on_connect_done(self) -> None:
        """Stamp the end of the TCP connect and derive TCPConnection and Connect"""
        self._tcp_done = self.clock()
        self.tcp_connection = _between(self._tcp_start, self._tcp_done)
        self.connect = _between(self._dns_start, self._tcp_done)

    def on_tls_handshake_start(self) -> None:
        """Mark the request as TLS and stamp the handshake start"""
        self._is_tls = True
        self._tls_start = self.clock()

    def on_tls_handshake_done(self) -> None:
        """Stamp the handshake end and derive TLSHandshake and Pretransfer"""
        self._tls_done = self.clock()
        self.tls_handshake = _between(self._tls_start, self._tls_done)
        self.pretransfer = _between(self._dns_start, self._tls_done)

    def on_got_conn(self, reused: bool) -> None:
        """Record whether the connection came from the pool"""
        if reused:
            self._is_reused = True

    def on_wrote_request(self) -> None:
        """
        Request fully written, the server starts processing

        Backfills the connection-setup timestamps when no earlier event was
        seen, and collapses them to this instant on a reused connection.
        """
        now = self.clock()
        self._server_start = now

        if self._dns_start is None and self._tcp_start is None:
            self._dns_start = now
            self._dns_done = now
            self._tcp_start = now
            self._tcp_done = now

        if self._is_reused:
            self._dns_start = now
            self._dns_done = now
            self._tcp_start = now
            self._tcp_done = now
            self._tls_start = now
            self._tls_done = now

        if self._is_tls:
            return

        self.tls_handshake = ZERO
        self.pretransfer = self.connect

    def on_got_first_response_byte(self) -> None:
        """Stamp the first response byte and derive ServerProcessing and StartTransfer"""
        self._server_done = self.clock()
        self.server_processing = _between(self._server_start, self._server_done)
        self.start_transfer = _between(self._dns_start, self._server_done)
        self._transfer_start = self._server_done

    def finalize(self, now: Optional[float] = None) -> None:
        """
        Mark the end of content transfer

        Call once, after the response body has been consumed and closed.
        When no lifecycle event was ever observed only the end timestamp is
        recorded, ContentTransfer and Total stay zero.

        Args:
            now: Clock reading to use, defaults to the current clock value
        """
        self._transfer_done = self.clock() if now is None else now
        if self._dns_start is None:
            logger.debug("Metric finalized without any lifecycle event")
            return
        self.content_transfer = _between(self._transfer_start, self._transfer_done)
        self.total = _between(self._dns_start, self._transfer_done)

    def client_trace(self) -> ClientTrace:
        """Build the handler set that drives this metric."""
        return ClientTrace(
            dns_start=lambda info: self.on_dns_start(),
            dns_done=lambda info: self.on_dns_done(),
            connect_start=lambda network, addr: self.on_connect_start(),
            connect_done=lambda network, addr, error: self.on_connect_done(),
            tls_handshake_start=self.on_tls_handshake_start,
            tls_handshake_done=lambda error: self.on_tls_handshake_done(),
            got_conn=self._got_conn,
            wrote_request=lambda info: self.on_wrote_request(),
            got_first_response_byte=self.on_got_first_response_byte,
        )

    def _got_conn(self, info: GotConnInfo) -> None:
        self.on_got_conn(info.reused)

    # Accessors

    def durations(self) -> dict[str, timedelta]:
        """
        Get all ten measured values by name

        Returns:
            dict[str, timedelta]: A new mapping on every call
        """
        return {
            "DNSLookup": self.dns_lookup,
            "TCPConnection": self.tcp_connection,
            "TLSHandshake": self.tls_handshake,
            "ServerProcessing": self.server_processing,
            "ContentTransfer": self.content_transfer,
            "NameLookup": self.name_lookup,
            "Connect": self.connect,
            "Pretransfer": self.pretransfer,
            "StartTransfer": self.start_transfer,
            "Total": self.total,
        }

    def to_dict(self) -> dict[str, int]:
        """Measured values as whole milliseconds, keyed like durations()"""
        return {name: to_milliseconds(value) for name, value in self.durations().items()}

    def timestamps(self) -> dict[str, Optional[float]]:
        """Raw clock readings, None for events that never fired"""
        return {
            "dns_start": self._dns_start,
            "dns_done": self._dns_done,
            "tcp_start": self._tcp_start,
            "tcp_done": self._tcp_done,
            "tls_start": self._tls_start,
            "tls_done": self._tls_done,
            "server_start": self._server_start,
            "server_done": self._server_done,
            "transfer_start": self._transfer_start,
            "transfer_done": self._transfer_done,
        }

    # Formatting

    def format(self, mode: ReportFormat = ReportFormat.DETAILED) -> str:
        """
        Render the measurement

        Args:
            mode: DETAILED for the fixed multi-line report,
                COMPACT for a single "Name: N ms, ..." line

        Returns:
            str: Rendered report
        """
        if ReportFormat(mode) is ReportFormat.DETAILED:
            return "".join(
                f"{label}{to_milliseconds(getattr(self, attr)):4d} ms\n"
                for label, attr in _DETAILED_LINES
            )
        return ", ".join(f"{name}: {ms} ms" for name, ms in self.to_dict().items())

    def __str__(self) -> str:
        return self.format(ReportFormat.COMPACT)


def with_http_metrics(
    extensions: Optional[Mapping[str, Any]],
    metric: Metric,
    *,
    asynchronous: bool = False,
) -> dict[str, Any]:
    """
    Bind a Metric to a request's extensions

    Returns a new extensions dict whose "trace" entry drives ``metric``.
    A trace callback already present in ``extensions`` keeps receiving events.

    Args:
        extensions: Existing request extensions (e.g. ``request.extensions``)
        metric: Metric to populate
        asynchronous: True when the request is sent with httpx.AsyncClient

    Returns:
        dict: Extensions to attach to the request
    """
    return with_client_trace(extensions, metric.client_trace(), asynchronous=asynchronous)
