"""
httpmetrics - phase timing for a single HTTP request

Measures DNS lookup, TCP connection, TLS handshake, server processing and
content transfer of one httpx request, plus curl-style cumulative
checkpoints (name lookup, connect, pretransfer, start transfer, total).
"""

from httpmetrics.common.errors import (
    BodyReadError,
    DispatchError,
    MeasurementError,
    RequestTimeoutError,
)
from httpmetrics.http_client import create_async_client, create_client
from httpmetrics.metric import DURATION_NAMES, Metric, ReportFormat, with_http_metrics
from httpmetrics.result import AsyncResult, Result
from httpmetrics.trace import (
    AsyncTraceAdapter,
    ClientTrace,
    DNSDoneInfo,
    DNSStartInfo,
    GotConnInfo,
    TraceAdapter,
    WroteRequestInfo,
    with_client_trace,
)
from httpmetrics.transport import AsyncTracingTransport, TracingTransport

__all__ = [
    "Metric",
    "ReportFormat",
    "DURATION_NAMES",
    "with_http_metrics",
    "Result",
    "AsyncResult",
    "ClientTrace",
    "DNSStartInfo",
    "DNSDoneInfo",
    "GotConnInfo",
    "WroteRequestInfo",
    "TraceAdapter",
    "AsyncTraceAdapter",
    "with_client_trace",
    "TracingTransport",
    "AsyncTracingTransport",
    "create_client",
    "create_async_client",
    "MeasurementError",
    "RequestTimeoutError",
    "DispatchError",
    "BodyReadError",
]
