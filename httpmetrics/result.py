"""
Measured Request Execution

Runs one prepared httpx.Request end to end and returns its Metric.
"""

import logging
from typing import Optional

import httpx

from httpmetrics.common.errors import (
    BodyReadError,
    DispatchError,
    MeasurementError,
    RequestTimeoutError,
)
from httpmetrics.http_client import create_async_client, create_client
from httpmetrics.metric import Metric, with_http_metrics

logger = logging.getLogger(__name__)


def _dispatch_error(request: httpx.Request, e: httpx.RequestError) -> MeasurementError:
    details = {"method": request.method, "url": str(request.url), "exception": type(e).__name__}
    if isinstance(e, httpx.TimeoutException):
        return RequestTimeoutError(f"Request timeout: {e}", details=details, cause=e)
    return DispatchError(f"Request error: {e}", details=details, cause=e)


def _body_error(request: httpx.Request, e: Exception) -> MeasurementError:
    details = {"method": request.method, "url": str(request.url), "exception": type(e).__name__}
    if isinstance(e, httpx.TimeoutException):
        return RequestTimeoutError(f"Response body timeout: {e}", details=details, cause=e)
    return BodyReadError(f"Response body error: {e}", details=details, cause=e)


def _instrumented_copy(
    request: httpx.Request, metric: Metric, asynchronous: bool = False
) -> httpx.Request:
    """Copy of ``request`` carrying the metric's trace; the original is left untouched"""
    return httpx.Request(
        request.method,
        request.url,
        headers=request.headers,
        stream=request.stream,
        extensions=with_http_metrics(request.extensions, metric, asynchronous=asynchronous),
    )


class Result:
    """
    Measured execution of a single request

    Owns one Metric and one request for a single do() call. The Metric is not
    reset, so a Result must not be run twice.

    Example:
        request = httpx.Request("GET", "https://example.com")
        metric, error = Result(request).do()
        if error is None:
            print(metric.format())
    """

    def __init__(self, request: httpx.Request, client: Optional[httpx.Client] = None):
        """
        Args:
            request: Prepared request to measure
            client: Client to send with; a default one is created
                (and closed afterwards) when omitted
        """
        self.request = request
        self.client = client
        self.metric = Metric()
        self.status_code: Optional[int] = None

    def do(self) -> tuple[Metric, Optional[MeasurementError]]:
        """
        Send the request, drain the body and finalize the Metric

        Returns:
            tuple[Metric, Optional[MeasurementError]]: The Metric and the
                error, if any. With an error the Metric is incomplete.
        """
        request = _instrumented_copy(self.request, self.metric)

        client = self.client or create_client()
        try:
            return self._send(client, request)
        finally:
            if self.client is None:
                client.close()

    def _send(
        self, client: httpx.Client, request: httpx.Request
    ) -> tuple[Metric, Optional[MeasurementError]]:
        try:
            response = client.send(request, stream=True)
        except httpx.RequestError as e:
            logger.debug("Measured request failed: %s %s: %s", request.method, request.url, e)
            return self.metric, _dispatch_error(request, e)

        self.status_code = response.status_code
        try:
            for _ in response.iter_raw():
                pass
        except (httpx.RequestError, httpx.StreamError) as e:
            logger.debug("Draining response body failed: %s %s: %s", request.method, request.url, e)
            return self.metric, _body_error(request, e)
        finally:
            response.close()

        self.metric.finalize()
        logger.debug(
            "Measured %s %s status=%s: %s", request.method, request.url, self.status_code, self.metric
        )
        return self.metric, None


class AsyncResult:
    """
    Measured execution of a single request on httpx.AsyncClient

    Same contract as Result, with ``await result.do()``.
    """

    def __init__(self, request: httpx.Request, client: Optional[httpx.AsyncClient] = None):
        self.request = request
        self.client = client
        self.metric = Metric()
        self.status_code: Optional[int] = None

    async def do(self) -> tuple[Metric, Optional[MeasurementError]]:
        """
        Send the request, drain the body and finalize the Metric

        Returns:
            tuple[Metric, Optional[MeasurementError]]: The Metric and the
                error, if any. With an error the Metric is incomplete.
        """
        request = _instrumented_copy(self.request, self.metric, asynchronous=True)

        client = self.client or create_async_client()
        try:
            return await self._send(client, request)
        finally:
            if self.client is None:
                await client.aclose()

    async def _send(
        self, client: httpx.AsyncClient, request: httpx.Request
    ) -> tuple[Metric, Optional[MeasurementError]]:
        try:
            response = await client.send(request, stream=True)
        except httpx.RequestError as e:
            logger.debug("Measured request failed: %s %s: %s", request.method, request.url, e)
            return self.metric, _dispatch_error(request, e)

        self.status_code = response.status_code
        try:
            async for _ in response.aiter_raw():
                pass
        except (httpx.RequestError, httpx.StreamError) as e:
            logger.debug("Draining response body failed: %s %s: %s", request.method, request.url, e)
            return self.metric, _body_error(request, e)
        finally:
            await response.aclose()

        self.metric.finalize()
        logger.debug(
            "Measured %s %s status=%s: %s", request.method, request.url, self.status_code, self.metric
        )
        return self.metric, None
