"""
Error Definitions

Defines the errors a measurement run can return alongside a (partial) Metric.
The timing state machine itself never raises; these describe failures of the
HTTP dispatch that drives it.
"""

from typing import Any, Optional


class MeasurementError(Exception):
    """
    Measurement Base Exception

    Base class for all measurement errors, containing error message, type, and code.
    """

    def __init__(
        self,
        message: str,
        error_type: str = "measurement_error",
        code: str = "internal_error",
        details: Optional[dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        """
        Initialize exception

        Args:
            message: Error message
            error_type: Error type
            code: Error code
            details: Extra error details
            cause: Underlying httpx/httpcore exception, if any
        """
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.code = code
        self.details = details or {}
        self.cause = cause
        self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to dictionary format (for logging or reports)

        Returns:
            dict: Error information dictionary
        """
        result = {
            "error": {
                "message": self.message,
                "type": self.error_type,
                "code": self.code,
            }
        }
        if self.details:
            result["error"]["details"] = self.details
        return result


class RequestTimeoutError(MeasurementError):
    """
    Request Timeout Error

    Raised when connecting, writing the request or reading the response times out.
    """

    def __init__(
        self,
        message: str = "Request timeout",
        code: str = "request_timeout",
        details: Optional[dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(
            message=message,
            error_type="timeout_error",
            code=code,
            details=details,
            cause=cause,
        )


class DispatchError(MeasurementError):
    """
    Dispatch Error

    Raised when the request fails before a response is received
    (name resolution, connection refused, TLS failure, protocol error).
    """

    def __init__(
        self,
        message: str = "Request dispatch failed",
        code: str = "dispatch_error",
        details: Optional[dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(
            message=message,
            error_type="dispatch_error",
            code=code,
            details=details,
            cause=cause,
        )


class BodyReadError(MeasurementError):
    """
    Body Read Error

    Raised when the response arrived but draining its body failed.
    """

    def __init__(
        self,
        message: str = "Reading response body failed",
        code: str = "body_read_error",
        details: Optional[dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(
            message=message,
            error_type="transfer_error",
            code=code,
            details=details,
            cause=cause,
        )
