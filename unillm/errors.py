"""
Error contract shared by the core and every adapter.

Each exception carries a ``kind`` drawn from the closed :class:`ErrorKind`
set so callers can branch on the category without importing every subclass.
"""

from __future__ import annotations

from typing import Any


class ErrorKind:
    INVALID_REQUEST_ENCODING = "invalid-request-encoding"
    TRANSPORT_FAILURE = "transport-failure"
    UNSUCCESSFUL_STATUS = "unsuccessful-status"
    VENDOR_ERROR = "vendor-error"
    STREAM_DECODE_FAILED = "stream-decode-failed"
    INVALID_CONTENT_TYPE = "invalid-content-type"
    UNHANDLED_REQUEST = "unhandled-request"
    FAILED_TO_DECODE_TOOL_ARGUMENTS = "failed-to-decode-tool-arguments"
    MISSING_REQUIRED_TOOL_ARGUMENTS = "missing-required-tool-arguments"


class LLMError(Exception):
    """Base class for every failure raised by the unification layer."""

    kind: str = ""


class InvalidRequestEncoding(LLMError):
    kind = ErrorKind.INVALID_REQUEST_ENCODING


class TransportFailure(LLMError):
    kind = ErrorKind.TRANSPORT_FAILURE


class UnsuccessfulStatus(LLMError):
    """The transport answered, but not with a success status."""

    kind = ErrorKind.UNSUCCESSFUL_STATUS

    def __init__(self, status_code: int, payload: Any = None) -> None:
        self.status_code = status_code
        self.payload = payload
        detail = f": {payload}" if payload is not None else ""
        super().__init__(f"HTTP {status_code}{detail}")


class VendorError(LLMError):
    """An error payload decoded by the adapter (e.g. an SSE error frame)."""

    kind = ErrorKind.VENDOR_ERROR

    def __init__(self, payload: Any, message: str | None = None) -> None:
        self.payload = payload
        super().__init__(message or str(payload))


class StreamDecodeFailed(LLMError):
    kind = ErrorKind.STREAM_DECODE_FAILED

    def __init__(self, buffer: str, cause: BaseException | None = None) -> None:
        self.buffer = buffer
        self.cause = cause
        super().__init__(
            f"Undecodable data left at end of stream ({len(buffer)} chars): {cause}"
        )


class InvalidContentType(LLMError):
    kind = ErrorKind.INVALID_CONTENT_TYPE

    def __init__(self, content_type: str | None, expected: tuple[str, ...] = ()) -> None:
        self.content_type = content_type
        self.expected = expected
        super().__init__(
            f"Unexpected content type {content_type!r}; expected one of {list(expected)}"
        )


class UnhandledRequest(LLMError):
    kind = ErrorKind.UNHANDLED_REQUEST

    def __init__(self, request: Any) -> None:
        self.request = request
        super().__init__(
            f"No registered provider can handle {type(request).__name__}"
        )


class ToolArgumentsDecodeError(LLMError):
    kind = ErrorKind.FAILED_TO_DECODE_TOOL_ARGUMENTS

    def __init__(self, invocation: Any, cause: BaseException | None = None) -> None:
        self.invocation = invocation
        self.cause = cause
        name = getattr(invocation, "name", "?")
        super().__init__(f"Could not decode arguments for tool {name!r}: {cause}")


class MissingToolArguments(LLMError):
    kind = ErrorKind.MISSING_REQUIRED_TOOL_ARGUMENTS

    def __init__(self, invocation: Any, missing: list[str]) -> None:
        self.invocation = invocation
        self.missing = list(missing)
        name = getattr(invocation, "name", "?")
        super().__init__(
            f"Tool {name!r} called without required arguments: {', '.join(self.missing)}"
        )
