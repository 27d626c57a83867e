"""
Capability contracts for requests, responses and adapters.

Capabilities are structural: an adapter's request and response types only
have to provide the members listed here.  There is no shared base class.
Every protocol is ``runtime_checkable`` so the engine can ask
``isinstance(request, ToolCallingRequest)`` before relying on a capability.

    Request              -- model, messages, route, response_type, with_messages
    StreamableRequest    -- + stream flag and with_stream
    MultiChoiceRequest   -- + n and pick(choices)
    ToolCallingRequest   -- + tools, invocation extraction, message building
    CompletableRequest   -- + completion(response) -> next request | None

    Response             -- message, tool_invocations, finish_reason
    StreamableResponse   -- + empty() and combine(partial)
    MultiChoiceResponse  -- + choices

    Adapter              -- name, can_handle, perform, stream
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Protocol, Sequence, runtime_checkable

from unillm.messages import Message, ToolInvocation, ToolResult
from unillm.tools.base import Tool


@runtime_checkable
class Response(Protocol):
    @property
    def message(self) -> Message | None: ...

    @property
    def tool_invocations(self) -> Sequence[ToolInvocation]: ...

    @property
    def finish_reason(self) -> str | None: ...


@runtime_checkable
class StreamableResponse(Response, Protocol):
    @classmethod
    def empty(cls) -> StreamableResponse: ...

    def combine(self, partial: Any) -> StreamableResponse: ...


@runtime_checkable
class MultiChoiceResponse(Response, Protocol):
    @property
    def choices(self) -> Sequence[Any]: ...


@runtime_checkable
class Request(Protocol):
    route: str
    response_type: type

    @property
    def model(self) -> str: ...

    @property
    def messages(self) -> Sequence[Message]: ...

    def with_messages(self, messages: Sequence[Message]) -> Request: ...


@runtime_checkable
class StreamableRequest(Request, Protocol):
    @property
    def stream(self) -> bool | None: ...

    def with_stream(self, stream: bool) -> StreamableRequest: ...


@runtime_checkable
class MultiChoiceRequest(Request, Protocol):
    @property
    def n(self) -> int | None: ...

    def pick(self, choices: Sequence[Any]) -> int: ...


@runtime_checkable
class ToolCallingRequest(Request, Protocol):
    @property
    def tools(self) -> Sequence[Tool] | None: ...

    def tool_invocations(self, response: Any) -> Sequence[ToolInvocation]: ...

    def assistant_message(
        self, response: Any, invocations: Sequence[ToolInvocation]
    ) -> Message: ...

    def tool_result_messages(self, results: Sequence[ToolResult]) -> list[Message]: ...


@runtime_checkable
class CompletableRequest(Request, Protocol):
    async def completion(self, response: Any) -> Request | None: ...


@runtime_checkable
class Adapter(Protocol):
    @property
    def name(self) -> str: ...

    def can_handle(self, request: Any) -> bool: ...

    async def perform(self, request: Any) -> Any: ...

    def stream(self, request: Any) -> AsyncIterator[Any]: ...


def is_streaming(request: Any) -> bool:
    """True when *request* is streamable and has its stream flag set."""
    return isinstance(request, StreamableRequest) and bool(request.stream)
