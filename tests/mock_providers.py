"""
Mock providers for testing.

Provides scripted responses and stream frames so tests can exercise the
decoder, the completion loop and the registry without hitting real APIs.
Frames use the OpenAI chat-completion chunk shape.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator, Sequence

from unillm.chat import ChatRequest, ChatResponse, Choice
from unillm.errors import VendorError
from unillm.messages import Message, ToolInvocation
from unillm.providers.base import Provider
from unillm.providers.openai_compat import response_from_wire


class MockProvider(Provider):
    """
    A provider that replays pre-configured responses and stream rounds.

    Usage::

        provider = MockProvider(stream_rounds=[[
            delta_frame(content="Hello "),
            delta_frame(content="world!", finish_reason="stop"),
        ]])

    Parameters
    ----------
    responses:
        Responses returned by successive ``send`` calls.  The last one
        repeats once the script runs out.
    stream_rounds:
        One list of raw units per streaming call, same repeat rule.
    model_name:
        Identifier returned by ``name``.
    """

    request_types = (ChatRequest,)

    def __init__(
        self,
        responses: Sequence[ChatResponse] | None = None,
        stream_rounds: Sequence[Sequence[str]] | None = None,
        model_name: str = "mock",
        models: Sequence[str] = ("*",),
        max_rounds: int = 8,
    ) -> None:
        super().__init__(models=models, max_rounds=max_rounds)
        self._responses = list(responses or [make_text_response("")])
        self._scripted_rounds = [list(r) for r in (stream_rounds or [[]])]
        self._model_name = model_name
        self.call_count = 0
        self.requests: list[ChatRequest] = []
        self.units_sent = 0
        self.streams_closed = 0
        self.closed = False

    @property
    def name(self) -> str:
        return self._model_name

    async def aclose(self) -> None:
        self.closed = True

    async def send(self, request: ChatRequest) -> ChatResponse:
        self.call_count += 1
        self.requests.append(request)
        return self._responses[min(self.call_count, len(self._responses)) - 1]

    async def open_stream(self, request: ChatRequest) -> AsyncIterator[str]:
        self.call_count += 1
        self.requests.append(request)
        units = self._scripted_rounds[min(self.call_count, len(self._scripted_rounds)) - 1]
        try:
            for unit in units:
                await asyncio.sleep(0)
                self.units_sent += 1
                yield unit
        finally:
            self.streams_closed += 1

    def decode_partial(self, buffer: str) -> ChatResponse | None:
        line = buffer.strip()
        if not line or line == "[DONE]":
            return None
        return response_from_wire(json.loads(line))

    def decode_error(self, unit: str) -> Exception | None:
        if unit.startswith('{"error"'):
            payload = json.loads(unit)
            return VendorError(payload["error"], message=payload["error"].get("message"))
        return None


class OtherMockProvider(MockProvider):
    """A second adapter class, so registries can hold two mocks."""


# ---------------------------------------------------------------------------
# Frame / response builders
# ---------------------------------------------------------------------------

def tool_fragment(
    index: int = 0,
    id: str | None = None,
    name: str | None = None,
    arguments: str = "",
) -> dict:
    function: dict[str, Any] = {"arguments": arguments}
    if name is not None:
        function["name"] = name
    fragment: dict[str, Any] = {"index": index, "function": function}
    if id is not None:
        fragment["id"] = id
        fragment["type"] = "function"
    return fragment


def delta_frame(
    content: str | None = None,
    tool_calls: list[dict] | None = None,
    finish_reason: str | None = None,
    index: int = 0,
    role: str | None = None,
    id: str = "chatcmpl-mock",
) -> str:
    delta: dict[str, Any] = {}
    if role is not None:
        delta["role"] = role
    if content is not None:
        delta["content"] = content
    if tool_calls is not None:
        delta["tool_calls"] = tool_calls
    return json.dumps({
        "id": id,
        "model": "mock-model",
        "choices": [{"index": index, "delta": delta, "finish_reason": finish_reason}],
    })


def make_text_frames(text: str) -> list[str]:
    """Stream *text* one word at a time, then finish."""
    words = text.split(" ")
    frames = [delta_frame(role="assistant", content="")]
    for i, word in enumerate(words):
        suffix = " " if i < len(words) - 1 else ""
        frames.append(delta_frame(content=word + suffix))
    frames.append(delta_frame(finish_reason="stop"))
    return frames


def make_tool_call_frames(tool_name: str, tool_args: dict, call_id: str = "call_abc123") -> list[str]:
    """Stream one tool call with its arguments split in thirds."""
    args_json = json.dumps(tool_args)
    third = max(1, len(args_json) // 3)
    parts = [args_json[:third], args_json[third:2 * third], args_json[2 * third:]]
    frames = [delta_frame(role="assistant", tool_calls=[tool_fragment(0, call_id, tool_name)])]
    for part in parts:
        if part:
            frames.append(delta_frame(tool_calls=[tool_fragment(0, arguments=part)]))
    frames.append(delta_frame(finish_reason="tool_calls"))
    return frames


def make_text_response(text: str, id: str = "resp-text") -> ChatResponse:
    return ChatResponse(
        id=id,
        model="mock-model",
        choices=(Choice(index=0, message=Message.assistant(text), finish_reason="stop"),),
    )


def make_tool_call_response(
    calls: Sequence[tuple[str, str, str]],
    id: str = "resp-tools",
) -> ChatResponse:
    """*calls* is a list of ``(call_id, tool_name, raw_arguments)`` tuples."""
    invocations = [
        ToolInvocation(id=call_id, name=name, arguments=args, index=i)
        for i, (call_id, name, args) in enumerate(calls)
    ]
    return ChatResponse(
        id=id,
        model="mock-model",
        choices=(
            Choice(
                index=0,
                message=Message.assistant(tool_calls=invocations),
                finish_reason="tool_calls",
            ),
        ),
    )
