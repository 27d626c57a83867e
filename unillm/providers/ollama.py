"""
Ollama adapter.

Talks to a local Ollama instance via its ``/api/chat`` endpoint.  Streaming
responses are newline-delimited JSON objects, one complete object per line.
Supports tool calling when the Ollama model advertises it.

Dependencies: ``httpx``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Callable, Sequence

import httpx

from unillm.chat import (
    ChatRequest,
    ChatResponse,
    Choice,
    MessageDelta,
    ToolCallDelta,
    Usage,
)
from unillm.errors import InvalidRequestEncoding, VendorError
from unillm.messages import ImagePart, Message, Role, ToolInvocation
from unillm.providers.base import DEFAULT_MAX_ROUNDS, Provider
from unillm.providers.http import HTTPTransport

logger = logging.getLogger(__name__)

_CORE_KEYS = frozenset({"model", "messages", "stream"})


class OllamaProvider(Provider):
    """
    Adapter for a local `Ollama <https://ollama.com>`_ instance.

    Parameters
    ----------
    url:
        Base URL of the Ollama HTTP API (e.g. ``"http://localhost:11434"``).
    timeout:
        HTTP request timeout in seconds.
    models:
        Glob patterns of model tags routed here, e.g. ``("llama3*",)``.
    transport:
        Optional ``httpx`` transport.
    """

    request_types = (ChatRequest,)

    def __init__(
        self,
        url: str = "http://localhost:11434",
        timeout: float = 120.0,
        models: Sequence[str] = ("*",),
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(models=models, max_rounds=max_rounds)
        self._http = HTTPTransport(
            url,
            timeout=timeout,
            decode_error_payload=_decode_error_payload,
            transport=transport,
        )

    @property
    def name(self) -> str:
        return "ollama"

    async def aclose(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def build_body(self, request: ChatRequest, stream: bool) -> dict:
        wire_messages: list[dict] = []
        for msg in request.messages:
            wire_messages.extend(_wire_messages(msg))

        body: dict[str, Any] = {
            "model": request.model,
            "messages": wire_messages,
            "stream": stream,
        }
        if request.tools:
            body["tools"] = [t.to_openai_schema() for t in request.tools]
        for key, value in request.extras.items():
            if key not in _CORE_KEYS:
                body[key] = value

        logger.info(
            "REQUEST: model=%s tools=%d messages=%d stream=%s",
            request.model,
            len(request.tools) if request.tools else 0,
            len(wire_messages),
            stream,
        )
        return body

    # ------------------------------------------------------------------
    # Provider hooks
    # ------------------------------------------------------------------

    async def send(self, request: ChatRequest) -> ChatResponse:
        data = await self._http.post_json(
            "api/chat", self.build_body(request, stream=False)
        )
        if isinstance(data, dict) and data.get("error"):
            raise VendorError(data["error"], message=str(data["error"]))
        return response_from_wire(data, streaming=False)

    def open_stream(self, request: ChatRequest) -> AsyncIterator[str]:
        return self._http.stream_lines(
            "api/chat",
            self.build_body(request, stream=True),
            expected_types=("application/x-ndjson", "application/json"),
        )

    def decode_partial(self, buffer: str, first_index: int = 0) -> ChatResponse | None:
        line = buffer.strip()
        if not line:
            return None
        data = json.loads(line)
        if not isinstance(data, dict):
            raise ValueError(f"NDJSON line is not an object: {line[:80]}")
        return response_from_wire(data, streaming=True, first_index=first_index)

    def partial_decoder(self) -> Callable[[str], ChatResponse | None]:
        # Each streamed call arrives whole, possibly one per line, so call
        # indices are numbered across the stream rather than per line.
        seen = 0

        def decode(buffer: str) -> ChatResponse | None:
            nonlocal seen
            partial = self.decode_partial(buffer, first_index=seen)
            if partial is not None:
                seen += len(partial.choices[0].delta.tool_calls or ())
            return partial

        return decode

    def decode_error(self, unit: str) -> Exception | None:
        line = unit.strip()
        if not line.startswith("{") or '"error"' not in line:
            return None
        try:
            data = json.loads(line)
        except ValueError:
            return None
        if isinstance(data, dict) and data.get("error"):
            return VendorError(data["error"], message=str(data["error"]))
        return None


# ---------------------------------------------------------------------------
# Wire -> neutral
# ---------------------------------------------------------------------------

def response_from_wire(data: dict, streaming: bool, first_index: int = 0) -> ChatResponse:
    """
    Convert one Ollama JSON object to a ``ChatResponse``.

    *first_index* numbers the object's tool calls when earlier lines of the
    same stream already carried some.
    """
    message = data.get("message") or {}
    content = message.get("content") or ""
    role = message.get("role") or Role.ASSISTANT

    # Ollama sends complete calls without ids; synthesize stable ones.
    raw_tool_calls = message.get("tool_calls") or []
    calls = []
    for idx, tc in enumerate(raw_tool_calls, start=first_index):
        func = tc.get("function") or {}
        calls.append((idx, func.get("name", ""), json.dumps(func.get("arguments") or {})))

    is_done = bool(data.get("done", not streaming))
    finish_reason = None
    if is_done:
        finish_reason = data.get("done_reason") or ("tool_calls" if calls else "stop")

    usage = None
    if is_done and ("prompt_eval_count" in data or "eval_count" in data):
        prompt = data.get("prompt_eval_count", 0)
        completion = data.get("eval_count", 0)
        usage = Usage(
            prompt_tokens=prompt,
            completion_tokens=completion,
            total_tokens=prompt + completion,
        )

    if streaming:
        delta = MessageDelta(
            role=role,
            content=content,
            tool_calls=tuple(
                ToolCallDelta(index=idx, id=f"call_{idx}", name=name, arguments=args)
                for idx, name, args in calls
            ) or None,
        )
        choice = Choice(index=0, delta=delta, finish_reason=finish_reason)
    else:
        msg = Message(
            role=role,
            content=content,
            tool_calls=tuple(
                ToolInvocation(id=f"call_{idx}", name=name, arguments=args, index=idx)
                for idx, name, args in calls
            ) or None,
        )
        choice = Choice(index=0, message=msg, finish_reason=finish_reason)

    return ChatResponse(
        id=data.get("created_at") or "",
        model=data.get("model"),
        choices=(choice,),
        usage=usage,
    )


# ---------------------------------------------------------------------------
# Neutral -> wire
# ---------------------------------------------------------------------------

def _wire_arguments(raw: str) -> dict:
    # Ollama expects a dict, not the raw string.
    if not raw.strip():
        return {}
    try:
        arguments = json.loads(raw)
    except ValueError as exc:
        raise InvalidRequestEncoding(f"Tool arguments are not valid JSON: {raw[:80]}") from exc
    if not isinstance(arguments, dict):
        raise InvalidRequestEncoding("Tool arguments must be a JSON object")
    return arguments


def _wire_messages(msg: Message) -> list[dict]:
    if msg.role is Role.TOOL:
        return [{"role": "tool", "content": r.result} for r in msg.tool_results]

    m: dict[str, Any] = {"role": msg.role.value, "content": msg.text}
    if not msg.content.is_text:
        images = []
        for part in msg.content.parts:
            if isinstance(part, ImagePart):
                if part.data is None:
                    raise InvalidRequestEncoding("Ollama accepts base64 image data only, not URLs")
                images.append(part.data)
        if images:
            m["images"] = images
    if msg.tool_calls:
        m["tool_calls"] = [
            {"function": {"name": tc.name, "arguments": _wire_arguments(tc.arguments)}}
            for tc in msg.tool_calls
        ]
    return [m]


def _decode_error_payload(text: str) -> Any:
    try:
        data = json.loads(text)
    except ValueError:
        return None
    if isinstance(data, dict):
        return data.get("error")
    return None
