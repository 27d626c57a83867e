"""
OpenAI-compatible chat-completion adapter.

Works with any endpoint that speaks the OpenAI ``/v1/chat/completions`` wire
protocol -- OpenAI itself, Azure OpenAI, vLLM, LM Studio, LocalAI, etc.

Streaming uses Server-Sent Events::

    data: {json}\\n\\n
    data: [DONE]\\n\\n

Dependencies: ``httpx`` (async HTTP client).  No ``openai`` SDK needed.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Sequence

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
from unillm.messages import (
    AudioPart,
    Content,
    ImagePart,
    Message,
    Role,
    TextPart,
    ToolInvocation,
)
from unillm.providers.base import DEFAULT_MAX_ROUNDS, Provider
from unillm.providers.http import HTTPTransport

logger = logging.getLogger(__name__)

_CORE_KEYS = frozenset({"model", "messages", "stream"})


class OpenAICompatProvider(Provider):
    """
    Adapter for any OpenAI-API-compatible endpoint.

    Parameters
    ----------
    url:
        Base URL of the API, e.g. ``"https://api.openai.com/v1"`` or
        ``"http://localhost:8080/v1"``.
    api_key:
        Bearer token.  Pass ``""`` for unauthenticated local endpoints.
    timeout:
        HTTP request timeout in seconds.
    models:
        Glob patterns of model ids routed to this adapter.
    transport:
        Optional ``httpx`` transport (tests use ``httpx.MockTransport``).
    """

    request_types = (ChatRequest,)

    def __init__(
        self,
        url: str = "https://api.openai.com/v1",
        api_key: str = "",
        timeout: float = 120.0,
        models: Sequence[str] = ("*",),
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(models=models, max_rounds=max_rounds)
        self._api_key = api_key
        headers = {"Accept": "application/json, text/event-stream"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._http = HTTPTransport(
            url,
            headers=headers,
            timeout=timeout,
            decode_error_payload=_decode_error_payload,
            transport=transport,
        )

    @property
    def name(self) -> str:
        return "openai-compat"

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
        if request.n is not None:
            body["n"] = request.n
        if request.tools:
            body["tools"] = [t.to_openai_schema() for t in request.tools]
            body["tool_choice"] = "auto"
        for key, value in request.extras.items():
            if key not in _CORE_KEYS:
                body[key] = value

        logger.info(
            "REQUEST: model=%s tools=%d messages=%d stream=%s api_key=%s...",
            request.model,
            len(request.tools) if request.tools else 0,
            len(wire_messages),
            stream,
            self._api_key[:6] if self._api_key else "(none)",
        )
        return body

    # ------------------------------------------------------------------
    # Provider hooks
    # ------------------------------------------------------------------

    async def send(self, request: ChatRequest) -> ChatResponse:
        data = await self._http.post_json(
            "chat/completions", self.build_body(request, stream=False)
        )
        if isinstance(data, dict) and data.get("error"):
            raise _vendor_error(data)
        return response_from_wire(data)

    def open_stream(self, request: ChatRequest) -> AsyncIterator[str]:
        return self._http.stream_lines(
            "chat/completions",
            self.build_body(request, stream=True),
            expected_types=("text/event-stream",),
        )

    def decode_partial(self, buffer: str) -> ChatResponse | None:
        line = buffer.strip()
        # Blank lines separate events; ":" lines are comments/keep-alives;
        # "event:"/"id:"/"retry:" fields carry no payload here.
        if not line or not line.startswith("data:"):
            return None
        data = line[len("data:"):].strip()
        if data == "[DONE]":
            return None
        payload = json.loads(data)
        if not isinstance(payload, dict):
            raise ValueError(f"SSE data is not an object: {data[:80]}")
        return response_from_wire(payload)

    def decode_error(self, unit: str) -> Exception | None:
        line = unit.strip()
        if line.startswith("data:"):
            line = line[len("data:"):].strip()
        if not line.startswith("{") or '"error"' not in line:
            return None
        try:
            payload = json.loads(line)
        except ValueError:
            return None
        if isinstance(payload, dict) and payload.get("error"):
            return _vendor_error(payload)
        return None


# ---------------------------------------------------------------------------
# Wire -> neutral
# ---------------------------------------------------------------------------

def _wire_text(content: Any) -> str:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            p.get("text", "") for p in content
            if isinstance(p, dict) and p.get("type") == "text"
        )
    raise TypeError(f"Unexpected content shape: {type(content).__name__}")


def _message_from_wire(raw: dict) -> Message:
    tool_calls = None
    if raw.get("tool_calls"):
        tool_calls = tuple(
            ToolInvocation(
                id=tc.get("id") or f"call_{i}",
                name=(tc.get("function") or {}).get("name", ""),
                arguments=(tc.get("function") or {}).get("arguments") or "",
                index=tc.get("index", i),
            )
            for i, tc in enumerate(raw["tool_calls"])
        )
    return Message(
        role=raw.get("role") or Role.ASSISTANT,
        content=Content(text=_wire_text(raw.get("content"))),
        name=raw.get("name"),
        tool_calls=tool_calls,
    )


def _delta_from_wire(raw: dict) -> MessageDelta:
    tool_calls = None
    if raw.get("tool_calls"):
        tool_calls = tuple(
            ToolCallDelta(
                index=tc.get("index", i),
                id=tc.get("id"),
                name=(tc.get("function") or {}).get("name"),
                arguments=(tc.get("function") or {}).get("arguments") or "",
            )
            for i, tc in enumerate(raw["tool_calls"])
        )
    content = raw.get("content")
    return MessageDelta(
        role=raw.get("role"),
        content=_wire_text(content) if content is not None else None,
        tool_calls=tool_calls,
    )


def response_from_wire(data: dict) -> ChatResponse:
    """Convert a (partial or complete) chat-completion payload."""
    choices = []
    for raw in data.get("choices") or []:
        message = raw.get("message")
        delta = raw.get("delta")
        choices.append(
            Choice(
                index=raw.get("index", 0),
                message=_message_from_wire(message) if message else None,
                delta=_delta_from_wire(delta) if delta is not None else None,
                finish_reason=raw.get("finish_reason"),
            )
        )

    usage = None
    raw_usage = data.get("usage")
    if raw_usage:
        usage = Usage(
            prompt_tokens=raw_usage.get("prompt_tokens", 0),
            completion_tokens=raw_usage.get("completion_tokens", 0),
            total_tokens=raw_usage.get("total_tokens", 0),
        )

    return ChatResponse(
        id=data.get("id") or "",
        model=data.get("model"),
        choices=tuple(choices),
        usage=usage,
    )


# ---------------------------------------------------------------------------
# Neutral -> wire
# ---------------------------------------------------------------------------

def _wire_part(part: Any) -> dict:
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.text}
    if isinstance(part, ImagePart):
        url = part.url or f"data:{part.media_type or 'image/png'};base64,{part.data}"
        image_url: dict[str, Any] = {"url": url}
        if part.detail:
            image_url["detail"] = part.detail
        return {"type": "image_url", "image_url": image_url}
    if isinstance(part, AudioPart):
        return {
            "type": "input_audio",
            "input_audio": {"data": part.data, "format": part.format},
        }
    raise InvalidRequestEncoding(f"Cannot encode {part.type!r} part in this message")


def _wire_messages(msg: Message) -> list[dict]:
    # One OpenAI "tool" message per result.
    if msg.role is Role.TOOL:
        return [
            {"role": "tool", "tool_call_id": r.tool_call_id, "content": r.result}
            for r in msg.tool_results
        ]

    m: dict[str, Any] = {"role": msg.role.value}
    if msg.content.is_text:
        m["content"] = msg.content.text
    else:
        m["content"] = [_wire_part(p) for p in msg.content.parts]
    if msg.name:
        m["name"] = msg.name
    if msg.tool_calls:
        if m["content"] == "":
            m["content"] = None
        m["tool_calls"] = [
            {
                "id": tc.id,
                "type": "function",
                "function": {"name": tc.name, "arguments": tc.arguments or "{}"},
            }
            for tc in msg.tool_calls
        ]
    return [m]


def _decode_error_payload(text: str) -> Any:
    try:
        payload = json.loads(text)
    except ValueError:
        return None
    if isinstance(payload, dict) and "error" in payload:
        return payload["error"]
    return None


def _vendor_error(payload: dict) -> VendorError:
    error = payload["error"]
    message = error.get("message") if isinstance(error, dict) else str(error)
    return VendorError(error, message=message)
