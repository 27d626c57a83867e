"""Tests for the Ollama adapter (NDJSON streaming)."""

from __future__ import annotations

import json

import httpx
import pytest

from unillm.chat import ChatRequest
from unillm.errors import InvalidRequestEncoding, UnsuccessfulStatus, VendorError
from unillm.messages import ImagePart, Message, TextPart, ToolInvocation, ToolResult
from unillm.providers.ollama import OllamaProvider

from tests.mock_tools import make_weather_tool


def _ndjson(*objs: dict) -> httpx.Response:
    body = "".join(json.dumps(o) + "\n" for o in objs).encode()
    return httpx.Response(200, content=body, headers={"content-type": "application/x-ndjson"})


class Handler:
    def __init__(self, *responses: httpx.Response) -> None:
        self.responses = list(responses)
        self.bodies: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/chat"
        self.bodies.append(json.loads(request.content))
        return self.responses.pop(0)


def _provider(handler) -> OllamaProvider:
    return OllamaProvider(url="http://ollama.test:11434", transport=httpx.MockTransport(handler))


class TestNonStreaming:
    async def test_text_with_usage(self):
        handler = Handler(httpx.Response(200, json={
            "model": "llama3",
            "created_at": "2024-01-01T00:00:00Z",
            "message": {"role": "assistant", "content": "Hi!"},
            "done": True,
            "done_reason": "stop",
            "prompt_eval_count": 10,
            "eval_count": 3,
        }))
        response = await _provider(handler).perform(
            ChatRequest(model="llama3", messages=[Message.user("hello")])
        )
        assert response.text == "Hi!"
        assert response.finish_reason == "stop"
        assert response.usage.total_tokens == 13
        assert handler.bodies[0]["stream"] is False

    async def test_tool_call_round(self):
        calls = []
        handler = Handler(
            httpx.Response(200, json={
                "model": "llama3",
                "message": {
                    "role": "assistant",
                    "content": "",
                    "tool_calls": [{"function": {"name": "get_weather", "arguments": {"location": "Boston"}}}],
                },
                "done": True,
            }),
            httpx.Response(200, json={
                "model": "llama3",
                "message": {"role": "assistant", "content": "Sunny."},
                "done": True,
            }),
        )
        request = ChatRequest(
            model="llama3", messages=[Message.user("weather?")], tools=[make_weather_tool(calls)]
        )
        response = await _provider(handler).perform(request)

        assert response.text == "Sunny."
        assert calls[0]["location"].as_str() == "Boston"
        follow_up = handler.bodies[1]["messages"]
        # Arguments go back out as an object, not a string.
        assert follow_up[1]["tool_calls"][0]["function"]["arguments"] == {"location": "Boston"}
        assert follow_up[2] == {"role": "tool", "content": "Sunny in Boston"}

    async def test_error_status(self):
        handler = Handler(httpx.Response(404, json={"error": "model 'nope' not found"}))
        with pytest.raises(UnsuccessfulStatus) as exc_info:
            await _provider(handler).perform(ChatRequest(model="nope", messages=[Message.user("q")]))
        assert exc_info.value.payload == "model 'nope' not found"


class TestStreaming:
    async def test_text_stream(self):
        handler = Handler(_ndjson(
            {"model": "llama3", "message": {"role": "assistant", "content": "Hel"}, "done": False},
            {"model": "llama3", "message": {"role": "assistant", "content": "lo"}, "done": False},
            {"model": "llama3", "message": {"role": "assistant", "content": ""}, "done": True,
             "done_reason": "stop", "prompt_eval_count": 2, "eval_count": 2},
        ))
        request = ChatRequest(model="llama3", messages=[Message.user("q")], stream=True)
        partials = [p async for p in _provider(handler).stream(request)]
        assert "".join(p.text for p in partials) == "Hello"
        assert partials[-1].finish_reason == "stop"
        assert partials[-1].usage.total_tokens == 4

    async def test_stream_tool_ids_are_synthesized(self):
        calls = []
        handler = Handler(
            _ndjson({
                "model": "llama3",
                "message": {"role": "assistant", "content": "", "tool_calls": [
                    {"function": {"name": "get_weather", "arguments": {"location": "Oslo"}}},
                ]},
                "done": True,
            }),
            _ndjson({"model": "llama3", "message": {"role": "assistant", "content": "Cold."}, "done": True}),
        )
        request = ChatRequest(
            model="llama3", messages=[Message.user("q")], tools=[make_weather_tool(calls)], stream=True,
        )
        partials = [p async for p in _provider(handler).stream(request)]
        assert partials[0].tool_invocations[0].id == "call_0"
        assert partials[-1].text == "Cold."
        assert len(calls) == 1

    async def test_calls_on_separate_lines_stay_separate(self):
        calls = []

        def call_line(city: str) -> dict:
            return {
                "model": "llama3",
                "message": {"role": "assistant", "content": "", "tool_calls": [
                    {"function": {"name": "get_weather", "arguments": {"location": city}}},
                ]},
                "done": False,
            }

        handler = Handler(
            _ndjson(
                call_line("Oslo"),
                call_line("Bergen"),
                {"model": "llama3", "message": {"role": "assistant", "content": ""}, "done": True},
            ),
            _ndjson({"model": "llama3", "message": {"role": "assistant", "content": "Rain."}, "done": True}),
        )
        request = ChatRequest(
            model="llama3", messages=[Message.user("q")], tools=[make_weather_tool(calls)], stream=True,
        )
        partials = [p async for p in _provider(handler).stream(request)]

        assert [c["location"].as_str() for c in calls] == ["Oslo", "Bergen"]
        assert partials[-1].text == "Rain."
        follow_up = handler.bodies[1]["messages"]
        assert [tc["function"]["arguments"] for tc in follow_up[1]["tool_calls"]] == [
            {"location": "Oslo"}, {"location": "Bergen"},
        ]

    def test_indices_restart_for_each_stream(self):
        provider = _provider(Handler())
        line = json.dumps({"message": {"tool_calls": [{"function": {"name": "f", "arguments": {}}}]}})
        first = provider.partial_decoder()
        assert first(line).choices[0].delta.tool_calls[0].index == 0
        assert first(line).choices[0].delta.tool_calls[0].id == "call_1"
        assert provider.partial_decoder()(line).choices[0].delta.tool_calls[0].index == 0

    async def test_error_line(self):
        handler = Handler(_ndjson(
            {"model": "llama3", "message": {"role": "assistant", "content": "a"}, "done": False},
            {"error": "out of memory"},
        ))
        request = ChatRequest(model="llama3", messages=[Message.user("q")], stream=True)
        with pytest.raises(VendorError, match="out of memory"):
            async for _ in _provider(handler).stream(request):
                pass


class TestBody:
    def test_images_and_tool_history(self):
        provider = _provider(Handler())
        request = ChatRequest(
            model="llava",
            messages=[
                Message.user([TextPart("describe"), ImagePart(data="iVBOR")]),
                Message.assistant(tool_calls=[ToolInvocation("c1", "f", '{"a": 1}')]),
                Message.tool(ToolResult("c1", "done")),
            ],
            extras={"options": {"temperature": 0}},
        )
        body = provider.build_body(request, stream=True)
        assert body["messages"][0] == {"role": "user", "content": "describe", "images": ["iVBOR"]}
        assert body["messages"][1]["tool_calls"][0]["function"]["arguments"] == {"a": 1}
        assert body["options"] == {"temperature": 0}

    def test_image_url_rejected(self):
        provider = _provider(Handler())
        request = ChatRequest(model="llava", messages=[Message.user([ImagePart(url="http://x/y.png")])])
        with pytest.raises(InvalidRequestEncoding):
            provider.build_body(request, stream=False)

    def test_malformed_history_arguments_rejected(self):
        provider = _provider(Handler())
        request = ChatRequest(
            model="llama3",
            messages=[Message.assistant(tool_calls=[ToolInvocation("c1", "f", '{"a": ')])],
        )
        with pytest.raises(InvalidRequestEncoding):
            provider.build_body(request, stream=False)
