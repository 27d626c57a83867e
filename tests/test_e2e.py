"""End-to-end: registry -> adapter -> decoder/merger -> completion loop."""

from __future__ import annotations

import httpx
import pytest

from unillm.chat import ChatRequest, ChatResponse
from unillm.completion import complete
from unillm.config import ClientConfig, ProviderConfig
from unillm.messages import Message, Role
from unillm.providers import OllamaProvider, OpenAICompatProvider, build_registry
from unillm.registry import ProviderRegistry
from unillm.streaming import StreamDecoder

from tests.mock_providers import MockProvider, delta_frame, make_text_frames, tool_fragment
from tests.mock_tools import make_weather_tool

BOSTON_FRAMES = [
    delta_frame(tool_calls=[tool_fragment(0, "1", "get_weather", '{"loc')]),
    delta_frame(tool_calls=[tool_fragment(0, arguments='ation":"Bos')]),
    delta_frame(tool_calls=[tool_fragment(0, arguments='ton"}')], finish_reason="tool_calls"),
]


@pytest.fixture
def weather_calls():
    return []


@pytest.fixture
def boston_request(weather_calls):
    return ChatRequest(
        model="m",
        messages=[Message.user("weather in Boston?")],
        tools=[make_weather_tool(weather_calls)],
        stream=True,
    )


class TestBostonExample:
    async def test_three_frames_merge_and_follow_up(self, boston_request, weather_calls):
        provider = MockProvider(stream_rounds=[BOSTON_FRAMES, make_text_frames("Sunny in Boston.")])
        decoder = StreamDecoder(provider.decode_partial, ChatResponse.empty())
        async for _ in decoder.decode(provider.open_stream(boston_request)):
            pass

        (inv,) = decoder.accumulated.tool_invocations
        assert inv.arguments == '{"location":"Boston"}'
        assert inv.decode_arguments()["location"].as_str() == "Boston"

        follow_up = await complete(boston_request, decoder.accumulated)
        assert len(weather_calls) == 1
        user, assistant, tool = follow_up.messages
        assert user.role is Role.USER and user.text == "weather in Boston?"
        assert assistant.role is Role.ASSISTANT
        assert [tc.name for tc in assistant.tool_calls] == ["get_weather"]
        assert tool.role is Role.TOOL
        assert tool.tool_results[0].tool_call_id == "1"
        assert tool.tool_results[0].result == "Sunny in Boston"

    async def test_through_registry_as_one_stream(self, boston_request, weather_calls):
        registry = ProviderRegistry()
        provider = MockProvider(stream_rounds=[BOSTON_FRAMES, make_text_frames("Sunny in Boston.")])
        registry.register(provider)

        final = ChatResponse.empty()
        async for partial in registry.stream(boston_request):
            final = final.combine(partial)

        assert len(weather_calls) == 1
        assert provider.call_count == 2
        assert [m.role for m in provider.requests[1].messages] == [Role.USER, Role.ASSISTANT, Role.TOOL]
        assert final.text.endswith("Sunny in Boston.")


class TestConfiguredRegistry:
    def test_build_from_config(self):
        cfg = ClientConfig(providers=[
            ProviderConfig(kind="openai", models=["gpt-*"], api_key_env=""),
            ProviderConfig(kind="ollama", url="http://localhost:11434", models=["llama*"], api_key_env=""),
        ])
        registry = build_registry(cfg)
        assert isinstance(registry.resolve(ChatRequest(model="gpt-4o")), OpenAICompatProvider)
        assert isinstance(registry.resolve(ChatRequest(model="llama3")), OllamaProvider)
        assert registry.lookup(OllamaProvider).models == ("llama*",)

    async def test_http_adapters_side_by_side(self):
        def openai_handler(request):
            return httpx.Response(200, json={
                "id": "1",
                "choices": [{"index": 0, "message": {"role": "assistant", "content": "from openai"},
                             "finish_reason": "stop"}],
            })

        def ollama_handler(request):
            return httpx.Response(200, json={
                "model": "llama3", "message": {"role": "assistant", "content": "from ollama"}, "done": True,
            })

        registry = ProviderRegistry()
        registry.register(OpenAICompatProvider(
            url="https://api.test/v1", models=("gpt-*",), transport=httpx.MockTransport(openai_handler),
        ))
        registry.register(OllamaProvider(
            url="http://ollama.test", models=("llama*",), transport=httpx.MockTransport(ollama_handler),
        ))
        try:
            a = await registry.perform(ChatRequest(model="gpt-4o", messages=[Message.user("q")]))
            b = await registry.perform(ChatRequest(model="llama3", messages=[Message.user("q")]))
        finally:
            await registry.aclose()
        assert a.text == "from openai"
        assert b.text == "from ollama"

    async def test_shared_request_reused_for_stream_and_perform(self):
        provider = MockProvider(
            responses=None,
            stream_rounds=[make_text_frames("streamed")],
        )
        request = ChatRequest(model="m", messages=[Message.user("q")])
        streamed = [p async for p in provider.stream(request.with_stream(True))]
        performed = await provider.perform(request)
        assert "".join(p.text for p in streamed) == "streamed"
        assert performed.text == ""
        assert request.stream is None
