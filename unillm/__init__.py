"""unillm -- one client contract for many language-model backends."""

from unillm.chat import ChatRequest, ChatResponse, Choice, MessageDelta, ToolCallDelta, Usage
from unillm.completion import complete, next_round
from unillm.errors import ErrorKind, LLMError
from unillm.messages import Content, Message, Role, ToolInvocation, ToolResult
from unillm.registry import ProviderRegistry
from unillm.streaming import StreamDecoder, decode_stream
from unillm.tools.base import Tool, ToolSchema, ToolSchemaProperty
from unillm.value import Value, ValueKind

__version__ = "0.1.0"

__all__ = [
    "ChatRequest",
    "ChatResponse",
    "Choice",
    "Content",
    "ErrorKind",
    "LLMError",
    "Message",
    "MessageDelta",
    "ProviderRegistry",
    "Role",
    "StreamDecoder",
    "Tool",
    "ToolCallDelta",
    "ToolInvocation",
    "ToolResult",
    "ToolSchema",
    "ToolSchemaProperty",
    "Usage",
    "Value",
    "ValueKind",
    "complete",
    "decode_stream",
    "next_round",
]
