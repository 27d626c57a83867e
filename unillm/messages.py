"""Vendor-neutral conversation turns."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Iterable, Sequence, Union

from unillm.value import Value, decode_arguments


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"

    @classmethod
    def normalize(cls, role: Role | str) -> Role:
        """Map a vendor role name (or synonym) onto the canonical set."""
        if isinstance(role, Role):
            return role
        key = str(role).strip().lower()
        try:
            return cls(key)
        except ValueError:
            pass
        if key in _ROLE_SYNONYMS:
            return _ROLE_SYNONYMS[key]
        raise ValueError(f"Unknown role: {role!r}")


_ROLE_SYNONYMS: dict[str, Role] = {
    "developer": Role.SYSTEM,
    "human": Role.USER,
    "model": Role.ASSISTANT,
    "ai": Role.ASSISTANT,
    "bot": Role.ASSISTANT,
    "function": Role.TOOL,
    "tool_result": Role.TOOL,
    "ipython": Role.TOOL,
}


# ---------------------------------------------------------------------------
# Content parts
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TextPart:
    type: ClassVar[str] = "text"
    text: str


@dataclass(frozen=True)
class ImagePart:
    """An image given either by URL or as base64 ``data``."""

    type: ClassVar[str] = "image"
    url: str | None = None
    data: str | None = None
    media_type: str | None = None
    detail: str | None = None

    def __post_init__(self) -> None:
        if (self.url is None) == (self.data is None):
            raise ValueError("ImagePart needs exactly one of url or data")


@dataclass(frozen=True)
class AudioPart:
    type: ClassVar[str] = "audio"
    data: str
    format: str = "wav"
    transcript: str | None = None


@dataclass(frozen=True)
class ToolResultPart:
    type: ClassVar[str] = "tool_result"
    tool_call_id: str
    result: str


ContentPart = Union[TextPart, ImagePart, AudioPart, ToolResultPart]


@dataclass(frozen=True)
class Content:
    """Plain text or an ordered tuple of typed parts -- never both."""

    text: str | None = None
    parts: tuple[ContentPart, ...] | None = None

    def __post_init__(self) -> None:
        if (self.text is None) == (self.parts is None):
            raise ValueError("Content holds exactly one of text or parts")
        if self.parts is not None and not isinstance(self.parts, tuple):
            object.__setattr__(self, "parts", tuple(self.parts))

    @classmethod
    def of(cls, value: Content | str | Iterable[ContentPart]) -> Content:
        if isinstance(value, Content):
            return value
        if isinstance(value, str):
            return cls(text=value)
        return cls(parts=tuple(value))

    @property
    def is_text(self) -> bool:
        return self.text is not None

    @property
    def text_value(self) -> str:
        """All textual content, with text parts joined in order."""
        if self.text is not None:
            return self.text
        return "".join(p.text for p in self.parts if isinstance(p, TextPart))


# ---------------------------------------------------------------------------
# Tool invocations
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ToolInvocation:
    """
    A model-issued call to a declared tool.

    ``arguments`` is the raw argument text exactly as the vendor produced it;
    ``index`` is the vendor's position for the call, used to merge streamed
    fragments.
    """

    id: str
    name: str
    arguments: str = ""
    index: int | None = None

    def decode_arguments(self) -> dict[str, Value]:
        return decode_arguments(self.arguments)


@dataclass(frozen=True)
class ToolResult:
    tool_call_id: str
    result: str


# ---------------------------------------------------------------------------
# Message
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Message:
    """A single, immutable conversation turn."""

    role: Role
    content: Content
    name: str | None = None
    tool_calls: tuple[ToolInvocation, ...] | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "role", Role.normalize(self.role))
        object.__setattr__(self, "content", Content.of(self.content))
        if self.tool_calls is not None and not isinstance(self.tool_calls, tuple):
            object.__setattr__(self, "tool_calls", tuple(self.tool_calls))

    @classmethod
    def system(cls, text: str) -> Message:
        return cls(Role.SYSTEM, Content(text=text))

    @classmethod
    def user(cls, content: Content | str | Iterable[ContentPart], name: str | None = None) -> Message:
        return cls(Role.USER, Content.of(content), name=name)

    @classmethod
    def assistant(
        cls,
        content: Content | str | Iterable[ContentPart] = "",
        tool_calls: Sequence[ToolInvocation] | None = None,
    ) -> Message:
        return cls(
            Role.ASSISTANT,
            Content.of(content),
            tool_calls=tuple(tool_calls) if tool_calls else None,
        )

    @classmethod
    def tool(cls, result: ToolResult) -> Message:
        return cls(
            Role.TOOL,
            Content(parts=(ToolResultPart(result.tool_call_id, result.result),)),
        )

    @property
    def text(self) -> str:
        return self.content.text_value

    @property
    def tool_results(self) -> tuple[ToolResultPart, ...]:
        if self.content.parts is None:
            return ()
        return tuple(p for p in self.content.parts if isinstance(p, ToolResultPart))


def validate_conversation(messages: Sequence[Message]) -> None:
    """
    Check that every tool result answers an invocation issued earlier.

    Raises ``ValueError`` naming the first orphaned result id.
    """
    issued: set[str] = set()
    for msg in messages:
        for part in msg.tool_results:
            if part.tool_call_id not in issued:
                raise ValueError(
                    f"Tool result {part.tool_call_id!r} has no preceding invocation"
                )
        if msg.tool_calls:
            issued.update(tc.id for tc in msg.tool_calls)
