"""
Vendor-neutral chat request and response types.

Adapters translate their wire payloads to and from these types, which
implement every capability in :mod:`unillm.contracts`:

  - ``ChatRequest``  -- streamable, multi-choice, tool-calling, completable.
  - ``ChatResponse`` -- streamable (``empty`` + ``combine``), multi-choice.

Streaming merge rules:

  - Choices are matched by ``Choice.index``, never by list position.
  - Within a choice, each ``MessageDelta`` is folded into ``message``: text is
    concatenated, tool-call fragments are matched by their index.  Fields
    present in the newer fragment overwrite, argument text is appended in
    arrival order.
  - ``finish_reason``, ``usage``, ``id`` and ``model`` take the newest
    non-empty value.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable, ClassVar, Iterable, Mapping, Sequence

from unillm.completion import complete
from unillm.messages import (
    Content,
    Message,
    Role,
    ToolInvocation,
    ToolResult,
    validate_conversation,
)
from unillm.tools.base import Tool


# ---------------------------------------------------------------------------
# Deltas
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ToolCallDelta:
    """One streamed fragment of a tool invocation."""

    index: int
    id: str | None = None
    name: str | None = None
    arguments: str = ""


@dataclass(frozen=True)
class MessageDelta:
    role: Role | None = None
    content: str | None = None
    tool_calls: tuple[ToolCallDelta, ...] | None = None

    def __post_init__(self) -> None:
        if self.role is not None:
            object.__setattr__(self, "role", Role.normalize(self.role))
        if self.tool_calls is not None and not isinstance(self.tool_calls, tuple):
            object.__setattr__(self, "tool_calls", tuple(self.tool_calls))


def merge_tool_calls(
    current: Sequence[ToolInvocation] | None,
    deltas: Sequence[ToolCallDelta] | None,
) -> tuple[ToolInvocation, ...] | None:
    """Fold *deltas* into *current*, matching on invocation index."""
    if not deltas:
        return tuple(current) if current else None

    by_index: dict[int, ToolInvocation] = {}
    for position, tc in enumerate(current or ()):
        by_index[tc.index if tc.index is not None else position] = tc

    for d in deltas:
        existing = by_index.get(d.index)
        if existing is None:
            by_index[d.index] = ToolInvocation(
                id=d.id or "",
                name=d.name or "",
                arguments=d.arguments,
                index=d.index,
            )
        else:
            by_index[d.index] = ToolInvocation(
                id=d.id or existing.id,
                name=d.name or existing.name,
                arguments=existing.arguments + d.arguments,
                index=d.index,
            )

    return tuple(by_index[i] for i in sorted(by_index))


def apply_delta(message: Message | None, delta: MessageDelta | None) -> Message | None:
    """Return *message* with *delta* folded in."""
    if delta is None:
        return message
    if message is None:
        role = delta.role or Role.ASSISTANT
        text = ""
        tool_calls: Sequence[ToolInvocation] | None = None
        name = None
    else:
        role = message.role
        text = message.text
        tool_calls = message.tool_calls
        name = message.name
    return Message(
        role=role,
        content=Content(text=text + (delta.content or "")),
        name=name,
        tool_calls=merge_tool_calls(tool_calls, delta.tool_calls),
    )


# ---------------------------------------------------------------------------
# Response
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass(frozen=True)
class Choice:
    """
    One candidate completion.

    Non-streaming responses fill ``message``; streamed partials carry a
    ``delta``.  After merging, ``message`` holds the accumulated turn and
    ``delta`` the most recent fragment.
    """

    index: int = 0
    message: Message | None = None
    delta: MessageDelta | None = None
    finish_reason: str | None = None

    def combine(self, nxt: Choice) -> Choice:
        # The first partial only has a delta, so seed the message from it.
        base = self.message if self.message is not None else apply_delta(None, self.delta)
        if nxt.delta is None and nxt.message is not None:
            message = nxt.message
        else:
            message = apply_delta(base, nxt.delta)
        return Choice(
            index=self.index,
            message=message,
            delta=nxt.delta if nxt.delta is not None else self.delta,
            finish_reason=nxt.finish_reason or self.finish_reason,
        )

    @property
    def resolved_message(self) -> Message | None:
        if self.message is not None:
            return self.message
        return apply_delta(None, self.delta)


def merge_choices(current: Sequence[Choice], nxt: Sequence[Choice]) -> tuple[Choice, ...]:
    by_index = {c.index: c for c in current}
    for choice in sorted(nxt, key=lambda c: c.index):
        existing = by_index.get(choice.index)
        by_index[choice.index] = choice if existing is None else existing.combine(choice)
    return tuple(by_index[i] for i in sorted(by_index))


@dataclass(frozen=True)
class ChatResponse:
    id: str = ""
    model: str | None = None
    choices: tuple[Choice, ...] = ()
    usage: Usage | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.choices, tuple):
            object.__setattr__(self, "choices", tuple(self.choices))

    @classmethod
    def empty(cls) -> ChatResponse:
        return cls()

    def combine(self, partial: ChatResponse) -> ChatResponse:
        return ChatResponse(
            id=partial.id or self.id,
            model=partial.model or self.model,
            choices=merge_choices(self.choices, partial.choices),
            usage=partial.usage or self.usage,
        )

    def choice(self, index: int = 0) -> Choice | None:
        for c in self.choices:
            if c.index == index:
                return c
        return None

    @property
    def first_choice(self) -> Choice | None:
        if not self.choices:
            return None
        return min(self.choices, key=lambda c: c.index)

    @property
    def message(self) -> Message | None:
        c = self.first_choice
        return c.resolved_message if c else None

    @property
    def text(self) -> str:
        msg = self.message
        return msg.text if msg else ""

    @property
    def tool_invocations(self) -> tuple[ToolInvocation, ...]:
        msg = self.message
        return tuple(msg.tool_calls or ()) if msg else ()

    @property
    def finish_reason(self) -> str | None:
        c = self.first_choice
        return c.finish_reason if c else None


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------

ChoicePicker = Callable[[Sequence[Choice]], int]


@dataclass(frozen=True)
class ChatRequest:
    """
    An immutable chat request.

    Every "update" returns a new instance, so one request can be shared by a
    streaming and a non-streaming call, or by concurrent tool rounds.
    """

    route: ClassVar[str] = "chat"
    response_type: ClassVar[type] = ChatResponse

    model: str
    messages: tuple[Message, ...] = ()
    tools: tuple[Tool, ...] | None = None
    stream: bool | None = None
    n: int | None = None
    extras: Mapping[str, Any] = field(default_factory=dict)
    choose: ChoicePicker | None = field(default=None, compare=False, repr=False)

    # ``extras`` is a free-form mapping.
    __hash__ = None  # type: ignore[assignment]

    def __post_init__(self) -> None:
        if not isinstance(self.messages, tuple):
            object.__setattr__(self, "messages", tuple(self.messages))
        if self.tools is not None and not isinstance(self.tools, tuple):
            object.__setattr__(self, "tools", tuple(self.tools))
        validate_conversation(self.messages)

    # -- copy-with ---------------------------------------------------------

    def with_stream(self, stream: bool) -> ChatRequest:
        return replace(self, stream=stream)

    def with_messages(self, messages: Iterable[Message]) -> ChatRequest:
        return replace(self, messages=tuple(messages))

    def appending(self, *messages: Message) -> ChatRequest:
        return replace(self, messages=self.messages + messages)

    def with_model(self, model: str) -> ChatRequest:
        return replace(self, model=model)

    # -- multi-choice ------------------------------------------------------

    def pick(self, choices: Sequence[Choice]) -> int:
        """Position in *choices* of the candidate to continue with."""
        if not choices:
            return 0
        if self.choose is not None:
            return self.choose(choices)
        return min(range(len(choices)), key=lambda i: choices[i].index)

    def picked_choice(self, response: ChatResponse) -> Choice | None:
        if not response.choices:
            return None
        return response.choices[self.pick(response.choices)]

    # -- tool calling ------------------------------------------------------

    def tool(self, name: str) -> Tool | None:
        for t in self.tools or ():
            if t.name == name:
                return t
        return None

    def tool_invocations(self, response: ChatResponse) -> tuple[ToolInvocation, ...]:
        choice = self.picked_choice(response)
        message = choice.resolved_message if choice else None
        if message is None or not message.tool_calls:
            return ()
        return tuple(message.tool_calls)

    def assistant_message(
        self, response: ChatResponse, invocations: Sequence[ToolInvocation]
    ) -> Message:
        choice = self.picked_choice(response)
        message = choice.resolved_message if choice else None
        if message is not None and message.role is Role.ASSISTANT:
            return replace(message, tool_calls=tuple(invocations))
        return Message.assistant(tool_calls=invocations)

    def tool_result_messages(self, results: Sequence[ToolResult]) -> list[Message]:
        return [Message.tool(r) for r in results]

    async def completion(self, response: ChatResponse) -> ChatRequest | None:
        return await complete(self, response)
