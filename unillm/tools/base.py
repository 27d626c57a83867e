from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Union

from unillm.value import Value

logger = logging.getLogger(__name__)

ToolCallback = Callable[
    [dict[str, Value]], Union[str, None, Awaitable[Union[str, None]]]
]


@dataclass(frozen=True)
class ToolSchemaProperty:
    type: str
    enum: tuple[str, ...] | None = None
    description: str | None = None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"type": self.type}
        if self.enum is not None:
            d["enum"] = list(self.enum)
        if self.description is not None:
            d["description"] = self.description
        return d

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> ToolSchemaProperty:
        enum = raw.get("enum")
        return cls(
            type=raw.get("type", "string"),
            enum=tuple(enum) if enum is not None else None,
            description=raw.get("description"),
        )


@dataclass(frozen=True)
class ToolSchema:
    properties: Mapping[str, ToolSchemaProperty] = field(default_factory=dict)
    required: tuple[str, ...] | None = None
    type: str = "object"

    def __post_init__(self) -> None:
        if self.required is not None and not isinstance(self.required, tuple):
            object.__setattr__(self, "required", tuple(self.required))

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "type": self.type,
            "properties": {k: p.to_dict() for k, p in self.properties.items()},
        }
        if self.required is not None:
            d["required"] = list(self.required)
        return d

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> ToolSchema:
        raw = raw or {}
        required = raw.get("required")
        return cls(
            properties={
                k: ToolSchemaProperty.from_dict(v)
                for k, v in (raw.get("properties") or {}).items()
            },
            required=tuple(required) if required is not None else None,
            type=raw.get("type", "object"),
        )


@dataclass(frozen=True)
class Tool:
    """
    A caller-declared function the model may invoke.

    ``callback`` receives the decoded arguments and returns the result text,
    or ``None`` to contribute no result.  It may be a plain function or a
    coroutine function.
    """

    name: str
    description: str | None = None
    schema: ToolSchema = field(default_factory=ToolSchema)
    callback: ToolCallback | None = field(default=None, compare=False, repr=False)

    async def invoke(self, arguments: dict[str, Value]) -> str | None:
        if self.callback is None:
            return None
        result = self.callback(arguments)
        if inspect.isawaitable(result):
            # Cancelling the consumer must not interrupt the callback.
            task = asyncio.ensure_future(result)
            try:
                result = await asyncio.shield(task)
            except asyncio.CancelledError:
                task.add_done_callback(self._log_detached_outcome)
                raise
        return result

    def _log_detached_outcome(self, task: asyncio.Future) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Tool %r failed after its caller was cancelled: %s",
                self.name, exc, exc_info=exc,
            )

    def to_openai_schema(self) -> dict:
        function: dict[str, Any] = {
            "name": self.name,
            "parameters": self.schema.to_dict(),
        }
        if self.description:
            function["description"] = self.description
        return {"type": "function", "function": function}
