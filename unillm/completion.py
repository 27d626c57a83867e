"""
Tool-calling completion engine.

Given a request and the (final or fully accumulated) response it produced,
decide whether another round is needed:

  1. No pending invocations -> ``None`` (the exchange is finished).
  2. For each invocation: look up the declared tool (unknown names are
     skipped), decode the raw arguments, and check required parameters.
     Every invocation is checked before any callback runs, so a failing
     round never leaves partial side effects behind.
  3. Run the callbacks in invocation order.  A callback returning ``None``
     contributes no result.
  4. No results -> ``None``.  Otherwise return a new request whose messages
     are the original ones plus the assistant turn recording the invocations
     and one tool-result message per result.

Callback exceptions propagate unwrapped.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

from unillm.contracts import CompletableRequest, ToolCallingRequest
from unillm.errors import MissingToolArguments, ToolArgumentsDecodeError
from unillm.messages import ToolInvocation, ToolResult
from unillm.tools.base import Tool
from unillm.tools.validation import ToolValidator
from unillm.value import Value

logger = logging.getLogger(__name__)


def _find_tool(tools: Sequence[Tool] | None, name: str) -> Tool | None:
    for tool in tools or ():
        if tool.name == name:
            return tool
    return None


def _prepare(
    request: Any, invocations: Sequence[ToolInvocation]
) -> list[tuple[ToolInvocation, Tool, dict[str, Value]]]:
    prepared: list[tuple[ToolInvocation, Tool, dict[str, Value]]] = []
    for invocation in invocations:
        tool = _find_tool(request.tools, invocation.name)
        if tool is None:
            logger.warning(
                "Skipping invocation %s of undeclared tool %r",
                invocation.id, invocation.name,
            )
            continue

        try:
            arguments = invocation.decode_arguments()
        except ValueError as exc:
            raise ToolArgumentsDecodeError(invocation, exc) from exc

        missing = ToolValidator.missing_required(tool, arguments)
        if missing:
            raise MissingToolArguments(invocation, missing)

        valid, error_msg = ToolValidator.validate(tool, arguments)
        if not valid:
            logger.warning(
                "Arguments for %r do not match its schema: %s", tool.name, error_msg
            )

        prepared.append((invocation, tool, arguments))
    return prepared


async def complete(request: Any, response: Any) -> Any | None:
    """Run one completion round; return the follow-up request or ``None``."""
    invocations = list(request.tool_invocations(response))
    if not invocations:
        return None

    prepared = _prepare(request, invocations)

    results: list[ToolResult] = []
    for invocation, tool, arguments in prepared:
        logger.info("Invoking tool %r (call %s)", tool.name, invocation.id)
        result = await tool.invoke(arguments)
        if result is None:
            logger.debug("Tool %r returned no result", tool.name)
            continue
        results.append(ToolResult(tool_call_id=invocation.id, result=result))

    if not results:
        return None

    messages = [
        *request.messages,
        request.assistant_message(response, invocations),
        *request.tool_result_messages(results),
    ]
    return request.with_messages(messages)


async def next_round(request: Any, response: Any) -> Any | None:
    """
    Ask *request* for its follow-up after *response*.

    Completable requests decide for themselves; plain tool-calling requests
    go through :func:`complete`; anything else is finished after one round.
    """
    if isinstance(request, CompletableRequest):
        return await request.completion(response)
    if isinstance(request, ToolCallingRequest):
        return await complete(request, response)
    return None
