"""Single-round tool dispatch.

Looks for a function call in the first part of the first candidate only. When
it names a known tool, the tool is run and its result is sent back as the next
user turn in exactly one follow-up request. Deeper tool chains are left to the
caller.
"""

import inspect
import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel

from gemrelay.exceptions import ToolExecutionError
from gemrelay.models.conversation import Turn
from gemrelay.providers.base import FunctionCall, ProviderResponse
from gemrelay.tools.base import Tool

logger = logging.getLogger(__name__)

FollowUp = Callable[[list[Turn]], Awaitable[ProviderResponse]]


@dataclass
class DispatchOutcome:
    """Result of inspecting (and possibly answering) a response."""

    response: ProviderResponse
    turns: list[Turn]
    function_call: FunctionCall | None = None
    tool_result: str | None = None
    responses: list[ProviderResponse] = field(default_factory=list)

    @property
    def text(self) -> str:
        """Final answer text."""
        return self.response.text


def serialize_tool_result(result: Any) -> str:
    """Render a tool result as text for the follow-up turn."""
    if isinstance(result, str):
        return result
    if isinstance(result, BaseModel):
        return result.model_dump_json()
    return json.dumps(result, default=str)


class ToolCallDispatcher:
    """Detects, runs and answers one model-issued function call."""

    def find_function_call(self, response: ProviderResponse) -> FunctionCall | None:
        """Function call in the first part of the first candidate, if any."""
        if not response.candidates:
            return None
        parts = response.candidates[0].content.parts
        if not parts:
            return None
        return parts[0].function_call

    def resolve(self, name: str, tools: Sequence[Tool]) -> Tool | None:
        """Exact-name lookup; no fuzzy matching."""
        by_name = {tool.name: tool for tool in tools}
        return by_name.get(name)

    async def invoke(self, tool: Tool, args: dict[str, Any]) -> str:
        """Run a tool and serialize its result.

        Raises:
            ToolExecutionError: If the tool raises.
        """
        try:
            result = tool.invoke(args)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            msg = f"Tool '{tool.name}' failed: {e}"
            raise ToolExecutionError(msg) from e
        return serialize_tool_result(result)

    async def dispatch(
        self,
        response: ProviderResponse,
        turns: Sequence[Turn],
        tools: Sequence[Tool] | None,
        follow_up: FollowUp,
    ) -> DispatchOutcome:
        """Answer a function call with one extra round trip, if there is one.

        Args:
            response: First provider response.
            turns: Conversation that produced ``response``.
            tools: Tools offered to the model.
            follow_up: Sends a conversation to the provider and returns its response.

        Returns:
            DispatchOutcome whose ``response`` holds the final answer. ``turns``
            is a new list; the input sequence is never modified.

        Raises:
            ToolExecutionError: If the matched tool fails.
        """
        outcome = DispatchOutcome(response=response, turns=list(turns), responses=[response])

        function_call = self.find_function_call(response)
        if function_call is None:
            return outcome

        tool = self.resolve(function_call.name, tools or [])
        if tool is None:
            logger.debug("Ignoring call to unknown tool %r", function_call.name)
            return outcome

        logger.debug("Invoking tool %s with %s", tool.name, function_call.args)
        tool_result = await self.invoke(tool, function_call.args)

        next_turns = [*turns, Turn(role="user", content=tool_result)]
        final = await follow_up(next_turns)

        return DispatchOutcome(
            response=final,
            turns=next_turns,
            function_call=function_call,
            tool_result=tool_result,
            responses=[response, final],
        )
