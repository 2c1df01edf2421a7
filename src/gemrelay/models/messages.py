"""Message envelope models.

These wrap conversation turns with the metadata the relay attaches (ids,
cost, duration) and form the tagged records of a persisted message log.
"""

import uuid
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from gemrelay.constants import NO_CONTENT_MESSAGE, SYNTHETIC_MODEL
from gemrelay.models.conversation import Turn


def _new_uuid() -> str:
    return str(uuid.uuid4())


def _tool_names(tools: list[Any]) -> list[str]:
    """Tools are persisted by name; live tool objects cannot be serialized."""
    return [tool if isinstance(tool, str) else tool.name for tool in tools]


class TokenUsage(BaseModel):
    """Token counters reported on an assistant message."""

    total_tokens: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0


class APIMessage(BaseModel):
    """Normalized assistant payload as returned to callers."""

    role: Literal["assistant"] = "assistant"
    content: str = NO_CONTENT_MESSAGE
    id: str = Field(default_factory=_new_uuid)
    model: str = SYNTHETIC_MODEL
    type: Literal["message"] = "message"
    usage: TokenUsage = Field(default_factory=TokenUsage)


class UserMessage(BaseModel):
    """User turn as stored in a message log."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["user"] = "user"
    uuid: str = Field(default_factory=_new_uuid)
    message: Turn


class AssistantMessage(BaseModel):
    """Assistant turn with cost/duration metadata."""

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    type: Literal["assistant"] = "assistant"
    uuid: str = Field(default_factory=_new_uuid)
    message: APIMessage
    cost_usd: float = Field(default=0.0, alias="costUSD")
    duration_ms: int = Field(default=0, alias="durationMs")
    is_api_error_message: bool = Field(default=False, alias="isApiErrorMessage")
    # Tool names on disk, live tool objects after rehydration
    tools: list[Any] = Field(default_factory=list)
    # Tool-result user turns this answer was produced from. Persisted logs
    # store them as separate user records instead.
    tool_turns: list[Turn] = Field(default_factory=list, exclude=True)

    @field_serializer("tools")
    def serialize_tools(self, tools: list[Any]) -> list[str]:
        return _tool_names(tools)

    def log_records(self) -> list["UserMessage | AssistantMessage"]:
        """Records to append to a message log: tool results, then this answer."""
        tool_records = [UserMessage(message=turn) for turn in self.tool_turns]
        return [*tool_records, self.model_copy(update={"tool_turns": []})]

    @property
    def text(self) -> str:
        """The assistant's reply text."""
        return self.message.content


class ProgressMessage(BaseModel):
    """Intermediate tool-progress record emitted while a tool runs."""

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    type: Literal["progress"] = "progress"
    uuid: str = Field(default_factory=_new_uuid)
    tool_use_id: str = Field(alias="toolUseID")
    content: str
    tools: list[Any] = Field(default_factory=list)

    @field_serializer("tools")
    def serialize_tools(self, tools: list[Any]) -> list[str]:
        return _tool_names(tools)


MessageType = Annotated[
    UserMessage | AssistantMessage | ProgressMessage, Field(discriminator="type")
]


def create_assistant_api_error_message(content: str) -> AssistantMessage:
    """Build the assistant message that stands in for a failed provider call.

    Args:
        content: User-facing error text.

    Returns:
        AssistantMessage flagged as an API error, with zero cost and usage.
    """
    return AssistantMessage(
        message=APIMessage(content=content or NO_CONTENT_MESSAGE),
        cost_usd=0.0,
        duration_ms=0,
        is_api_error_message=True,
    )
