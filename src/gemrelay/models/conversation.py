"""Conversation data models.

Defines the provider-agnostic structure for conversation turns and their
content blocks.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class TextBlock(BaseModel):
    """Plain text content block."""

    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ToolResultBlock(BaseModel):
    """Result of a tool invocation, addressed to the tool call that produced it."""

    model_config = ConfigDict(frozen=True)

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False


ContentBlock = Annotated[TextBlock | ToolResultBlock, Field(discriminator="type")]


class Turn(BaseModel):
    """Single turn in a conversation."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str | list[ContentBlock]

    @property
    def text(self) -> str:
        """Flattened text of the turn; non-text blocks contribute nothing."""
        if isinstance(self.content, str):
            return self.content
        return "\n".join(
            block.text if isinstance(block, TextBlock) else "" for block in self.content
        )
