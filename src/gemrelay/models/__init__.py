"""Data models for gemrelay."""

from gemrelay.models.config import (
    LLMConfig,
    LoggingConfig,
    ModelPricing,
    RecordMode,
    RecorderConfig,
    RetryPolicy,
)
from gemrelay.models.conversation import ContentBlock, TextBlock, ToolResultBlock, Turn
from gemrelay.models.messages import (
    APIMessage,
    AssistantMessage,
    MessageType,
    ProgressMessage,
    TokenUsage,
    UserMessage,
    create_assistant_api_error_message,
)

__all__ = [
    "APIMessage",
    "AssistantMessage",
    "ContentBlock",
    "LLMConfig",
    "LoggingConfig",
    "MessageType",
    "ModelPricing",
    "ProgressMessage",
    "RecordMode",
    "RecorderConfig",
    "RetryPolicy",
    "TextBlock",
    "TokenUsage",
    "ToolResultBlock",
    "Turn",
    "UserMessage",
    "create_assistant_api_error_message",
]
