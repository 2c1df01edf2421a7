"""Message log persistence.

Logs are JSON arrays of tagged messages. Tools cannot be serialized, so
assistant and progress messages store tool names and get the live tool set
back on load.
"""

import json
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter

from gemrelay.models.messages import AssistantMessage, MessageType, ProgressMessage
from gemrelay.tools.base import Tool

logger = logging.getLogger(__name__)

_MESSAGES = TypeAdapter(list[MessageType])


def rehydrate(
    messages: Sequence[MessageType],
    tools: Sequence[Tool],
) -> list[MessageType]:
    """Restore live tool references on loaded messages.

    Every assistant and progress message gets the full live tool set (one
    tool per name, the last duplicate wins) in place of its stored names.
    Other messages pass through unchanged. Idempotent.

    Args:
        messages: Messages as loaded from disk.
        tools: Tools available in this process.

    Returns:
        New list; input messages are not modified.
    """
    by_name: dict[str, Tool] = {tool.name: tool for tool in tools}
    live_tools = list(by_name.values())

    return [
        message.model_copy(update={"tools": list(live_tools)})
        if isinstance(message, AssistantMessage | ProgressMessage)
        else message
        for message in messages
    ]


def deserialize_messages(raw: Any, tools: Sequence[Tool]) -> list[MessageType]:
    """Validate raw JSON data as messages and rehydrate their tools."""
    return rehydrate(_MESSAGES.validate_python(raw), tools)


def load_messages_from_log(path: Path, tools: Sequence[Tool]) -> list[MessageType]:
    """Load and rehydrate a message log.

    Args:
        path: JSON log file.
        tools: Tools available in this process.

    Returns:
        Rehydrated messages in log order.

    Raises:
        OSError: If the file cannot be read.
        ValueError: If the file is not valid JSON or not a valid message log
            (pydantic's ValidationError is a ValueError).
    """
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        return deserialize_messages(raw, tools)
    except Exception:
        logger.exception("Failed to load messages from %s", path)
        raise


def save_messages_to_log(path: Path, messages: Sequence[MessageType]) -> Path:
    """Write messages as a JSON log, storing tools by name.

    Returns:
        The path written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(_MESSAGES.dump_json(list(messages), by_alias=True, indent=2))
    return path
