"""Top-level query orchestration."""

from gemrelay.orchestrator.orchestrator import (
    QueryOrchestrator,
    assistant_message_from_error,
    to_turns,
)

__all__ = ["QueryOrchestrator", "assistant_message_from_error", "to_turns"]
