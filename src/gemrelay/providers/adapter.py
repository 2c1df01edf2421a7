"""Conversion from gemrelay conversations to the provider request shape."""

from collections.abc import Sequence
from typing import Any

from gemrelay.models.config import LLMConfig
from gemrelay.models.conversation import Turn
from gemrelay.providers.base import GenerationConfig, ProviderRequest
from gemrelay.tools.base import Tool


class MessageAdapter:
    """Stateless formatter for provider-native history and tool declarations.

    Gemini chat history has no system role, so a non-empty system prompt is
    sent as a leading ``user`` entry. This is a protocol requirement and is
    kept here as an explicit rule rather than at call sites.
    """

    SYSTEM_PROMPT_ROLE = "user"

    def to_history(
        self,
        turns: Sequence[Turn],
        system_prompt: Sequence[str] = (),
    ) -> list[dict[str, Any]]:
        """Convert turns (and the system prompt) to history entries.

        Args:
            turns: Conversation turns in chronological order.
            system_prompt: Ordered system directive fragments.

        Returns:
            List of ``{"role", "parts": [{"text"}]}`` dictionaries.
        """
        history = [{"role": turn.role, "parts": [{"text": turn.text}]} for turn in turns]
        if system_prompt:
            history.insert(
                0,
                {"role": self.SYSTEM_PROMPT_ROLE, "parts": [{"text": "\n".join(system_prompt)}]},
            )
        return history

    def to_tool_declarations(
        self, tools: Sequence[Tool] | None
    ) -> list[dict[str, Any]] | None:
        """Convert tools to function declarations.

        Args:
            tools: Tools offered to the model, or None.

        Returns:
            One ``{"functionDeclarations": [...]}`` entry per tool, or None when
            no tools are supplied.
        """
        if not tools:
            return None
        return [
            {
                "functionDeclarations": [
                    {
                        "name": tool.name,
                        "description": tool.description,
                        "parameters": tool.input_schema,
                    }
                ]
            }
            for tool in tools
        ]

    def build_request(
        self,
        config: LLMConfig,
        turns: Sequence[Turn],
        system_prompt: Sequence[str] = (),
        tools: Sequence[Tool] | None = None,
    ) -> ProviderRequest:
        """Assemble the full provider request for one round trip."""
        return ProviderRequest(
            model=config.model,
            history=self.to_history(turns, system_prompt),
            generation_config=GenerationConfig(
                temperature=config.temperature,
                top_p=config.top_p,
                top_k=config.top_k,
                max_output_tokens=config.max_output_tokens,
            ),
            tools=self.to_tool_declarations(tools),
        )
