"""Tool interface.

Any object exposing a name, a description, a JSON parameter schema and an
``invoke(args)`` method can be offered to the model. ``invoke`` may be a plain
function or a coroutine function.
"""

from abc import ABC, abstractmethod
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Tool(Protocol):
    """Structural type for tools callable by the model."""

    name: str
    description: str
    input_schema: dict[str, Any]

    def invoke(self, args: dict[str, Any]) -> Any:
        """Run the tool with model-supplied arguments."""
        ...


class BaseTool(ABC):
    """Convenience base class for async tools.

    Subclasses set ``name``, ``description`` and ``input_schema`` as class
    attributes and implement ``invoke``.
    """

    name: str
    description: str
    input_schema: dict[str, Any]

    @abstractmethod
    async def invoke(self, args: dict[str, Any]) -> Any:
        """Run the tool.

        Args:
            args: Structured arguments from the model's function call.

        Returns:
            Result serializable to text (str, dict, list or pydantic model).

        Raises:
            Exception: Any failure; the dispatcher wraps it in ToolExecutionError.
        """
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"
