"""Memory directory tools.

Small file-backed tools that let the model read and write notes that persist
across conversations.
"""

from pathlib import Path
from typing import Any

from gemrelay.tools.base import BaseTool

INDEX_FILE = "index.md"


def _resolve(memory_dir: Path, file_path: str) -> Path:
    """Resolve a path relative to the memory directory, refusing escapes."""
    root = memory_dir.resolve()
    target = (root / file_path).resolve()
    if not target.is_relative_to(root):
        msg = f"Path escapes the memory directory: {file_path}"
        raise ValueError(msg)
    return target


class MemoryReadTool(BaseTool):
    """Read memory files or list what is stored."""

    name = "MemoryRead"
    description = (
        "Read contents from the memory directory. This tool allows you to:\n"
        "1. List all memory files\n"
        "2. Read specific memory files\n"
        "3. Access the memory index"
    )
    input_schema: dict[str, Any] = {
        "type": "object",
        "properties": {
            "file_path": {
                "type": "string",
                "description": "Optional path of a memory file, relative to the memory directory",
            },
        },
    }

    def __init__(self, memory_dir: Path) -> None:
        self._memory_dir = memory_dir

    async def invoke(self, args: dict[str, Any]) -> str:
        file_path = args.get("file_path")
        if file_path:
            target = _resolve(self._memory_dir, file_path)
            if not target.is_file():
                msg = f"Memory file does not exist: {file_path}"
                raise FileNotFoundError(msg)
            return target.read_text(encoding="utf-8")

        if not self._memory_dir.exists():
            return "No memory files."

        index_path = self._memory_dir / INDEX_FILE
        index = index_path.read_text(encoding="utf-8") if index_path.is_file() else ""
        files = sorted(
            str(p.relative_to(self._memory_dir))
            for p in self._memory_dir.rglob("*")
            if p.is_file()
        )
        listing = "\n".join(f"- {name}" for name in files) or "No memory files."
        if index:
            return f"Memory index:\n{index}\n\nFiles in the memory directory:\n{listing}"
        return f"Files in the memory directory:\n{listing}"


class MemoryWriteTool(BaseTool):
    """Create or overwrite a memory file."""

    name = "MemoryWrite"
    description = (
        "Write content to memory files in the designated memory directory. "
        "This tool allows you to:\n"
        "1. Create new memory files\n"
        "2. Update existing memory files\n"
        "3. Store persistent information across conversations"
    )
    input_schema: dict[str, Any] = {
        "type": "object",
        "properties": {
            "file_path": {
                "type": "string",
                "description": "Path of the memory file, relative to the memory directory",
            },
            "content": {
                "type": "string",
                "description": "Content to write to the file",
            },
        },
        "required": ["file_path", "content"],
    }

    def __init__(self, memory_dir: Path) -> None:
        self._memory_dir = memory_dir

    async def invoke(self, args: dict[str, Any]) -> str:
        target = _resolve(self._memory_dir, args["file_path"])
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(args["content"], encoding="utf-8")
        return "Saved"
