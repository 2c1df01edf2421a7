"""Cassette storage.

Each recorded interaction is one JSON file named after its request
fingerprint, so cassettes diff cleanly and can be pruned by hand.
"""

import hashlib
import json
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from gemrelay.exceptions import CassetteNotFoundError, RecordingError
from gemrelay.providers.base import ProviderRequest, ProviderResponse


def fingerprint(request: ProviderRequest) -> str:
    """Deterministic key for a request.

    Covers the model, full history, generation config and tool declarations.

    Returns:
        First 16 characters of the SHA256 hex digest of the canonical JSON.
    """
    canonical = json.dumps(
        request.model_dump(mode="json", by_alias=True),
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode()).hexdigest()[:16]


class CassetteEntry(BaseModel):
    """One recorded request/response pair."""

    fingerprint: str
    recorded_at: datetime = Field(default_factory=datetime.now)
    request: dict[str, Any]
    response: dict[str, Any]

    def to_response(self) -> ProviderResponse:
        return ProviderResponse.model_validate(self.response)


class CassetteStore:
    """Reads and writes cassette entries in a directory."""

    def __init__(self, cassette_dir: Path) -> None:
        """Initialize the store.

        Args:
            cassette_dir: Directory holding ``<fingerprint>.json`` files.
        """
        self._cassette_dir = cassette_dir

    @property
    def cassette_dir(self) -> Path:
        return self._cassette_dir

    def _path(self, key: str) -> Path:
        return self._cassette_dir / f"{key}.json"

    def contains(self, key: str) -> bool:
        return self._path(key).exists()

    def load(self, key: str) -> CassetteEntry:
        """Load the entry recorded under ``key``.

        Raises:
            CassetteNotFoundError: If nothing was recorded for ``key``.
            RecordingError: If the cassette file is unreadable or invalid.
        """
        path = self._path(key)
        if not path.exists():
            msg = f"No recorded interaction for fingerprint {key} in {self._cassette_dir}"
            raise CassetteNotFoundError(msg)
        try:
            return CassetteEntry.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            msg = f"Failed to read cassette {path}: {e}"
            raise RecordingError(msg) from e

    def save(
        self, key: str, request: ProviderRequest, response: ProviderResponse
    ) -> Path:
        """Persist a request/response pair, replacing any earlier recording.

        Returns:
            Path of the written cassette file.
        """
        entry = CassetteEntry(
            fingerprint=key,
            request=request.model_dump(mode="json", by_alias=True),
            response=response.model_dump(mode="json", by_alias=True),
        )
        path = self._path(key)
        try:
            self._cassette_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(entry.model_dump_json(indent=2), encoding="utf-8")
        except OSError as e:
            msg = f"Failed to write cassette {path}: {e}"
            raise RecordingError(msg) from e
        return path

    def list_entries(self) -> list[CassetteEntry]:
        """All readable entries, oldest first. Unreadable files are skipped."""
        entries: list[CassetteEntry] = []
        if not self._cassette_dir.exists():
            return entries
        for cassette_file in self._cassette_dir.glob("*.json"):
            try:
                entries.append(
                    CassetteEntry.model_validate_json(cassette_file.read_text(encoding="utf-8"))
                )
            except (OSError, ValidationError):
                continue
        entries.sort(key=lambda e: e.recorded_at)
        return entries

    def clear(self) -> int:
        """Delete every cassette file. Returns the number removed."""
        removed = 0
        if self._cassette_dir.exists():
            for cassette_file in self._cassette_dir.glob("*.json"):
                cassette_file.unlink()
                removed += 1
        return removed
