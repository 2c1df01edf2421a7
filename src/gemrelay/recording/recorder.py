"""Record/replay wrapper around provider round trips."""

import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

from gemrelay.models.config import RecorderConfig, RecordMode
from gemrelay.providers.base import ProviderRequest, ProviderResponse
from gemrelay.recording.cassette import CassetteStore, fingerprint

logger = logging.getLogger(__name__)


class ConversationRecorder:
    """Intercepts provider calls according to a RecordMode.

    - ``passthrough``: call through.
    - ``record``: call through, then store the response under the request's
      fingerprint.
    - ``replay``: return the stored response without calling through; a
      missing recording raises CassetteNotFoundError.
    """

    def __init__(
        self,
        mode: RecordMode = RecordMode.PASSTHROUGH,
        store: CassetteStore | None = None,
    ) -> None:
        if mode != RecordMode.PASSTHROUGH and store is None:
            msg = f"A cassette store is required in {mode.value} mode"
            raise ValueError(msg)
        self._mode = mode
        self._store = store

    @classmethod
    def from_config(cls, config: RecorderConfig) -> "ConversationRecorder":
        """Build a recorder from the ``recording`` config section."""
        return cls(mode=config.mode, store=CassetteStore(Path(config.cassette_dir)))

    @property
    def mode(self) -> RecordMode:
        return self._mode

    @property
    def store(self) -> CassetteStore | None:
        return self._store

    async def with_recording(
        self,
        request: ProviderRequest,
        operation: Callable[[], Awaitable[ProviderResponse]],
    ) -> ProviderResponse:
        """Run ``operation`` for ``request`` under the configured mode.

        Args:
            request: The request the operation will send; its fingerprint is the key.
            operation: Performs the live call (including retries).

        Returns:
            Live or replayed ProviderResponse.

        Raises:
            CassetteNotFoundError: Replay mode with no recording for the request.
            RecordingError: Cassette I/O failure.
        """
        if self._mode == RecordMode.PASSTHROUGH or self._store is None:
            return await operation()

        key = fingerprint(request)
        if self._mode == RecordMode.REPLAY:
            logger.debug("Replaying interaction %s", key)
            return self._store.load(key).to_response()

        response = await operation()
        path = self._store.save(key, request, response)
        logger.debug("Recorded interaction %s to %s", key, path)
        return response
