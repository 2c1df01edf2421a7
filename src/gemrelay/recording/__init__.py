"""Deterministic record/replay of provider traffic."""

from gemrelay.recording.cassette import CassetteEntry, CassetteStore, fingerprint
from gemrelay.recording.recorder import ConversationRecorder

__all__ = [
    "CassetteEntry",
    "CassetteStore",
    "ConversationRecorder",
    "fingerprint",
]
