"""Persistence of conversation message logs."""

from gemrelay.persistence.log import (
    deserialize_messages,
    load_messages_from_log,
    rehydrate,
    save_messages_to_log,
)

__all__ = [
    "deserialize_messages",
    "load_messages_from_log",
    "rehydrate",
    "save_messages_to_log",
]
