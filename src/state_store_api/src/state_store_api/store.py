"""Abstract interface for durable key-value state."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

__all__ = ["StateKey", "StateStore", "get_state_store"]


class StateKey(str, Enum):
    """Keys the sync store reads and writes."""

    EXTENSION_VERSION = "extensionVersion"
    INSTALLATION_ID = "installationId"
    LAST_CHANNEL_ID = "lastChannelId"
    CHANNELS = "channels"
    USER_INFO = "userInfo"
    USERS = "users"


class StateStore(ABC):
    """The contract for persisted state.

    Values are JSON-serializable. Storage is quota-limited in practice, so
    callers cap what they write.
    """

    @abstractmethod
    def get(self, key: str) -> Any:  # noqa: ANN401
        """Return the stored value for ``key``, or None when absent."""
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:  # noqa: ANN401
        """Store ``value`` under ``key``; a None value removes the key."""
        raise NotImplementedError


def get_state_store() -> StateStore:
    """Return the default state store implementation.

    Returns:
        StateStore implementation.

    """
    raise NotImplementedError
