"""Abstract capability interface for chat providers.

Each supported backend is one ``ProviderVariant``. Concrete adapters subclass
``Provider`` and bind themselves with ``register_provider`` on import, so the
sync store never branches on provider names itself.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chat_provider_api.models import (
        Channel,
        ChannelMessages,
        CurrentUser,
        Message,
        User,
        UserPreferences,
        Users,
    )

__all__ = [
    "PROVIDER_VARIANTS",
    "Provider",
    "ProviderFactory",
    "ProviderName",
    "ProviderVariant",
    "UnknownProviderError",
    "get_provider",
    "get_variant",
    "register_provider",
]


class UnknownProviderError(ValueError):
    """Raised for provider names outside the supported set or without an adapter."""


class ProviderName(str, Enum):
    """Closed set of supported chat backends."""

    SLACK = "slack"
    DISCORD = "discord"


@dataclass(frozen=True)
class ProviderVariant:
    """Static, per-provider conventions the store relies on.

    Attributes:
        name: Provider identifier.
        im_name_prefix: Prefix the provider puts before a user's name when
            naming the direct-message channel with that user.

    """

    name: ProviderName
    im_name_prefix: str

    def im_channel_name(self, user_name: str) -> str:
        """Return the direct-message channel name used for ``user_name``."""
        return f"{self.im_name_prefix}{user_name}"


PROVIDER_VARIANTS: dict[ProviderName, ProviderVariant] = {
    ProviderName.SLACK: ProviderVariant(name=ProviderName.SLACK, im_name_prefix="@"),
    ProviderName.DISCORD: ProviderVariant(name=ProviderName.DISCORD, im_name_prefix=""),
}


class Provider(ABC):
    """The contract every chat backend adapter fulfils."""

    @abstractmethod
    async def connect(self) -> CurrentUser:
        """Open the live connection and return the authenticated identity."""
        raise NotImplementedError

    @abstractmethod
    def is_connected(self) -> bool:
        """Return whether the live connection is currently up."""
        raise NotImplementedError

    @abstractmethod
    async def destroy(self) -> None:
        """Tear down the live connection."""
        raise NotImplementedError

    @abstractmethod
    async def get_token(self) -> str | None:
        """Return the stored auth token, if any."""
        raise NotImplementedError

    @abstractmethod
    async def get_auth_test(self) -> str:
        """Run the provider's auth check and return a human-readable result."""
        raise NotImplementedError

    @abstractmethod
    async def fetch_users(self) -> Users:
        """Return all users of the current workspace keyed by id."""
        raise NotImplementedError

    @abstractmethod
    async def fetch_user_info(self, user_id: str) -> User:
        """Return a single user, including bots that list calls omit."""
        raise NotImplementedError

    @abstractmethod
    async def fetch_channels(self, users: Users) -> list[Channel]:
        """Return the channel list.

        Args:
            users: Known users, needed to name direct-message channels.

        Returns:
            Channels in provider order.

        """
        raise NotImplementedError

    @abstractmethod
    async def fetch_channel_info(self, channel: Channel) -> Channel:
        """Return ``channel`` enriched with read marker and unread count."""
        raise NotImplementedError

    @abstractmethod
    async def load_channel_history(self, channel_id: str) -> ChannelMessages:
        """Return recent messages for a channel keyed by timestamp."""
        raise NotImplementedError

    @abstractmethod
    async def fetch_thread_replies(self, channel_id: str, parent_timestamp: str) -> Message:
        """Return the parent message with its replies filled in."""
        raise NotImplementedError

    @abstractmethod
    async def mark_channel(self, channel: Channel, timestamp: str) -> Channel:
        """Move the channel's read marker and return the updated channel."""
        raise NotImplementedError

    @abstractmethod
    async def create_im_channel(self, user: User) -> Channel:
        """Open a direct-message channel with ``user``."""
        raise NotImplementedError

    @abstractmethod
    async def get_user_prefs(self) -> UserPreferences:
        """Return preferences for the authenticated user."""
        raise NotImplementedError


ProviderFactory = Callable[..., Provider]

_PROVIDER_FACTORIES: dict[ProviderName, ProviderFactory] = {}


def get_variant(name: str | ProviderName) -> ProviderVariant:
    """Return the variant for ``name``.

    Raises:
        UnknownProviderError: If ``name`` is not a supported provider.

    """
    try:
        return PROVIDER_VARIANTS[ProviderName(name)]
    except ValueError as exc:
        msg = f"Unsupported provider: {name}"
        raise UnknownProviderError(msg) from exc


def register_provider(name: str | ProviderName, factory: ProviderFactory) -> None:
    """Bind the adapter factory for a supported provider; last registration wins."""
    variant = get_variant(name)
    _PROVIDER_FACTORIES[variant.name] = factory


def get_provider(name: str | ProviderName, **kwargs: object) -> Provider:
    """Construct the adapter registered for ``name``.

    Args:
        name: Provider identifier.
        **kwargs: Passed through to the factory (e.g. ``store`` for adapters
            that push presence updates back).

    Returns:
        A new Provider instance.

    Raises:
        UnknownProviderError: If the provider is unsupported or has no adapter.

    """
    variant = get_variant(name)
    factory = _PROVIDER_FACTORIES.get(variant.name)
    if factory is None:
        msg = f"No adapter registered for provider: {variant.name.value}"
        raise UnknownProviderError(msg)
    return factory(**kwargs)
