"""Public export surface for ``chat_provider_api``."""

from chat_provider_api.models import (
    Channel,
    ChannelLabel,
    ChannelMessages,
    ChannelType,
    CurrentUser,
    Message,
    MessageReply,
    Messages,
    Reaction,
    Team,
    User,
    UserPreferences,
    Users,
)
from chat_provider_api.provider import (
    PROVIDER_VARIANTS,
    Provider,
    ProviderFactory,
    ProviderName,
    ProviderVariant,
    UnknownProviderError,
    get_provider,
    get_variant,
    register_provider,
)

__all__ = [
    "PROVIDER_VARIANTS",
    "Channel",
    "ChannelLabel",
    "ChannelMessages",
    "ChannelType",
    "CurrentUser",
    "Message",
    "MessageReply",
    "Messages",
    "Provider",
    "ProviderFactory",
    "ProviderName",
    "ProviderVariant",
    "Reaction",
    "Team",
    "UnknownProviderError",
    "User",
    "UserPreferences",
    "Users",
    "get_provider",
    "get_variant",
    "register_provider",
]
