"""Derived views: unread counts, channel labels and direct-message lookup."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from chat_provider_api import ChannelLabel, ChannelType

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from chat_provider_api import Channel, Message, User, UserPreferences, Users


def timestamp_value(timestamp: str) -> Decimal:
    """Return the numeric value of a provider timestamp string."""
    return Decimal(timestamp)


def last_timestamp(channel_messages: Mapping[str, Message]) -> str | None:
    """Return the numerically greatest timestamp, or None when empty."""
    if not channel_messages:
        return None
    return max(channel_messages, key=timestamp_value)


def increment_timestamp(timestamp: str) -> str:
    """Return ``timestamp + 1`` keeping the provider's decimal formatting."""
    return str(timestamp_value(timestamp) + 1)


def is_channel_muted(channel_id: str, prefs: UserPreferences | None) -> bool:
    """Return whether the user muted ``channel_id``."""
    return prefs is not None and channel_id in prefs.muted_channels


def unread_count(
    channel: Channel,
    channel_messages: Mapping[str, Message],
    current_user_id: str | None,
    prefs: UserPreferences | None,
) -> int:
    """Return the number of unread messages shown for ``channel``.

    Muted channels always report 0. A provider-reported count takes
    precedence; otherwise messages from other users newer than the read
    marker are counted. Without a read marker nothing counts as unread.
    """
    if is_channel_muted(channel.id, prefs):
        return 0
    if channel.unread_count:
        return channel.unread_count
    if not channel.read_timestamp:
        return 0
    read_value = timestamp_value(channel.read_timestamp)
    return sum(
        1
        for ts, message in channel_messages.items()
        if message.user_id != current_user_id and timestamp_value(ts) > read_value
    )


def total_unread(
    channels: Iterable[Channel],
    messages: Mapping[str, Mapping[str, Message]],
    current_user_id: str | None,
    prefs: UserPreferences | None,
) -> int:
    """Return the sum of unread counts across ``channels``."""
    return sum(unread_count(channel, messages.get(channel.id, {}), current_user_id, prefs) for channel in channels)


def _im_names(user_name: str, im_name_prefix: str | None) -> set[str]:
    # Without a bound provider accept both naming conventions.
    if im_name_prefix is None:
        return {user_name, f"@{user_name}"}
    return {f"{im_name_prefix}{user_name}"}


def find_im_channel(user: User, channels: Iterable[Channel], im_name_prefix: str | None) -> Channel | None:
    """Return the direct-message channel with ``user``, if cached."""
    names = _im_names(user.name, im_name_prefix)
    return next((channel for channel in channels if channel.name in names), None)


def im_channels_by_user(
    users: Users, channels: list[Channel], im_name_prefix: str | None
) -> dict[str, Channel]:
    """Map user ids to their cached direct-message channel."""
    im_channels: dict[str, Channel] = {}
    for user_id, user in users.items():
        channel = find_im_channel(user, channels, im_name_prefix)
        if channel is not None:
            im_channels[user_id] = channel
    return im_channels


def _im_user(channel: Channel, users: Users, im_name_prefix: str | None) -> User | None:
    return next((user for user in users.values() if channel.name in _im_names(user.name, im_name_prefix)), None)


def channel_label(channel: Channel, unread: int, *, is_muted: bool) -> str:
    """Return the display label for a channel."""
    if unread > 0:
        return f"{channel.name} ({unread} new)"
    if is_muted:
        return f"{channel.name} (muted)"
    return channel.name


def channel_labels(  # noqa: PLR0913
    channels: Iterable[Channel],
    messages: Mapping[str, Mapping[str, Message]],
    users: Users,
    current_user_id: str | None,
    prefs: UserPreferences | None,
    im_name_prefix: str | None,
) -> list[ChannelLabel]:
    """Build tree-view rows for every cached channel."""
    labels: list[ChannelLabel] = []
    for channel in channels:
        unread = unread_count(channel, messages.get(channel.id, {}), current_user_id, prefs)
        is_online = False
        if channel.type == ChannelType.IM:
            user = _im_user(channel, users, im_name_prefix)
            is_online = bool(user and user.is_online)
        labels.append(
            ChannelLabel(
                channel=channel,
                unread=unread,
                label=channel_label(channel, unread, is_muted=is_channel_muted(channel.id, prefs)),
                is_online=is_online,
            )
        )
    return labels
