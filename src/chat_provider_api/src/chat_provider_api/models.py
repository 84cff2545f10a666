"""Pydantic schemas shared by chat providers and the sync store."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

__all__ = [
    "Channel",
    "ChannelLabel",
    "ChannelMessages",
    "ChannelType",
    "CurrentUser",
    "Message",
    "MessageReply",
    "Messages",
    "Reaction",
    "Team",
    "User",
    "UserPreferences",
    "Users",
]


class ChannelType(str, Enum):
    """Kind of conversation surface."""

    CHANNEL = "channel"
    GROUP = "group"
    IM = "im"


class Channel(BaseModel):
    """Conversation surface, unique by ``id`` within a workspace."""

    id: str
    name: str
    type: ChannelType = ChannelType.CHANNEL
    read_timestamp: str | None = None
    unread_count: int | None = None


class User(BaseModel):
    """Chat user. ``is_online`` is None for providers without presence."""

    id: str
    name: str
    full_name: str | None = None
    image_url: str | None = None
    is_bot: bool = False
    is_online: bool | None = None


class Reaction(BaseModel):
    """Named reaction attached to a message."""

    name: str
    count: int = Field(default=0, ge=0)
    user_ids: list[str] = Field(default_factory=list)


class MessageReply(BaseModel):
    """Thread reply keyed by its own timestamp."""

    user_id: str
    timestamp: str
    text: str = ""


class Message(BaseModel):
    """Chat message keyed by ``timestamp`` within a channel."""

    user_id: str
    timestamp: str
    text: str = ""
    is_edited: bool = False
    reactions: list[Reaction] = Field(default_factory=list)
    replies: dict[str, MessageReply] = Field(default_factory=dict)


class Team(BaseModel):
    """Workspace (slack) or guild (discord)."""

    id: str
    name: str


class CurrentUser(BaseModel):
    """Authenticated identity and the provider it belongs to."""

    id: str
    name: str
    token: str | None = None
    teams: list[Team] = Field(default_factory=list)
    current_team_id: str | None = None
    provider: str | None = None


class UserPreferences(BaseModel):
    """Per-user preferences reported by the provider."""

    muted_channels: set[str] = Field(default_factory=set)


class ChannelLabel(BaseModel):
    """Display row for a channel in tree views."""

    channel: Channel
    unread: int
    label: str
    is_online: bool = False


Users = dict[str, User]
# A None value marks a message deleted upstream.
ChannelMessages = dict[str, Message | None]
Messages = dict[str, dict[str, Message]]
