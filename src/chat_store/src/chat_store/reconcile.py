"""Merge incoming provider payloads into the cached model.

Every function here is synchronous and returns new containers; the store
swaps them in between provider calls, so merges never interleave.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from chat_provider_api import Reaction

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from chat_provider_api import Channel, ChannelMessages, Message, MessageReply, User, Users

logger = logging.getLogger("chat_store.reconcile")

# ---------------------------------------------------------------------------
# Channels and users
# ---------------------------------------------------------------------------


def merge_channel(channels: Iterable[Channel], new_channel: Channel) -> list[Channel]:
    """Upsert ``new_channel`` by id.

    Fields explicitly set on ``new_channel`` win over the cached ones; a match
    keeps its position, anything new is appended.
    """
    updated: list[Channel] = []
    found = False
    for channel in channels:
        if channel.id == new_channel.id:
            found = True
            updated.append(channel.model_copy(update=new_channel.model_dump(exclude_unset=True)))
        else:
            updated.append(channel)
    if not found:
        updated.append(new_channel)
    return updated


def merge_users_with_presence(existing: Mapping[str, User], incoming: Users) -> Users:
    """Resolve presence for a fresh user list.

    Providers without presence report ``is_online=None``; those users keep
    their last known state, or offline when never seen.
    """
    merged: Users = {}
    for user_id, user in incoming.items():
        if user.is_online is not None:
            is_online = user.is_online
        else:
            previous = existing.get(user_id)
            is_online = bool(previous and previous.is_online)
        merged[user_id] = user.model_copy(update={"is_online": is_online})
    return merged


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


def merge_messages(existing: Mapping[str, Message], incoming: ChannelMessages) -> dict[str, Message]:
    """Overlay ``incoming`` on ``existing`` and drop deleted timestamps."""
    combined: dict[str, Message | None] = {**existing, **incoming}
    return {ts: message for ts, message in combined.items() if message is not None}


def missing_user_ids(messages: Mapping[str, Message], users: Mapping[str, object]) -> set[str]:
    """Return author ids referenced by ``messages`` that ``users`` lacks."""
    return {message.user_id for message in messages.values()} - set(users)


def merge_reply(message: Message, reply: MessageReply) -> Message:
    """Return ``message`` with ``reply`` upserted by its timestamp."""
    replies = {**message.replies, reply.timestamp: reply.model_copy()}
    return message.model_copy(update={"replies": replies})


# ---------------------------------------------------------------------------
# Reactions
# ---------------------------------------------------------------------------


def add_reaction(message: Message, user_id: str, reaction_name: str) -> Message:
    """Return ``message`` with one more ``reaction_name`` from ``user_id``."""
    reactions: list[Reaction] = []
    found = False
    for reaction in message.reactions:
        if reaction.name == reaction_name:
            found = True
            if user_id in reaction.user_ids:
                # Repeated events are counted again; see DESIGN.md.
                logger.warning(
                    "User %s already reacted %s on %s; counting again", user_id, reaction_name, message.timestamp
                )
            reactions.append(
                reaction.model_copy(
                    update={"count": reaction.count + 1, "user_ids": [*reaction.user_ids, user_id]}
                )
            )
        else:
            reactions.append(reaction.model_copy())
    if not found:
        reactions.append(Reaction(name=reaction_name, count=1, user_ids=[user_id]))
    return message.model_copy(update={"reactions": reactions})


def remove_reaction(message: Message, user_id: str, reaction_name: str) -> Message:
    """Return ``message`` with one ``reaction_name`` from ``user_id`` removed.

    Reactions whose count drops to zero disappear.
    """
    reactions: list[Reaction] = []
    for reaction in message.reactions:
        if reaction.name == reaction_name:
            count = reaction.count - 1
            if count <= 0:
                continue
            user_ids = [uid for uid in reaction.user_ids if uid != user_id]
            reactions.append(reaction.model_copy(update={"count": count, "user_ids": user_ids}))
        else:
            reactions.append(reaction.model_copy())
    return message.model_copy(update={"reactions": reactions})

