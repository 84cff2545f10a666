"""Synchronization coordinator for chat provider data.

``Store`` is the single owner of cached channels, users and messages. It
sequences provider calls, runs their results through ``chat_store.reconcile``,
persists capped snapshots and pushes derived views to the UI. Every merge runs
synchronously between awaits, so concurrent fetches never interleave at the
field level; the last one to finish wins.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from chat_provider_api import (
    Channel,
    CurrentUser,
    ProviderName,
    User,
    UserPreferences,
    get_provider,
    get_variant,
)
from chat_store import reconcile, views
from chat_store.config import STORAGE_SIZE_LIMIT
from chat_store.freshness import is_stale, utcnow
from chat_store.migrations import run_migrations
from chat_store.ui import ViewModel
from state_store_api import StateKey

if TYPE_CHECKING:
    from collections.abc import Coroutine, Iterable
    from datetime import datetime

    from chat_provider_api import (
        ChannelLabel,
        ChannelMessages,
        Message,
        MessageReply,
        Messages,
        Provider,
        ProviderVariant,
        Team,
        Users,
    )
    from chat_store.ui import UiSink
    from state_store_api import StateStore

logger = logging.getLogger("chat_store.store")

ALL_PROVIDERS = [name.value for name in ProviderName]


class ProviderNotSelectedError(RuntimeError):
    """Raised when an operation needs a bound provider and none is selected."""


class ProviderState(str, Enum):
    """Lifecycle of the provider binding."""

    UNBOUND = "unbound"
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"


class Store:
    """Authoritative in-memory model of one chat workspace.

    Attributes:
        state: Durable key-value state.
        ui: Consumer of derived views.
        provider: Bound provider adapter, if any.
        variant: Conventions of the bound provider.
        channels: Cached channels in provider order.
        users: Cached users keyed by id.
        messages: Cached messages keyed by channel id, then timestamp.
        current_user: Authenticated identity, kept across workspace switches.
        current_user_prefs: Preferences of the authenticated user.

    """

    def __init__(self, state: StateStore, ui: UiSink) -> None:
        """Load persisted state; use ``Store.open`` to also run migrations."""
        self.state = state
        self.ui = ui
        self.provider: Provider | None = None
        self.variant: ProviderVariant | None = None
        self.token: str | None = None
        self.installation_id: str | None = state.get(StateKey.INSTALLATION_ID.value)
        self.last_channel_id: str | None = state.get(StateKey.LAST_CHANNEL_ID.value)
        self.channels: list[Channel] = _load_channels(state.get(StateKey.CHANNELS.value))
        self.channels_fetched_at: datetime | None = None
        self.users: Users = _load_users(state.get(StateKey.USERS.value))
        self.users_fetched_at: datetime | None = None
        self.messages: Messages = {}
        self.current_user: CurrentUser | None = _load_current_user(state.get(StateKey.USER_INFO.value))
        self.current_user_prefs = UserPreferences()
        self._background: set[asyncio.Task[Any]] = set()

    @classmethod
    async def open(cls, state: StateStore, ui: UiSink, version: str) -> Store:
        """Run pending migrations for ``version`` and return a loaded store."""
        await run_migrations(state, version)
        return cls(state, ui)

    # -----------------------------------------------------------------------
    # Provider binding
    # -----------------------------------------------------------------------

    @property
    def binding_state(self) -> ProviderState:
        """Return where the provider binding is in its lifecycle."""
        if self.provider is None:
            return ProviderState.UNBOUND
        if self.is_authenticated() and self.provider.is_connected():
            return ProviderState.AUTHENTICATED
        return ProviderState.UNAUTHENTICATED

    def get_selected_provider(self) -> str | None:
        """Return the provider recorded on the current user."""
        return self.current_user.provider if self.current_user else None

    async def select_provider(self, name: str | None = None) -> Provider | None:
        """Bind the adapter for ``name`` (or the stored provider).

        Switching away from a different provider clears the old workspace
        first. With no provider at all the UI is sent to onboarding.

        Raises:
            UnknownProviderError: If the provider is unsupported or unregistered.

        """
        selected = name or self.get_selected_provider()
        if not selected:
            self.ui.provider_selected(None, ALL_PROVIDERS)
            return None

        variant = get_variant(selected)
        if self.variant is not None and self.variant.name != variant.name:
            logger.info("Switching provider from %s to %s", self.variant.name.value, variant.name.value)
            await self.clear_old_workspace()
        elif self.provider is not None:
            await self.provider.destroy()

        self.provider = get_provider(variant.name, store=self)
        self.variant = variant
        self.token = await self.provider.get_token()
        self.ui.provider_selected(variant.name.value, ALL_PROVIDERS)
        return self.provider

    async def authenticate(self) -> CurrentUser:
        """Return the cached identity when connected, else connect and record it."""
        provider = self._require_provider()
        if provider.is_connected() and self.current_user is not None and self.current_user.id:
            return self.current_user

        current_user = self._record_current_user(await provider.connect())
        logger.info("Authenticated as %s on %s", current_user.name, current_user.provider)
        return current_user

    def is_authenticated(self) -> bool:
        """Return whether an identity is recorded."""
        return self.current_user is not None and bool(self.current_user.id)

    async def clear_all(self) -> None:
        """Sign out: forget the identity and the workspace."""
        self.update_current_user(None)
        await self.clear_old_workspace()

    async def clear_old_workspace(self) -> None:
        """Forget workspace data and drop the live connection.

        The identity and the provider binding survive; ``authenticate``
        reconnects.
        """
        self.update_last_channel_id(None)
        self.update_channels([])
        self.update_users({})
        self.users_fetched_at = None
        self.channels_fetched_at = None
        self.messages = {}
        self.token = None

        if self.provider is not None:
            await self.provider.destroy()

    async def run_auth_test(self) -> str:
        """Return the provider's auth check result."""
        return await self._require_provider().get_auth_test()

    def generate_installation_id(self) -> str:
        """Create and persist a new installation id."""
        self.installation_id = str(uuid.uuid4())
        self._persist(StateKey.INSTALLATION_ID, self.installation_id)
        return self.installation_id

    # -----------------------------------------------------------------------
    # Users
    # -----------------------------------------------------------------------

    async def get_users(self) -> Users:
        """Return cached users, refreshing in the background when stale.

        An empty cache waits for a full fetch instead.
        """
        if self.users:
            if is_stale(self.users_fetched_at):
                self._spawn(self.fetch_users(), "users refresh")
            return self.users
        return await self.fetch_users()

    async def fetch_users(self) -> Users:
        """Fetch all users, keeping known presence for providers without it."""
        users = await self._require_provider().fetch_users()
        self.update_users(reconcile.merge_users_with_presence(self.users, users))
        self.users_fetched_at = utcnow()
        logger.debug("Fetched %d users", len(self.users))
        self.update_tree_views()
        return self.users

    def update_users(self, users: Users) -> None:
        """Replace cached users and persist them when small enough."""
        self.users = users
        if len(users) <= STORAGE_SIZE_LIMIT:
            self._persist(StateKey.USERS, {user_id: user.model_dump(mode="json") for user_id, user in users.items()})
        else:
            logger.debug("Not persisting %d users (limit %d)", len(users), STORAGE_SIZE_LIMIT)

    async def fill_up_users(self, missing_ids: Iterable[str]) -> None:
        """Fetch users referenced by messages but absent from the cache.

        Bots are not part of user lists on every provider, so they are
        fetched one by one. This is not a full refresh: the users fetch
        timestamp and the persisted copy are left alone.
        """
        provider = self._require_provider()
        fetched = await asyncio.gather(*(provider.fetch_user_info(user_id) for user_id in sorted(missing_ids)))
        users = dict(self.users)
        for user in fetched:
            users[user.id] = user
        self.users = users
        self.update_tree_views()
        self.update_webview_ui()

    def update_user_presence(self, user_id: str, *, is_online: bool) -> None:
        """Apply a presence event for a known user."""
        user = self.users.get(user_id)
        if user is None:
            return
        self.users = {**self.users, user_id: user.model_copy(update={"is_online": is_online})}
        self.update_tree_views()

    async def update_user_prefs(self) -> UserPreferences:
        """Refresh preferences (muted channels) and recount unreads."""
        self.current_user_prefs = await self._require_provider().get_user_prefs()
        self.update_unread_count()
        return self.current_user_prefs

    def update_current_user(self, user: CurrentUser | None) -> None:
        """Record the identity, or forget it when ``user`` is None."""
        if user is None:
            self.current_user = None
            self._persist(StateKey.USER_INFO, None)
            return
        self._record_current_user(user)

    def _record_current_user(self, user: CurrentUser) -> CurrentUser:
        """Store ``user``, keeping a known team id the update lacks."""
        update: dict[str, Any] = {}
        if not user.current_team_id and self.current_user is not None:
            update["current_team_id"] = self.current_user.current_team_id
        if not user.provider and self.variant is not None:
            update["provider"] = self.variant.name.value
        current_user = user.model_copy(update=update)
        self.current_user = current_user
        self._persist(StateKey.USER_INFO, current_user.model_dump(mode="json"))
        return current_user

    def update_current_workspace(self, team: Team) -> None:
        """Switch the current team (guild) of the recorded identity."""
        if self.current_user is None:
            return
        self.update_current_user(self.current_user.model_copy(update={"current_team_id": team.id}))

    # -----------------------------------------------------------------------
    # Channels
    # -----------------------------------------------------------------------

    async def get_channels(self) -> list[Channel]:
        """Return cached channels, refreshing in the background when stale.

        Users should be loaded first; direct-message channels are named
        after them.
        """
        if self.channels:
            if is_stale(self.channels_fetched_at):
                self._spawn(self.fetch_channels(), "channels refresh")
            return self.channels
        return await self.fetch_channels()

    async def fetch_channels(self) -> list[Channel]:
        """Fetch the channel list, then each channel's info.

        List calls can omit historical unread counts, so every channel is
        fetched again individually. Those calls run concurrently; one failing
        does not discard the others.
        """
        provider = self._require_provider()
        channels = await provider.fetch_channels(self.users)
        self.update_channels(channels)
        self.channels_fetched_at = utcnow()
        self.update_tree_views()

        await asyncio.gather(*(self._refresh_channel_info(provider, channel) for channel in channels))
        self.update_unread_count()
        return self.channels

    async def _refresh_channel_info(self, provider: Provider, channel: Channel) -> None:
        try:
            info = await provider.fetch_channel_info(channel)
        except Exception:
            logger.exception("Failed to fetch info for channel %s", channel.id)
            return
        self.update_channel(info)

    def update_channels(self, channels: list[Channel]) -> None:
        """Replace cached channels and persist them when small enough."""
        self.channels = channels
        if len(channels) <= STORAGE_SIZE_LIMIT:
            self._persist(StateKey.CHANNELS, [channel.model_dump(mode="json") for channel in channels])
        else:
            logger.debug("Not persisting %d channels (limit %d)", len(channels), STORAGE_SIZE_LIMIT)

    def update_channel(self, channel: Channel) -> None:
        """Upsert one channel and refresh the tree views."""
        self.update_channels(reconcile.merge_channel(self.channels, channel))
        self.update_tree_views()

    def get_channel(self, channel_id: str | None) -> Channel | None:
        """Return the cached channel with ``channel_id``."""
        return next((channel for channel in self.channels if channel.id == channel_id), None)

    def update_last_channel_id(self, channel_id: str | None) -> None:
        """Record the channel the user is looking at."""
        self.last_channel_id = channel_id
        self._persist(StateKey.LAST_CHANNEL_ID, channel_id)

    def get_im_channel(self, user: User) -> Channel | None:
        """Return the cached direct-message channel with ``user``."""
        return views.find_im_channel(user, self.channels, self._im_name_prefix())

    async def create_im_channel(self, user: User) -> Channel:
        """Open a direct-message channel with ``user`` and cache it."""
        channel = await self._require_provider().create_im_channel(user)
        self.update_channel(channel)
        return channel

    async def update_read_marker(self) -> Channel | None:
        """Mark the current channel read up to its newest cached message.

        Returns:
            The channel as returned by the provider, or None if nothing to mark.

        """
        channel_id = self.last_channel_id
        channel = self.get_channel(channel_id)
        last_ts = views.last_timestamp(self.messages.get(channel_id or "", {}))
        if channel is None or last_ts is None:
            return None

        read_ts = channel.read_timestamp
        if read_ts and views.timestamp_value(read_ts) >= views.timestamp_value(last_ts):
            return None

        # Providers mark read exclusive of the given timestamp.
        marked = await self._require_provider().mark_channel(channel, views.increment_timestamp(last_ts))
        self.update_channel(marked)
        self.update_all_ui()
        return marked

    # -----------------------------------------------------------------------
    # Messages
    # -----------------------------------------------------------------------

    async def load_channel_history(self, channel_id: str) -> None:
        """Fetch and merge recent messages; failures are logged, not raised."""
        provider = self._require_provider()
        try:
            messages = await provider.load_channel_history(channel_id)
        except Exception:
            logger.exception("Failed to load history for channel %s", channel_id)
            return
        self.update_messages(channel_id, messages)

    def update_messages(self, channel_id: str, new_messages: ChannelMessages) -> None:
        """Merge messages for a channel; a None value deletes that timestamp."""
        channel_messages = reconcile.merge_messages(self.messages.get(channel_id, {}), new_messages)
        self.messages[channel_id] = channel_messages

        missing = reconcile.missing_user_ids(channel_messages, self.users)
        if missing and self.provider is not None:
            self._spawn(self.fill_up_users(missing), "fill up users")

        self.update_all_ui()

    async def fetch_thread_replies(self, parent_timestamp: str) -> None:
        """Load replies for a message in the current channel."""
        channel_id = self.last_channel_id
        if channel_id is None:
            return
        message = await self._require_provider().fetch_thread_replies(channel_id, parent_timestamp)
        self.update_messages(channel_id, {parent_timestamp: message})

    def update_message_reply(self, parent_timestamp: str, channel_id: str, reply: MessageReply) -> None:
        """Attach a thread reply; replies to uncached parents are dropped."""
        message = self._find_message(channel_id, parent_timestamp)
        if message is None:
            return
        self.update_messages(channel_id, {parent_timestamp: reconcile.merge_reply(message, reply)})

    def add_reaction(self, channel_id: str, msg_timestamp: str, user_id: str, reaction_name: str) -> None:
        """Count a reaction on a cached message."""
        message = self._find_message(channel_id, msg_timestamp)
        if message is None:
            return
        self.update_messages(channel_id, {msg_timestamp: reconcile.add_reaction(message, user_id, reaction_name)})

    def remove_reaction(self, channel_id: str, msg_timestamp: str, user_id: str, reaction_name: str) -> None:
        """Uncount a reaction on a cached message."""
        message = self._find_message(channel_id, msg_timestamp)
        if message is None:
            return
        self.update_messages(
            channel_id, {msg_timestamp: reconcile.remove_reaction(message, user_id, reaction_name)}
        )

    def _find_message(self, channel_id: str, timestamp: str) -> Message | None:
        return self.messages.get(channel_id, {}).get(timestamp)

    # -----------------------------------------------------------------------
    # Derived views
    # -----------------------------------------------------------------------

    def is_channel_muted(self, channel_id: str) -> bool:
        """Return whether the user muted ``channel_id``."""
        return views.is_channel_muted(channel_id, self.current_user_prefs)

    def get_unread_count(self, channel: Channel) -> int:
        """Return the unread count shown for ``channel``."""
        return views.unread_count(
            channel, self.messages.get(channel.id, {}), self._current_user_id(), self.current_user_prefs
        )

    def get_channel_labels(self) -> list[ChannelLabel]:
        """Return tree-view rows for every cached channel."""
        return views.channel_labels(
            self.channels,
            self.messages,
            self.users,
            self._current_user_id(),
            self.current_user_prefs,
            self._im_name_prefix(),
        )

    def update_all_ui(self) -> None:
        """Push unread total, tree views and the active view model."""
        self.update_unread_count()
        self.update_tree_views()
        self.update_webview_ui()

    def update_unread_count(self) -> None:
        """Push the total unread count."""
        total = views.total_unread(self.channels, self.messages, self._current_user_id(), self.current_user_prefs)
        self.ui.update_unread_count(total)

    def update_tree_views(self) -> None:
        """Push channel labels and the user snapshot once signed in."""
        if not self.is_authenticated():
            return
        self.ui.update_channel_labels(self.get_channel_labels())
        im_channels = views.im_channels_by_user(self.users, self.channels, self._im_name_prefix())
        self.ui.update_users(self.current_user, self.users, im_channels)

    def update_webview_ui(self) -> None:
        """Push the view model of the current channel."""
        channel_id = self.last_channel_id
        self.ui.update_view(
            ViewModel(
                channel=self.get_channel(channel_id),
                messages=self.messages.get(channel_id or "", {}),
                users=self.users,
                current_user=self.current_user,
            )
        )

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    async def wait_for_background(self) -> None:
        """Wait for background refreshes and persistence writes to settle."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def dispose(self) -> None:
        """Release UI resources."""
        self.ui.dispose()

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    def _require_provider(self) -> Provider:
        if self.provider is None:
            raise ProviderNotSelectedError("No chat provider selected.")  # noqa: TRY003, EM101
        return self.provider

    def _current_user_id(self) -> str | None:
        return self.current_user.id if self.current_user else None

    def _im_name_prefix(self) -> str | None:
        return self.variant.im_name_prefix if self.variant else None

    def _persist(self, key: StateKey, value: Any) -> None:  # noqa: ANN401
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # Synchronous caller: write inline.
            try:
                asyncio.run(self.state.set(key.value, value))
            except Exception:
                logger.exception("Failed to persist %s", key.value)
            return
        self._spawn(self.state.set(key.value, value), f"persist {key.value}")

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; skipping background task %s", name)
            coro.close()
            return
        task = loop.create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task %s failed", task.get_name(), exc_info=exc)


# ---------------------------------------------------------------------------
# Persisted state loaders
# ---------------------------------------------------------------------------


def _load_channels(raw: object) -> list[Channel]:
    if not isinstance(raw, list):
        return []
    try:
        return [Channel.model_validate(item) for item in raw]
    except ValidationError:
        logger.warning("Discarding unreadable persisted channels")
        return []


def _load_users(raw: object) -> Users:
    if not isinstance(raw, dict):
        return {}
    try:
        return {user_id: User.model_validate(item) for user_id, item in raw.items()}
    except ValidationError:
        logger.warning("Discarding unreadable persisted users")
        return {}


def _load_current_user(raw: object) -> CurrentUser | None:
    if not isinstance(raw, dict):
        return None
    try:
        return CurrentUser.model_validate(raw)
    except ValidationError:
        logger.warning("Discarding unreadable persisted user info")
        return None
