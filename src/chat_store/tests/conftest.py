"""Shared fakes for chat_store tests."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest
import pytest_asyncio

import chat_provider_api
from chat_provider_api import (
    Channel,
    ChannelMessages,
    CurrentUser,
    Message,
    Provider,
    User,
    UserPreferences,
    Users,
)
from chat_store import Store, UiSink
from state_store_api import StateStore

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from chat_provider_api import ChannelLabel
    from chat_store import ViewModel


class MemoryStateStore(StateStore):
    """Dict-backed state store that records every write."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self.values: dict[str, Any] = dict(initial or {})
        self.writes: list[tuple[str, Any]] = []

    def get(self, key: str) -> Any:  # noqa: ANN401
        return self.values.get(key)

    async def set(self, key: str, value: Any) -> None:  # noqa: ANN401
        self.writes.append((key, value))
        if value is None:
            self.values.pop(key, None)
        else:
            self.values[key] = value

    def keys_written(self) -> list[str]:
        return [key for key, _ in self.writes]


class RecordingUiSink(UiSink):
    """UiSink that keeps every notification for assertions."""

    def __init__(self) -> None:
        self.providers: list[str | None] = []
        self.labels: list[list[ChannelLabel]] = []
        self.user_snapshots: list[tuple[CurrentUser | None, Users, dict[str, Channel]]] = []
        self.unread_totals: list[int] = []
        self.views: list[ViewModel] = []
        self.disposed = False

    def provider_selected(self, provider: str | None, all_providers: Sequence[str]) -> None:
        self.providers.append(provider)

    def update_channel_labels(self, labels: Sequence[ChannelLabel]) -> None:
        self.labels.append(list(labels))

    def update_users(self, current_user: CurrentUser | None, users: Users, im_channels: dict[str, Channel]) -> None:
        self.user_snapshots.append((current_user, dict(users), dict(im_channels)))

    def update_unread_count(self, total: int) -> None:
        self.unread_totals.append(total)

    def update_view(self, view_model: ViewModel) -> None:
        self.views.append(view_model)

    def dispose(self) -> None:
        self.disposed = True


class FakeProvider(Provider):
    """In-memory provider with canned responses and a call log."""

    def __init__(self, store: object | None = None) -> None:
        self.store = store
        self.connected = False
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.current_user = CurrentUser(id="U1", name="me")
        self.users: Users = {}
        self.channels: list[Channel] = []
        self.channel_info: dict[str, Channel] = {}
        self.failing_channel_ids: set[str] = set()
        self.user_info: dict[str, User] = {}
        self.history: dict[str, ChannelMessages] = {}
        self.thread: dict[str, Message] = {}
        self.prefs = UserPreferences()

    async def connect(self) -> CurrentUser:
        self.calls.append(("connect", ()))
        self.connected = True
        return self.current_user

    def is_connected(self) -> bool:
        return self.connected

    async def destroy(self) -> None:
        self.calls.append(("destroy", ()))
        self.connected = False

    async def get_token(self) -> str | None:
        return "token"

    async def get_auth_test(self) -> str:
        return "ok"

    async def fetch_users(self) -> Users:
        self.calls.append(("fetch_users", ()))
        return dict(self.users)

    async def fetch_user_info(self, user_id: str) -> User:
        self.calls.append(("fetch_user_info", (user_id,)))
        return self.user_info[user_id]

    async def fetch_channels(self, users: Users) -> list[Channel]:
        self.calls.append(("fetch_channels", ()))
        return list(self.channels)

    async def fetch_channel_info(self, channel: Channel) -> Channel:
        self.calls.append(("fetch_channel_info", (channel.id,)))
        if channel.id in self.failing_channel_ids:
            raise RuntimeError(f"info failed for {channel.id}")
        return self.channel_info.get(channel.id, channel)

    async def load_channel_history(self, channel_id: str) -> ChannelMessages:
        self.calls.append(("load_channel_history", (channel_id,)))
        return self.history[channel_id]

    async def fetch_thread_replies(self, channel_id: str, parent_timestamp: str) -> Message:
        self.calls.append(("fetch_thread_replies", (channel_id, parent_timestamp)))
        return self.thread[parent_timestamp]

    async def mark_channel(self, channel: Channel, timestamp: str) -> Channel:
        self.calls.append(("mark_channel", (channel.id, timestamp)))
        return Channel(id=channel.id, name=channel.name, type=channel.type, read_timestamp=timestamp)

    async def create_im_channel(self, user: User) -> Channel:
        self.calls.append(("create_im_channel", (user.id,)))
        return Channel(id=f"D{user.id}", name=f"@{user.name}", type="im")

    async def get_user_prefs(self) -> UserPreferences:
        return self.prefs

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


@pytest.fixture
def fake_provider(monkeypatch: pytest.MonkeyPatch) -> Iterator[FakeProvider]:
    """Register one FakeProvider instance for both provider variants."""
    provider = FakeProvider()
    monkeypatch.setattr(chat_provider_api.provider, "_PROVIDER_FACTORIES", {})

    def factory(**kwargs: object) -> FakeProvider:
        provider.store = kwargs.get("store")
        return provider

    chat_provider_api.register_provider("slack", factory)
    chat_provider_api.register_provider("discord", factory)
    yield provider


@pytest.fixture
def state() -> MemoryStateStore:
    """Empty persisted state."""
    return MemoryStateStore()


@pytest.fixture
def ui() -> RecordingUiSink:
    """UI sink recording notifications."""
    return RecordingUiSink()


@pytest.fixture
def store(state: MemoryStateStore, ui: RecordingUiSink) -> Store:
    """Store with empty state and no provider bound."""
    return Store(state, ui)


@pytest_asyncio.fixture
async def bound_store(store: Store, fake_provider: FakeProvider) -> Store:
    """Store bound to the fake slack provider and authenticated as U1."""
    await store.select_provider("slack")
    await store.authenticate()
    return store
