"""Integration tests for the sync store over SQLite persistence."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlite_state_impl import SqliteStateStore

import chat_provider_api
from chat_provider_api import (
    Channel,
    ChannelMessages,
    ChannelType,
    CurrentUser,
    Message,
    Provider,
    Team,
    User,
    UserPreferences,
    Users,
)
from chat_store import NullUiSink, ProviderState, Store

if TYPE_CHECKING:
    from pathlib import Path

pytestmark = pytest.mark.integration


class GuildProvider(Provider):
    """Discord-like adapter with presence and per-channel unread counts."""

    def __init__(self, store: object | None = None) -> None:
        self.store = store
        self.connected = False
        self.marked: list[tuple[str, str]] = []

    async def connect(self) -> CurrentUser:
        self.connected = True
        return CurrentUser(id="U1", name="me", teams=[Team(id="G1", name="guild")], current_team_id="G1")

    def is_connected(self) -> bool:
        return self.connected

    async def destroy(self) -> None:
        self.connected = False

    async def get_token(self) -> str | None:
        return "discord-token"

    async def get_auth_test(self) -> str:
        return "authenticated"

    async def fetch_users(self) -> Users:
        return {
            "U1": User(id="U1", name="me", is_online=True),
            "U2": User(id="U2", name="ana", is_online=True),
        }

    async def fetch_user_info(self, user_id: str) -> User:
        return User(id=user_id, name=f"bot-{user_id}", is_bot=True)

    async def fetch_channels(self, users: Users) -> list[Channel]:
        return [
            Channel(id="C1", name="general", type=ChannelType.CHANNEL),
            Channel(id="D2", name="ana", type=ChannelType.IM),
        ]

    async def fetch_channel_info(self, channel: Channel) -> Channel:
        return channel.model_copy(update={"read_timestamp": "10"})

    async def load_channel_history(self, channel_id: str) -> ChannelMessages:
        return {
            "11": Message(user_id="U2", timestamp="11", text="hi"),
            "12": Message(user_id="B7", timestamp="12", text="beep"),
        }

    async def fetch_thread_replies(self, channel_id: str, parent_timestamp: str) -> Message:
        raise NotImplementedError

    async def mark_channel(self, channel: Channel, timestamp: str) -> Channel:
        self.marked.append((channel.id, timestamp))
        return Channel(id=channel.id, name=channel.name, type=channel.type, read_timestamp=timestamp)

    async def create_im_channel(self, user: User) -> Channel:
        return Channel(id=f"D{user.id}", name=user.name, type=ChannelType.IM)

    async def get_user_prefs(self) -> UserPreferences:
        return UserPreferences()


@pytest.fixture
def guild_provider(monkeypatch: pytest.MonkeyPatch) -> GuildProvider:
    """Register a single GuildProvider as the discord adapter."""
    provider = GuildProvider()
    monkeypatch.setattr(chat_provider_api.provider, "_PROVIDER_FACTORIES", {})
    chat_provider_api.register_provider("discord", lambda **_: provider)
    return provider


@pytest.mark.asyncio
async def test_full_sync_and_restart(tmp_path: Path, guild_provider: GuildProvider) -> None:
    """A sync session persists what the next session loads."""
    db_path = tmp_path / "state.db"
    store = await Store.open(SqliteStateStore(db_path), NullUiSink(), "0.7.0")

    await store.select_provider("discord")
    await store.authenticate()
    assert store.binding_state is ProviderState.AUTHENTICATED

    await store.get_users()
    await store.get_channels()
    assert [channel.read_timestamp for channel in store.channels] == ["10", "10"]
    assert store.get_channel_labels()[1].is_online is True

    store.update_last_channel_id("C1")
    await store.load_channel_history("C1")
    await store.wait_for_background()
    assert "B7" in store.users
    assert store.get_unread_count(store.channels[0]) == 2

    store.add_reaction("C1", "11", "U1", "wave")
    await store.update_read_marker()
    assert guild_provider.marked == [("C1", "13")]
    assert store.get_unread_count(store.channels[0]) == 0
    await store.wait_for_background()

    restarted = await Store.open(SqliteStateStore(db_path), NullUiSink(), "0.7.0")
    assert restarted.get_selected_provider() == "discord"
    assert restarted.current_user is not None
    assert restarted.current_user.current_team_id == "G1"
    assert restarted.last_channel_id == "C1"
    assert [channel.id for channel in restarted.channels] == ["C1", "D2"]
    assert restarted.channels[0].read_timestamp == "13"
    assert set(restarted.users) == {"U1", "U2"}


@pytest.mark.asyncio
async def test_sign_out_clears_persisted_identity(tmp_path: Path, guild_provider: GuildProvider) -> None:
    """After sign-out a restarted store starts at onboarding."""
    db_path = tmp_path / "state.db"
    store = await Store.open(SqliteStateStore(db_path), NullUiSink(), "0.7.0")
    await store.select_provider("discord")
    await store.authenticate()
    await store.clear_all()
    await store.wait_for_background()

    restarted = Store(SqliteStateStore(db_path), NullUiSink())
    assert restarted.current_user is None
    assert restarted.channels == []
    assert await restarted.select_provider() is None
