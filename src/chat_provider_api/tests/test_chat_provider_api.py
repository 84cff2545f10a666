"""Tests for the chat_provider_api contract surface.

These tests document how the sync store resolves providers and how the shared
models behave, using mocks to stand in for concrete adapters.
"""

from __future__ import annotations

from unittest.mock import Mock

import pytest

import chat_provider_api
from chat_provider_api import (
    PROVIDER_VARIANTS,
    Channel,
    ChannelType,
    CurrentUser,
    Message,
    Provider,
    ProviderName,
    UnknownProviderError,
    User,
    UserPreferences,
    get_provider,
    get_variant,
    register_provider,
)


@pytest.fixture
def clean_registry(monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset registered factories for isolated tests."""
    monkeypatch.setattr(chat_provider_api.provider, "_PROVIDER_FACTORIES", {})


def test_variants_are_a_closed_set() -> None:
    """Exactly the two supported backends exist."""
    assert set(PROVIDER_VARIANTS) == {ProviderName.SLACK, ProviderName.DISCORD}


def test_im_name_prefix_per_variant() -> None:
    """Slack prefixes DM names with @, discord does not."""
    assert get_variant("slack").im_channel_name("ana") == "@ana"
    assert get_variant(ProviderName.DISCORD).im_channel_name("ana") == "ana"


def test_unknown_variant_raises() -> None:
    """Names outside the set are rejected."""
    with pytest.raises(UnknownProviderError, match="Unsupported provider: matrix"):
        get_variant("matrix")


def test_register_and_get_provider(clean_registry: None) -> None:
    """Factories receive keyword arguments and build adapters."""
    adapter = Mock(spec=Provider)
    factory = Mock(return_value=adapter)
    register_provider("discord", factory)

    assert get_provider("discord", store="the-store") is adapter
    factory.assert_called_once_with(store="the-store")


def test_get_unregistered_provider_raises(clean_registry: None) -> None:
    """Supported names still need an adapter."""
    with pytest.raises(UnknownProviderError, match="No adapter registered for provider: slack"):
        get_provider("slack")


def test_register_unknown_provider_raises(clean_registry: None) -> None:
    """Adapters can only bind to supported providers."""
    with pytest.raises(UnknownProviderError):
        register_provider("irc", Mock())


def test_provider_is_abstract() -> None:
    """The capability interface cannot be instantiated directly."""
    with pytest.raises(TypeError):
        Provider()  # type: ignore[abstract]


def test_models_defaults() -> None:
    """Optional fields default to their empty values."""
    channel = Channel(id="C1", name="general")
    assert channel.type is ChannelType.CHANNEL
    assert channel.read_timestamp is None
    assert channel.unread_count is None
    assert User(id="U1", name="a").is_online is None
    message = Message(user_id="U1", timestamp="1")
    assert message.reactions == []
    assert message.replies == {}
    assert CurrentUser(id="U1", name="a").current_team_id is None
    assert UserPreferences().muted_channels == set()


def test_channel_round_trips_through_json() -> None:
    """Persisted channels validate back into models."""
    channel = Channel(id="D1", name="@ana", type=ChannelType.IM, read_timestamp="1.5")
    assert Channel.model_validate(channel.model_dump(mode="json")) == channel
