"""UI notification surface the store pushes derived state into."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any

import requests
from pydantic import BaseModel, Field

from chat_provider_api import Channel, CurrentUser, Message, User
from chat_store.config import CHAT_SYNC_UI_URL, UI_TIMEOUT_SECONDS

if TYPE_CHECKING:
    from collections.abc import Sequence

    from chat_provider_api import ChannelLabel, Users

logger = logging.getLogger("chat_store.ui")


class ViewModel(BaseModel):
    """Everything the active channel view renders."""

    channel: Channel | None = None
    messages: dict[str, Message] = Field(default_factory=dict)
    users: dict[str, User] = Field(default_factory=dict)
    current_user: CurrentUser | None = None
    status_text: str = ""


class UiSink(ABC):
    """The contract for UI consumers of store updates."""

    @abstractmethod
    def provider_selected(self, provider: str | None, all_providers: Sequence[str]) -> None:
        """Signal the active provider; None means onboarding."""
        raise NotImplementedError

    @abstractmethod
    def update_channel_labels(self, labels: Sequence[ChannelLabel]) -> None:
        """Replace channel rows in the tree views."""
        raise NotImplementedError

    @abstractmethod
    def update_users(self, current_user: CurrentUser | None, users: Users, im_channels: dict[str, Channel]) -> None:
        """Replace the user/presence snapshot."""
        raise NotImplementedError

    @abstractmethod
    def update_unread_count(self, total: int) -> None:
        """Show the total unread count."""
        raise NotImplementedError

    @abstractmethod
    def update_view(self, view_model: ViewModel) -> None:
        """Push the active channel view model."""
        raise NotImplementedError

    @abstractmethod
    def dispose(self) -> None:
        """Release UI resources."""
        raise NotImplementedError


class NullUiSink(UiSink):
    """UiSink that discards every update (headless use)."""

    def provider_selected(self, provider: str | None, all_providers: Sequence[str]) -> None:
        """Ignore the provider signal."""

    def update_channel_labels(self, labels: Sequence[ChannelLabel]) -> None:
        """Ignore channel labels."""

    def update_users(self, current_user: CurrentUser | None, users: Users, im_channels: dict[str, Channel]) -> None:
        """Ignore the user snapshot."""

    def update_unread_count(self, total: int) -> None:
        """Ignore the unread total."""

    def update_view(self, view_model: ViewModel) -> None:
        """Ignore the view model."""

    def dispose(self) -> None:
        """Nothing to release."""


class HttpUiSink(UiSink):
    """UiSink that POSTs each update as JSON to a UI process.

    Posts go through one worker thread, so the UI receives updates in the
    order the store emitted them and the event loop never blocks on HTTP.
    Failures are logged and dropped so a missing UI never stalls
    synchronization.

    Attributes:
        _url: Endpoint receiving ``{"event": ..., "payload": ...}`` bodies.
        _timeout_seconds: Per-request timeout.
        _executor: Single worker delivering posts in order.

    """

    def __init__(self, url: str | None = None, *, timeout_seconds: float = UI_TIMEOUT_SECONDS) -> None:
        """Initialize the sink, resolving the endpoint from the environment."""
        target = url or CHAT_SYNC_UI_URL
        if not target:
            raise RuntimeError("CHAT_SYNC_UI_URL is required.")  # noqa: TRY003, EM101
        self._url = target
        self._timeout_seconds = timeout_seconds
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="chat-store-ui")
        self._pending: set[asyncio.Future[None]] = set()

    def provider_selected(self, provider: str | None, all_providers: Sequence[str]) -> None:
        """Send the per-provider context flags."""
        self._emit("provider_selected", {name: name == provider for name in all_providers})

    def update_channel_labels(self, labels: Sequence[ChannelLabel]) -> None:
        """Send channel rows."""
        self._emit("channel_labels", [label.model_dump(mode="json") for label in labels])

    def update_users(self, current_user: CurrentUser | None, users: Users, im_channels: dict[str, Channel]) -> None:
        """Send the user/presence snapshot."""
        self._emit(
            "users",
            {
                "current_user": current_user.model_dump(mode="json") if current_user else None,
                "users": {user_id: user.model_dump(mode="json") for user_id, user in users.items()},
                "im_channels": {user_id: channel.model_dump(mode="json") for user_id, channel in im_channels.items()},
            },
        )

    def update_unread_count(self, total: int) -> None:
        """Send the unread total."""
        self._emit("unread_count", {"total": total})

    def update_view(self, view_model: ViewModel) -> None:
        """Send the active channel view model."""
        self._emit("view", view_model.model_dump(mode="json"))

    def dispose(self) -> None:
        """Tell the UI the store is going away, then stop the worker.

        Updates already queued are still delivered.
        """
        self._emit("dispose", {})
        self._executor.shutdown(wait=False)

    def _emit(self, event: str, payload: Any) -> None:  # noqa: ANN401
        body = {"event": event, "payload": payload}
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Queue behind earlier posts and wait.
            self._executor.submit(self._post, body).result()
            return
        future = loop.run_in_executor(self._executor, self._post, body)
        self._pending.add(future)
        future.add_done_callback(self._pending.discard)

    def _post(self, body: dict[str, Any]) -> None:
        try:
            response = requests.post(self._url, json=body, timeout=self._timeout_seconds)
            response.raise_for_status()
        except requests.RequestException:
            logger.exception("Failed to deliver UI update %s", body["event"])
