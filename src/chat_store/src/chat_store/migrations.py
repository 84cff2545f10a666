"""One-time data migrations applied after an upgrade."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from packaging.version import InvalidVersion, Version

from chat_store.config import DEFAULT_PROVIDER, PROVIDER_MIGRATION_VERSION
from state_store_api import StateKey

if TYPE_CHECKING:
    from state_store_api import StateStore

logger = logging.getLogger("chat_store.migrations")


def is_older(version: str, threshold: str) -> bool:
    """Return whether ``version`` sorts before ``threshold``.

    Pre-releases sort before their release (``0.6.0-rc.1`` < ``0.6.0``). An
    unparseable stored version is logged and treated as current.
    """
    try:
        return Version(version) < Version(threshold)
    except InvalidVersion:
        logger.warning("Ignoring unparseable stored version %r", version)
        return False


def migrate_user_info(existing_version: str, user_info: dict[str, Any] | None) -> dict[str, Any] | None:
    """Return ``user_info`` migrated forward from ``existing_version``."""
    if user_info is None:
        return None
    if is_older(existing_version, PROVIDER_MIGRATION_VERSION):
        logger.info("Migration for %s: add %s as default provider", PROVIDER_MIGRATION_VERSION, DEFAULT_PROVIDER)
        return {**user_info, "provider": DEFAULT_PROVIDER}
    return user_info


async def run_migrations(state: StateStore, current_version: str) -> bool:
    """Apply pending migrations to persisted state.

    Args:
        state: Persisted state to migrate in place.
        current_version: Version of the running package.

    Returns:
        True if the stored version changed (an upgrade or first run).

    """
    existing_version = state.get(StateKey.EXTENSION_VERSION.value)
    if existing_version == current_version:
        return False

    logger.info("Updated to %s", current_version)
    if existing_version:
        user_info = state.get(StateKey.USER_INFO.value)
        migrated = migrate_user_info(existing_version, user_info)
        if migrated != user_info:
            await state.set(StateKey.USER_INFO.value, migrated)

    await state.set(StateKey.EXTENSION_VERSION.value, current_version)
    logger.info("Updated state to new version: %s", state.get(StateKey.EXTENSION_VERSION.value))
    return True
