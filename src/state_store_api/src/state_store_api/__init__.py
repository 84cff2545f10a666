"""Public export surface for ``state_store_api``."""

from state_store_api import store
from state_store_api.store import StateKey, StateStore, get_state_store

__all__ = ["StateKey", "StateStore", "get_state_store", "store"]
