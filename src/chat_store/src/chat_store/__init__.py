"""Client-side sync store unifying chat providers behind one model."""

from chat_store.freshness import is_stale
from chat_store.store import ProviderNotSelectedError, ProviderState, Store
from chat_store.ui import HttpUiSink, NullUiSink, UiSink, ViewModel

__version__ = "0.7.0"

__all__ = [
    "HttpUiSink",
    "NullUiSink",
    "ProviderNotSelectedError",
    "ProviderState",
    "Store",
    "UiSink",
    "ViewModel",
    "__version__",
    "is_stale",
]
